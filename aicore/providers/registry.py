"""Provider registration and lookup.

Adding a provider means registering a ProviderAdapter here; the orchestrator
never branches on provider kind.
"""

from .anthropic import AnthropicAdapter, BedrockAdapter, VertexAdapter
from .base import ProviderAdapter
from .openai import COMPATIBLE_PROVIDERS, AzureAdapter, CustomAdapter, OpenAIAdapter


class ProviderRegistry:
    """Registry of provider adapters keyed by provider identifier."""

    def __init__(self):
        self._adapters: dict[str, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter) -> None:
        """Register an adapter, replacing any previous one with the same name.

        Args:
            adapter: Adapter instance to register
        """
        self._adapters[adapter.name] = adapter

    def get(self, provider_id: str) -> ProviderAdapter | None:
        """Get an adapter by provider identifier, or None if unregistered."""
        return self._adapters.get(provider_id)

    def list(self) -> list[str]:
        """List all registered provider identifiers."""
        return list(self._adapters.keys())


def default_registry() -> ProviderRegistry:
    """Registry with every built-in provider."""
    registry = ProviderRegistry()
    registry.register(OpenAIAdapter())
    registry.register(AzureAdapter())
    registry.register(CustomAdapter())
    for name, (label, base_url) in COMPATIBLE_PROVIDERS.items():
        registry.register(OpenAIAdapter(name=name, label=label, base_url=base_url))
    registry.register(AnthropicAdapter())
    registry.register(VertexAdapter())
    registry.register(BedrockAdapter())
    return registry


# Global registry instance
_registry = default_registry()


def register_provider(adapter: ProviderAdapter) -> None:
    """Register an adapter in the global registry."""
    _registry.register(adapter)


def get_provider_adapter(provider_id: str) -> ProviderAdapter | None:
    """Get an adapter from the global registry."""
    return _registry.get(provider_id)


def list_providers() -> list[str]:
    """List all registered provider identifiers."""
    return _registry.list()
