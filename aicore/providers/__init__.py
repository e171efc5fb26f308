"""Provider adapter factory.

Builds a provider-specific client handle from a credential and resolves the
language model used for dispatch. Construction is local: no network I/O.
"""

import logging
from typing import Iterable

from ..errors import ChainError, RunErrorCodes
from ..models import Credential, InvocationConfig, InvocationContext, Message
from ..result import Result
from .anthropic import AmazonBedrockConfiguration, AnthropicMessagesLanguageModel, VertexConfiguration
from .base import AdapterHandle, CallOptions, LanguageModel, ProviderAdapter
from .openai import AzureConfiguration, OpenAIChatLanguageModel
from .registry import (
    ProviderRegistry,
    get_provider_adapter,
    list_providers,
    register_provider,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


def create_provider(
    context: InvocationContext,
    messages: Iterable[Message],
    credential: Credential,
    config: InvocationConfig,
    timeout: float = DEFAULT_TIMEOUT,
    registry: ProviderRegistry | None = None,
) -> Result[AdapterHandle, ChainError]:
    """Build the adapter handle for ``credential.provider``.

    Args:
        context: Caller context, used for log correlation.
        messages: Messages after rule rewriting.
        credential: Provider credential.
        config: Invocation config after rule rewriting.
        timeout: Request timeout handed to the SDK client.
        registry: Adapter registry. Defaults to the global one.

    Returns:
        Result with the adapter handle, or an AIProviderConfigError.
    """
    provider_id = credential.provider.value
    adapter = registry.get(provider_id) if registry else get_provider_adapter(provider_id)
    if adapter is None:
        return Result.err(
            ChainError(
                code=RunErrorCodes.AIProviderConfigError,
                message=f"Provider {provider_id} is not supported",
                details={"provider": provider_id},
            )
        )

    if not config.model:
        return adapter.config_error(f"{adapter.label} model is missing from the configuration")

    result = adapter.build_adapter(context, tuple(messages), credential, config, timeout)
    if result.error:
        logger.warning(
            "Provider adapter could not be built: %s",
            result.error.message,
            extra={"correlation_id": context.correlation_id, "provider": provider_id},
        )
    return result


def get_language_model(handle: AdapterHandle, config: InvocationConfig, model: str) -> LanguageModel:
    """Resolve the concrete model reference through the adapter handle."""
    return handle.adapter.resolve_model(handle, config, model)


__all__ = [
    "AdapterHandle",
    "AmazonBedrockConfiguration",
    "AnthropicMessagesLanguageModel",
    "AzureConfiguration",
    "CallOptions",
    "LanguageModel",
    "OpenAIChatLanguageModel",
    "ProviderAdapter",
    "ProviderRegistry",
    "VertexConfiguration",
    "create_provider",
    "get_language_model",
    "get_provider_adapter",
    "list_providers",
    "register_provider",
]
