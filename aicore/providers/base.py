"""Base interfaces for provider adapters and language models.

A ``ProviderAdapter`` validates a credential and assembles an SDK client
(no network I/O). It then resolves a ``LanguageModel`` for a model id; the
streaming transport only ever talks to the ``LanguageModel`` interface.
"""

import base64
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from ..errors import ChainError, RunErrorCodes
from ..models import Credential, InvocationConfig, InvocationContext, Message, ToolDescriptor
from ..result import Result
from ..stream_parts import StreamChunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallOptions:
    """Everything a language model needs for one streaming call."""

    messages: tuple[Message, ...]
    tools: dict[str, ToolDescriptor] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    provider_options: dict[str, dict[str, Any]] | None = None
    response_schema: dict[str, Any] | None = None


class LanguageModel(ABC):
    """Concrete model reference usable by the streaming transport."""

    def __init__(self, client: Any, model_id: str, provider: str):
        self.client = client
        self.model_id = model_id
        self.provider = provider

    @abstractmethod
    def do_stream(self, options: CallOptions) -> AsyncIterator[StreamChunk]:
        """Stream normalized chunks for one call.

        Args:
            options: Messages, tools, sampling settings and output schema.

        Yields:
            Stream chunks, ending with a FinishPart.

        Raises:
            APICallError: Provider rejected the request or could not be reached.
        """
        ...

    def options_for(self, options: CallOptions, *keys: str) -> dict[str, Any]:
        """Merge provider option bags addressed to this model's provider."""
        merged: dict[str, Any] = {}
        for key in (*keys, self.provider):
            merged.update((options.provider_options or {}).get(key, {}))
        return merged

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider={self.provider!r}, model_id={self.model_id!r})"


@dataclass(frozen=True)
class AdapterHandle:
    """Opaque provider handle produced by the adapter factory."""

    provider: str
    client: Any
    adapter: "ProviderAdapter"
    correlation_id: str | None = None


class ProviderAdapter(ABC):
    """One implementation per provider kind."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier: 'openai', 'anthropic', etc."""
        ...

    @property
    def label(self) -> str:
        """Human-readable provider name for error messages."""
        return self.name

    @abstractmethod
    def build_adapter(
        self,
        context: InvocationContext,
        messages: tuple[Message, ...],
        credential: Credential,
        config: InvocationConfig,
        timeout: float,
    ) -> Result[AdapterHandle, ChainError]:
        """Validate the credential and assemble an SDK client handle."""
        ...

    @abstractmethod
    def resolve_model(self, handle: AdapterHandle, config: InvocationConfig, model: str) -> LanguageModel:
        """Return the language model used for dispatch."""
        ...

    def config_error(self, message: str) -> Result[AdapterHandle, ChainError]:
        return Result.err(
            ChainError(
                code=RunErrorCodes.AIProviderConfigError,
                message=message,
                details={"provider": self.name},
            )
        )

    def require_token(self, credential: Credential) -> Result[AdapterHandle, ChainError] | None:
        if not credential.token:
            return self.config_error(f"{self.label} API key is missing")
        return None

    def invalid_configuration(self, error: ValidationError) -> Result[AdapterHandle, ChainError]:
        fields = sorted({".".join(str(loc) for loc in item["loc"]) for item in error.errors()})
        return self.config_error(
            f"{self.label} configuration is missing or invalid: {', '.join(fields)}"
        )


# ---------------------------------------------------------------------------
# Media helpers shared by the API families
# ---------------------------------------------------------------------------


def is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def to_data_uri(data: bytes | str, mime_type: str) -> str:
    """Encode bytes (or pass through a URL/data URI) as a URL the provider accepts."""
    if isinstance(data, str):
        if is_url(data) or data.startswith("data:"):
            return data
        # Already base64 encoded
        return f"data:{mime_type};base64,{data}"
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def split_data_uri(value: str) -> tuple[str, str] | None:
    """Return (mime type, base64 payload) for a base64 data URI."""
    if not value.startswith("data:") or ";base64," not in value:
        return None
    header, payload = value[len("data:"):].split(";base64,", 1)
    return header or "application/octet-stream", payload


def parse_tool_arguments(arguments: str) -> dict[str, Any]:
    """Parse streamed tool-call arguments, tolerating empty or malformed JSON."""
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError:
        logger.warning("Tool call arguments are not valid JSON: %s", arguments[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def request_url(error: Exception) -> str | None:
    request = getattr(error, "request", None)
    return str(request.url) if request is not None else None


def response_body(error: Exception) -> str | None:
    body = getattr(error, "body", None)
    if body is None:
        return None
    return body if isinstance(body, str) else json.dumps(body)
