"""Invocation data models.

Provider-agnostic request and response models. Every model is frozen: rules and
adapters derive new values with ``model_copy(update=...)`` and never rewrite the
caller's messages or config in place.

Pydantic v2. Extra fields are forbidden to prevent drift.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

StreamType = Literal["text", "object"]
ObjectOutput = Optional[Literal["object", "array", "no-schema"]]
Role = Literal["system", "user", "assistant", "tool"]


class Providers(str, Enum):
    """Model-serving backends an invocation can target."""

    openai = "openai"
    anthropic = "anthropic"
    groq = "groq"
    mistral = "mistral"
    azure = "azure"
    google = "google"
    google_vertex = "google_vertex"
    amazon_bedrock = "amazon_bedrock"
    deepseek = "deepseek"
    perplexity = "perplexity"
    xai = "xai"
    custom = "custom"


class Credential(BaseModel):
    """Provider API key as stored by the caller, supplied per invocation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: Providers
    token: str = ""
    url: str | None = None
    name: str | None = None
    # Provider-specific settings (Vertex project/location, Bedrock region, ...)
    configuration: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Message content
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Image given as raw bytes, an http(s) URL or a data URI."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["image"] = "image"
    image: bytes | str
    mime_type: str | None = None


class FilePart(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["file"] = "file"
    file: bytes | str
    mime_type: str


class ToolCallPart(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    result: Any = None
    is_error: bool = False


ContentPart = Annotated[
    Union[TextPart, ImagePart, FilePart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """A single conversation message with ordered content parts.

    Plain string content is accepted and stored as a single text part.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    role: Role
    content: tuple[ContentPart, ...] = ()

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ({"type": "text", "text": value},)
        if isinstance(value, list):
            return tuple(value)
        return value

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.content if isinstance(part, TextPart))

    def parts_of(self, part_type: type) -> list[Any]:
        return [part for part in self.content if isinstance(part, part_type)]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class InvocationConfig(BaseModel):
    """Model configuration for one invocation.

    ``tools`` holds the raw declarative tool schemas keyed by tool name; they are
    validated by the tool builder, not here, so a malformed tool becomes a typed
    error instead of a construction failure.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    model: str = ""
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    top_k: int | None = Field(default=None, ge=1)
    max_tokens: int | None = Field(default=None, ge=1)
    stop_sequences: tuple[str, ...] | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    seed: int | None = None
    tools: dict[str, dict[str, Any]] | None = None
    provider_options: dict[str, dict[str, Any]] | None = None
    json_schema: dict[str, Any] | None = Field(default=None, alias="schema")

    def call_settings(self) -> dict[str, Any]:
        """Sampling settings forwarded to the transport.

        Excludes the fields the orchestrator passes separately (model, tools,
        provider options and the output schema).
        """
        return self.model_dump(
            exclude={"model", "tools", "provider_options", "json_schema"},
            exclude_none=True,
        )


class InvocationContext(BaseModel):
    """Caller context threaded through adapters for log correlation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workspace_id: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Validation and tools
# ---------------------------------------------------------------------------


class ProviderRules(str, Enum):
    """Identifiers of the provider policy rules."""

    anthropic = "anthropic"
    google = "google"
    openai = "openai"
    perplexity = "perplexity"
    tool_ordering = "tool_ordering"


class RuleViolation(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    rule: ProviderRules
    message: str


class ToolParameters(BaseModel):
    """Parameter object of a declarative tool schema."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: Literal["object"]
    properties: dict[str, dict[str, Any]] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


class ToolSchema(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    description: str = Field(min_length=1)
    parameters: ToolParameters


class ToolDescriptor(BaseModel):
    """Invocable tool definition handed to the transport."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    description: str
    parameters: dict[str, Any]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class Usage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: int | None = None
    cached_input_tokens: int | None = None


class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ResponseEnvelope(BaseModel):
    """Provider response metadata, settled when the stream finishes."""

    id: str | None = None
    model_id: str | None = None
    provider: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    headers: dict[str, str] | None = None
