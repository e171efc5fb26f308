"""Normalized stream chunks.

Provider language models translate their native streaming events into these
parts, so everything downstream of ``do_stream`` is provider-independent.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Union

from .models import ToolCall, Usage

FinishReason = Literal["stop", "length", "tool_calls", "content_filter", "error", "other"]


@dataclass(frozen=True)
class TextDeltaPart:
    text_delta: str
    type: Literal["text-delta"] = "text-delta"


@dataclass(frozen=True)
class ReasoningPart:
    text_delta: str
    type: Literal["reasoning"] = "reasoning"


@dataclass(frozen=True)
class ToolCallStreamPart:
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = field(default_factory=dict)
    type: Literal["tool-call"] = "tool-call"

    def to_tool_call(self) -> ToolCall:
        return ToolCall(tool_call_id=self.tool_call_id, tool_name=self.tool_name, args=self.args)


@dataclass(frozen=True)
class ObjectPart:
    """Partial structured object parsed from the text received so far."""

    object: Any
    type: Literal["object"] = "object"


@dataclass(frozen=True)
class SourcePart:
    url: str
    title: str | None = None
    type: Literal["source"] = "source"


@dataclass(frozen=True)
class ResponseMetadataPart:
    id: str | None = None
    model_id: str | None = None
    type: Literal["response-metadata"] = "response-metadata"


@dataclass(frozen=True)
class FinishPart:
    finish_reason: FinishReason
    usage: Usage = field(default_factory=Usage)
    provider_metadata: dict[str, Any] | None = None
    type: Literal["finish"] = "finish"


@dataclass(frozen=True)
class ErrorPart:
    error: BaseException
    type: Literal["error"] = "error"


StreamChunk = Union[
    TextDeltaPart,
    ReasoningPart,
    ToolCallStreamPart,
    ObjectPart,
    SourcePart,
    ResponseMetadataPart,
    FinishPart,
    ErrorPart,
]
