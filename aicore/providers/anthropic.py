"""Anthropic Messages family.

Covers Anthropic's own API and Claude served through Google Vertex AI and
Amazon Bedrock. Structured output uses a forced ``respond_with_json`` tool
since the Messages API has no native json_schema mode; its input is streamed
back as text.
"""

import base64
import json
from collections.abc import AsyncIterator
from typing import Any

from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    AsyncAnthropicBedrock,
    AsyncAnthropicVertex,
)
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import APICallError, ChainError
from ..models import (
    Credential,
    FilePart,
    ImagePart,
    InvocationConfig,
    InvocationContext,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Usage,
)
from ..result import Result
from ..stream_parts import (
    FinishPart,
    FinishReason,
    ReasoningPart,
    ResponseMetadataPart,
    StreamChunk,
    TextDeltaPart,
    ToolCallStreamPart,
)
from .base import (
    AdapterHandle,
    CallOptions,
    LanguageModel,
    ProviderAdapter,
    is_url,
    parse_tool_arguments,
    request_url,
    response_body,
    split_data_uri,
)

STRUCTURED_OUTPUT_TOOL = "respond_with_json"
DEFAULT_MAX_TOKENS = 4096

FINISH_REASON_MAP: dict[str, FinishReason] = {
    "end_turn": "stop",
    "max_tokens": "length",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "refusal": "content_filter",
}


class AnthropicMessagesLanguageModel(LanguageModel):
    """Streams from the Messages API."""

    async def do_stream(self, options: CallOptions) -> AsyncIterator[StreamChunk]:
        request = self._build_request(options)
        structured = options.response_schema is not None

        # content block index -> {"type", "id", "name", "input_json"}
        blocks: dict[int, dict[str, Any]] = {}
        input_tokens = 0
        output_tokens = 0
        cached_tokens = None
        stop_reason = None
        response_id = None

        try:
            stream = await self.client.messages.create(**request)
            async for event in stream:
                if event.type == "message_start":
                    response_id = event.message.id
                    input_tokens = event.message.usage.input_tokens or 0
                    cached_tokens = getattr(event.message.usage, "cache_read_input_tokens", None)
                    yield ResponseMetadataPart(id=event.message.id, model_id=event.message.model)

                elif event.type == "content_block_start":
                    block = event.content_block
                    blocks[event.index] = {
                        "type": block.type,
                        "id": getattr(block, "id", None),
                        "name": getattr(block, "name", None),
                        "input_json": "",
                    }

                elif event.type == "content_block_delta":
                    delta = event.delta
                    block = blocks.get(event.index, {})
                    if delta.type == "text_delta":
                        yield TextDeltaPart(text_delta=delta.text)
                    elif delta.type == "thinking_delta":
                        yield ReasoningPart(text_delta=delta.thinking)
                    elif delta.type == "input_json_delta":
                        if structured and block.get("name") == STRUCTURED_OUTPUT_TOOL:
                            # The structured answer is the tool input
                            yield TextDeltaPart(text_delta=delta.partial_json)
                        else:
                            block["input_json"] = block.get("input_json", "") + delta.partial_json

                elif event.type == "content_block_stop":
                    block = blocks.get(event.index, {})
                    if block.get("type") == "tool_use" and not (
                        structured and block.get("name") == STRUCTURED_OUTPUT_TOOL
                    ):
                        yield ToolCallStreamPart(
                            tool_call_id=block["id"],
                            tool_name=block["name"],
                            args=parse_tool_arguments(block["input_json"]),
                        )

                elif event.type == "message_delta":
                    stop_reason = event.delta.stop_reason or stop_reason
                    output_tokens = event.usage.output_tokens or output_tokens

        except APITimeoutError as e:
            raise APICallError(
                f"{self.provider} request timed out",
                url=request_url(e),
                provider=self.provider,
            ) from e

        except APIConnectionError as e:
            raise APICallError(
                f"Failed to connect to {self.provider}: {e}",
                url=request_url(e),
                provider=self.provider,
            ) from e

        except APIStatusError as e:
            raise APICallError(
                str(e.message) if hasattr(e, "message") else str(e),
                response_body=response_body(e),
                url=request_url(e),
                status_code=e.status_code,
                request_body_values={k: v for k, v in request.items() if k != "messages"},
                provider=self.provider,
            ) from e

        finish_reason = FINISH_REASON_MAP.get(stop_reason or "", "other")
        if structured and finish_reason == "tool_calls" and not any(
            block.get("type") == "tool_use" and block.get("name") != STRUCTURED_OUTPUT_TOOL
            for block in blocks.values()
        ):
            finish_reason = "stop"

        yield FinishPart(
            finish_reason=finish_reason,
            usage=Usage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
                cached_input_tokens=cached_tokens,
            ),
            provider_metadata={
                self.provider: {"response_id": response_id, "stop_reason": stop_reason}
            },
        )

    def _build_request(self, options: CallOptions) -> dict[str, Any]:
        """Convert call options to Messages API format."""
        system_content, messages = convert_messages(options.messages)
        settings = options.settings

        anthropic_request: dict[str, Any] = {
            "model": self.model_id,
            "messages": messages,
            "max_tokens": settings.get("max_tokens") or DEFAULT_MAX_TOKENS,
            "stream": True,
        }

        if system_content:
            anthropic_request["system"] = system_content

        # Anthropic uses 0-1 range, we use 0-2
        if "temperature" in settings:
            anthropic_request["temperature"] = min(settings["temperature"], 1.0)
        if "top_p" in settings:
            anthropic_request["top_p"] = settings["top_p"]
        if "top_k" in settings:
            anthropic_request["top_k"] = settings["top_k"]
        if settings.get("stop_sequences"):
            anthropic_request["stop_sequences"] = list(settings["stop_sequences"])

        tools = [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in options.tools.values()
        ]

        if options.response_schema is not None:
            tools.append({
                "name": STRUCTURED_OUTPUT_TOOL,
                "description": "Respond with structured JSON data matching the required schema.",
                "input_schema": options.response_schema,
            })
            if len(tools) == 1:
                anthropic_request["tool_choice"] = {"type": "tool", "name": STRUCTURED_OUTPUT_TOOL}
            else:
                anthropic_request["tool_choice"] = {"type": "any"}

        if tools:
            anthropic_request["tools"] = tools

        anthropic_request.update(self.options_for(options, "anthropic"))
        return anthropic_request


def convert_messages(messages: tuple[Message, ...]) -> tuple[str | None, list[dict[str, Any]]]:
    """Split out the system prompt and convert the rest to Messages API format."""
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            # Anthropic takes system as a top-level parameter
            system_parts.append(msg.text)

        elif msg.role == "tool":
            converted.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.tool_call_id,
                        "content": result.result if isinstance(result.result, str) else json.dumps(result.result),
                        "is_error": result.is_error,
                    }
                    for result in msg.parts_of(ToolResultPart)
                ],
            })

        else:
            content = [_convert_part(part) for part in msg.content]
            converted.append({"role": msg.role, "content": [c for c in content if c]})

    return ("\n\n".join(p for p in system_parts if p) or None), converted


def _convert_part(part: Any) -> dict[str, Any] | None:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        return {"type": "image", "source": _source(part.image, part.mime_type or "image/png")}
    if isinstance(part, FilePart):
        return {"type": "document", "source": _source(part.file, part.mime_type)}
    if isinstance(part, ToolCallPart):
        return {"type": "tool_use", "id": part.tool_call_id, "name": part.tool_name, "input": part.args}
    return None


def _source(data: bytes | str, mime_type: str) -> dict[str, Any]:
    if isinstance(data, bytes):
        return {"type": "base64", "media_type": mime_type, "data": base64.b64encode(data).decode("ascii")}
    if is_url(data):
        return {"type": "url", "url": data}
    parsed = split_data_uri(data)
    if parsed:
        media_type, payload = parsed
        return {"type": "base64", "media_type": media_type, "data": payload}
    return {"type": "base64", "media_type": mime_type, "data": data}


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class AnthropicAdapter(ProviderAdapter):
    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def label(self) -> str:
        return "Anthropic"

    def build_adapter(
        self,
        context: InvocationContext,
        messages: tuple[Message, ...],
        credential: Credential,
        config: InvocationConfig,
        timeout: float,
    ) -> Result[AdapterHandle, ChainError]:
        missing = self.require_token(credential)
        if missing is not None:
            return missing

        client = AsyncAnthropic(
            api_key=credential.token,
            base_url=credential.url or None,
            timeout=timeout,
            max_retries=0,
        )
        return Result.ok(
            AdapterHandle(provider=self.name, client=client, adapter=self, correlation_id=context.correlation_id)
        )

    def resolve_model(self, handle: AdapterHandle, config: InvocationConfig, model: str) -> LanguageModel:
        return AnthropicMessagesLanguageModel(handle.client, model, self.name)


class VertexConfiguration(BaseModel):
    """Google Vertex AI project settings."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    project: str = Field(min_length=1)
    location: str = Field(min_length=1)


class VertexAdapter(ProviderAdapter):
    """Claude on Google Vertex AI. The credential token, if set, is an OAuth access token."""

    @property
    def name(self) -> str:
        return "google_vertex"

    @property
    def label(self) -> str:
        return "Google Vertex"

    def build_adapter(
        self,
        context: InvocationContext,
        messages: tuple[Message, ...],
        credential: Credential,
        config: InvocationConfig,
        timeout: float,
    ) -> Result[AdapterHandle, ChainError]:
        try:
            vertex = VertexConfiguration.model_validate(credential.configuration or {})
        except ValidationError as e:
            return self.invalid_configuration(e)

        client = AsyncAnthropicVertex(
            project_id=vertex.project,
            region=vertex.location,
            access_token=credential.token or None,
            base_url=credential.url or None,
            timeout=timeout,
            max_retries=0,
        )
        return Result.ok(
            AdapterHandle(provider=self.name, client=client, adapter=self, correlation_id=context.correlation_id)
        )

    def resolve_model(self, handle: AdapterHandle, config: InvocationConfig, model: str) -> LanguageModel:
        return AnthropicMessagesLanguageModel(handle.client, model, self.name)


class AmazonBedrockConfiguration(BaseModel):
    """AWS credentials and region for Bedrock."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    region: str = Field(min_length=1)
    access_key_id: str = Field(alias="accessKeyId", min_length=1)
    secret_access_key: str = Field(alias="secretAccessKey", min_length=1)
    session_token: str | None = Field(default=None, alias="sessionToken")


class BedrockAdapter(ProviderAdapter):
    """Claude on Amazon Bedrock."""

    @property
    def name(self) -> str:
        return "amazon_bedrock"

    @property
    def label(self) -> str:
        return "Amazon Bedrock"

    def build_adapter(
        self,
        context: InvocationContext,
        messages: tuple[Message, ...],
        credential: Credential,
        config: InvocationConfig,
        timeout: float,
    ) -> Result[AdapterHandle, ChainError]:
        try:
            bedrock = AmazonBedrockConfiguration.model_validate(credential.configuration or {})
        except ValidationError as e:
            return self.invalid_configuration(e)

        client = AsyncAnthropicBedrock(
            aws_access_key=bedrock.access_key_id,
            aws_secret_key=bedrock.secret_access_key,
            aws_session_token=bedrock.session_token,
            aws_region=bedrock.region,
            base_url=credential.url or None,
            timeout=timeout,
            max_retries=0,
        )
        return Result.ok(
            AdapterHandle(provider=self.name, client=client, adapter=self, correlation_id=context.correlation_id)
        )

    def resolve_model(self, handle: AdapterHandle, config: InvocationConfig, model: str) -> LanguageModel:
        return AnthropicMessagesLanguageModel(handle.client, model, self.name)
