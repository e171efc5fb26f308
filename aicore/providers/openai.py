"""OpenAI Chat Completions family.

Covers OpenAI itself, Azure OpenAI, custom OpenAI-compatible endpoints and the
hosted providers that expose an OpenAI-compatible API (Groq, Mistral, DeepSeek,
Perplexity, xAI, Google Gemini).
"""

import json
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import urlparse

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAzureOpenAI,
    AsyncOpenAI,
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
    parse_tool_arguments,
    request_url,
    response_body,
    to_data_uri,
)

FINISH_REASON_MAP: dict[str, FinishReason] = {
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool_calls",
    "function_call": "tool_calls",
    "content_filter": "content_filter",
}

# Sampling settings -> Chat Completions parameter names
SETTING_NAMES = {
    "temperature": "temperature",
    "top_p": "top_p",
    "max_tokens": "max_tokens",
    "stop_sequences": "stop",
    "presence_penalty": "presence_penalty",
    "frequency_penalty": "frequency_penalty",
    "seed": "seed",
}


class OpenAIChatLanguageModel(LanguageModel):
    """Streams from the Chat Completions API.

    Structured output uses response_format.json_schema.
    """

    async def do_stream(self, options: CallOptions) -> AsyncIterator[StreamChunk]:
        request = self._build_request(options)

        tool_calls: dict[int, dict[str, Any]] = {}
        finish_reason: FinishReason = "other"
        usage = Usage()
        response_id = None
        sent_metadata = False

        try:
            stream = await self.client.chat.completions.create(**request)
            async for chunk in stream:
                if not sent_metadata:
                    sent_metadata = True
                    response_id = chunk.id
                    yield ResponseMetadataPart(id=chunk.id, model_id=chunk.model)

                if chunk.usage is not None:
                    usage = self._parse_usage(chunk.usage)

                for choice in chunk.choices:
                    delta = choice.delta
                    if delta is not None:
                        reasoning = getattr(delta, "reasoning_content", None)
                        if reasoning:
                            yield ReasoningPart(text_delta=reasoning)
                        if delta.content:
                            yield TextDeltaPart(text_delta=delta.content)
                        for tool_delta in delta.tool_calls or []:
                            self._accumulate_tool_call(tool_calls, tool_delta)
                    if choice.finish_reason:
                        finish_reason = FINISH_REASON_MAP.get(choice.finish_reason, "other")

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
                request_body_values=_loggable_request(request),
                provider=self.provider,
            ) from e

        for _, call in sorted(tool_calls.items()):
            yield ToolCallStreamPart(
                tool_call_id=call["id"],
                tool_name=call["name"],
                args=parse_tool_arguments(call["arguments"]),
            )

        yield FinishPart(
            finish_reason=finish_reason,
            usage=usage,
            provider_metadata={self.provider: {"response_id": response_id}},
        )

    def _build_request(self, options: CallOptions) -> dict[str, Any]:
        """Convert call options to Chat Completions format."""
        openai_request: dict[str, Any] = {
            "model": self.model_id,
            "messages": convert_messages(options.messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }

        for key, value in options.settings.items():
            if key in SETTING_NAMES:
                openai_request[SETTING_NAMES[key]] = list(value) if key == "stop_sequences" else value

        if options.tools:
            openai_request["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in options.tools.values()
            ]

        if options.response_schema is not None:
            openai_request["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": "response",
                    "strict": False,
                    "schema": options.response_schema,
                },
            }

        openai_request.update(self.options_for(options, "openai"))
        return openai_request

    @staticmethod
    def _accumulate_tool_call(tool_calls: dict[int, dict[str, Any]], tool_delta: Any) -> None:
        call = tool_calls.setdefault(tool_delta.index, {"id": None, "name": "", "arguments": ""})
        if tool_delta.id:
            call["id"] = tool_delta.id
        function = tool_delta.function
        if function is not None:
            if function.name:
                call["name"] = function.name
            if function.arguments:
                call["arguments"] += function.arguments

    @staticmethod
    def _parse_usage(raw: Any) -> Usage:
        completion_details = getattr(raw, "completion_tokens_details", None)
        prompt_details = getattr(raw, "prompt_tokens_details", None)
        return Usage(
            prompt_tokens=raw.prompt_tokens or 0,
            completion_tokens=raw.completion_tokens or 0,
            total_tokens=raw.total_tokens or 0,
            reasoning_tokens=getattr(completion_details, "reasoning_tokens", None),
            cached_input_tokens=getattr(prompt_details, "cached_tokens", None),
        )


def convert_messages(messages: tuple[Message, ...]) -> list[dict[str, Any]]:
    """Convert messages to Chat Completions format."""
    converted: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "system":
            converted.append({"role": "system", "content": msg.text})

        elif msg.role == "user":
            content = [_convert_user_part(part) for part in msg.content]
            converted.append({"role": "user", "content": [c for c in content if c]})

        elif msg.role == "assistant":
            openai_msg: dict[str, Any] = {"role": "assistant", "content": msg.text or None}
            calls = msg.parts_of(ToolCallPart)
            if calls:
                openai_msg["tool_calls"] = [
                    {
                        "id": call.tool_call_id,
                        "type": "function",
                        "function": {"name": call.tool_name, "arguments": json.dumps(call.args)},
                    }
                    for call in calls
                ]
            converted.append(openai_msg)

        else:
            # One Chat Completions tool message per result
            for result in msg.parts_of(ToolResultPart):
                converted.append({
                    "role": "tool",
                    "tool_call_id": result.tool_call_id,
                    "content": result.result if isinstance(result.result, str) else json.dumps(result.result),
                })
    return converted


def _convert_user_part(part: Any) -> dict[str, Any] | None:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        return {
            "type": "image_url",
            "image_url": {"url": to_data_uri(part.image, part.mime_type or "image/png")},
        }
    if isinstance(part, FilePart):
        return {
            "type": "file",
            "file": {"filename": "file", "file_data": to_data_uri(part.file, part.mime_type)},
        }
    return None


def _loggable_request(request: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in request.items() if key != "messages"}


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class OpenAIAdapter(ProviderAdapter):
    """OpenAI, or any endpoint speaking its API when ``base_url`` is set."""

    def __init__(self, name: str = "openai", label: str = "OpenAI", base_url: str | None = None):
        self._name = name
        self._label = label
        self._base_url = base_url

    @property
    def name(self) -> str:
        return self._name

    @property
    def label(self) -> str:
        return self._label

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

        client = AsyncOpenAI(
            api_key=credential.token,
            base_url=credential.url or self._base_url,
            timeout=timeout,
            max_retries=0,
        )
        return Result.ok(
            AdapterHandle(
                provider=self.name,
                client=client,
                adapter=self,
                correlation_id=context.correlation_id,
            )
        )

    def resolve_model(self, handle: AdapterHandle, config: InvocationConfig, model: str) -> LanguageModel:
        return OpenAIChatLanguageModel(handle.client, model, self.name)


class CustomAdapter(OpenAIAdapter):
    """Self-hosted or third-party OpenAI-compatible endpoint. URL is required."""

    def __init__(self):
        super().__init__(name="custom", label="Custom provider")

    def build_adapter(
        self,
        context: InvocationContext,
        messages: tuple[Message, ...],
        credential: Credential,
        config: InvocationConfig,
        timeout: float,
    ) -> Result[AdapterHandle, ChainError]:
        if not credential.url:
            return self.config_error("Custom provider URL is missing")
        parsed = urlparse(credential.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return self.config_error(f"Custom provider URL is invalid: {credential.url}")
        return super().build_adapter(context, messages, credential, config, timeout)


class AzureConfiguration(BaseModel):
    """Azure OpenAI settings stored in the credential's configuration."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    resource_name: str | None = Field(default=None, alias="resourceName", min_length=1)
    api_version: str = Field(default="2024-10-21", alias="apiVersion", min_length=1)


class AzureAdapter(ProviderAdapter):
    """Azure OpenAI. The model id is the deployment name."""

    @property
    def name(self) -> str:
        return "azure"

    @property
    def label(self) -> str:
        return "Azure"

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

        try:
            azure = AzureConfiguration.model_validate(credential.configuration or {})
        except ValidationError as e:
            return self.invalid_configuration(e)

        if not credential.url and not azure.resource_name:
            return self.config_error("Azure configuration is missing or invalid: resourceName")

        endpoint = credential.url or f"https://{azure.resource_name}.openai.azure.com"
        client = AsyncAzureOpenAI(
            api_key=credential.token,
            api_version=azure.api_version,
            azure_endpoint=endpoint,
            timeout=timeout,
            max_retries=0,
        )
        return Result.ok(
            AdapterHandle(
                provider=self.name,
                client=client,
                adapter=self,
                correlation_id=context.correlation_id,
            )
        )

    def resolve_model(self, handle: AdapterHandle, config: InvocationConfig, model: str) -> LanguageModel:
        return OpenAIChatLanguageModel(handle.client, model, self.name)


# OpenAI-compatible hosted providers: name -> (label, base URL)
COMPATIBLE_PROVIDERS = {
    "groq": ("Groq", "https://api.groq.com/openai/v1"),
    "mistral": ("Mistral", "https://api.mistral.ai/v1"),
    "deepseek": ("DeepSeek", "https://api.deepseek.com/v1"),
    "perplexity": ("Perplexity", "https://api.perplexity.ai"),
    "xai": ("xAI", "https://api.x.ai/v1"),
    "google": ("Google", "https://generativelanguage.googleapis.com/v1beta/openai/"),
}
