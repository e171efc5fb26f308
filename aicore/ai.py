"""Unified LLM invocation.

``ai()`` validates a provider-agnostic request against provider rules, builds
the provider adapter and tool set, dispatches a streaming call and returns a
provider-independent handle. Every failure comes back as a ``ChainError`` inside
a ``Result``; nothing raises past this boundary.

    result = await ai(provider=credential, config=config, messages=messages)
    if result.error:
        ...
    response = result.unwrap()
    async for chunk in response.full_stream:
        ...
    text = await response.text
"""

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

from .diagnostics import DiagnosticLogger
from .errors import AbortError, ChainError, ObjectValidationError, RunErrorCodes
from .handle_error import handle_ai_call_api_error
from .models import (
    Credential,
    InvocationConfig,
    InvocationContext,
    Message,
    ObjectOutput,
    Providers,
    StreamType,
)
from .providers import ProviderRegistry, create_provider, get_language_model
from .result import Result
from .rules import apply_all_rules
from .settings import Settings, get_settings
from .stream_parts import ErrorPart, StreamChunk
from .streaming import DEFAULT_TRANSPORT, AbortSignal, StreamTransport, smooth_stream
from .tools import build_tools

logger = logging.getLogger(__name__)

# Failures that already mean something to the caller and are passed through as-is
PASSTHROUGH_ERRORS = (AbortError, ObjectValidationError, ChainError)


@dataclass(frozen=True)
class AIReturn:
    """Provider-independent view over one in-flight generation.

    ``full_stream`` is forward-only and can be consumed once. Every other
    attribute is a future that settles when the underlying stream does.
    """

    type: StreamType
    provider_name: Providers
    full_stream: AsyncIterator[StreamChunk]
    text: asyncio.Future
    reasoning: asyncio.Future
    usage: asyncio.Future
    tool_calls: asyncio.Future
    provider_metadata: asyncio.Future
    sources: asyncio.Future
    finish_reason: asyncio.Future
    response: asyncio.Future
    object: asyncio.Future | None = None


async def ai(
    *,
    provider: Credential,
    config: InvocationConfig,
    messages: Sequence[Message],
    context: InvocationContext | None = None,
    prompt: str | None = None,
    schema: dict[str, Any] | None = None,
    output: ObjectOutput = None,
    transport: StreamTransport | None = None,
    abort_signal: AbortSignal | None = None,
    settings: Settings | None = None,
    diagnostics: DiagnosticLogger | None = None,
    registry: ProviderRegistry | None = None,
) -> Result[AIReturn, ChainError]:
    """Run one streaming invocation.

    Args:
        provider: Credential of the provider to call.
        config: Model configuration. Never mutated.
        messages: Conversation messages. Never mutated.
        context: Caller context for log correlation.
        prompt: Optional prompt appended as a final user message.
        schema: Output JSON schema. Defaults to the config's ``schema``.
        output: Output mode; structured output needs "object" or "array".
        transport: Streaming transport override (defaults to stream_text).
        abort_signal: Optional cancellation signal.
        settings: Settings override. Defaults to the environment.
        diagnostics: Diagnostic channel override. Defaults to one gated by settings.debug_ai.
        registry: Provider registry override.

    Returns:
        Result with an AIReturn, or a ChainError coded AIProviderConfigError,
        AIRunError or Unknown.
    """
    transport = transport or DEFAULT_TRANSPORT
    context = context or InvocationContext()

    try:
        settings = settings or get_settings()
        diagnostics = diagnostics or DiagnosticLogger(
            enabled=settings.debug_ai,
            truncate_length=settings.diagnostic_truncate_length,
        )
        diagnostics.log_request(provider.provider.value, config, tuple(messages))

        rule = apply_all_rules(provider.provider, messages, config)
        if rule.rules:
            logger.warning(
                "Request rejected by %d provider rule(s)",
                len(rule.rules),
                extra={"correlation_id": context.correlation_id, "provider": provider.provider.value},
            )
            return Result.err(
                ChainError(
                    code=RunErrorCodes.AIRunError,
                    message="\n".join(f"- {violation.message}" for violation in rule.rules),
                    details={"rules": [violation.rule.value for violation in rule.rules]},
                )
            )

        config = rule.config
        messages = rule.messages

        adapter_result = create_provider(
            context=context,
            messages=messages,
            credential=provider,
            config=config,
            timeout=settings.request_timeout,
            registry=registry,
        )
        if adapter_result.error:
            return Result.err(adapter_result.error)

        language_model = get_language_model(adapter_result.unwrap(), config, config.model)

        tools_result = build_tools(config.tools)
        if tools_result.error:
            return Result.err(tools_result.error)

        output_schema = schema if schema is not None else config.json_schema
        use_schema = output_schema is not None and output is not None and output != "no-schema"
        result_type: StreamType = "object" if use_schema else "text"

        diagnostics.log_dispatch(provider.provider.value, config.model, messages)

        result = transport.stream_text(
            **config.call_settings(),
            model=language_model,
            prompt=prompt,
            messages=messages,
            tools=tools_result.value,
            abort_signal=abort_signal,
            provider_options=config.provider_options,
            transform=smooth_stream(delay_ms=settings.smooth_stream_delay_ms),
            output_schema=output_schema if use_schema else None,
        )

        diagnostics.observe(
            getattr(result, "provider_metadata", None),
            getattr(result, "finish_reason", None),
        )

        logger.info(
            "LLM stream dispatched",
            extra={
                "correlation_id": context.correlation_id,
                "provider": provider.provider.value,
                "model": config.model,
                "result_type": result_type,
            },
        )

        return Result.ok(
            _to_ai_return(result, result_type, provider.provider, diagnostics)
        )

    except Exception as e:
        if diagnostics is not None:
            diagnostics.log_error(e)
        return handle_ai_call_api_error(e, diagnostics)


def _to_ai_return(
    result: Any,
    result_type: StreamType,
    provider_name: Providers,
    diagnostics: DiagnosticLogger,
) -> AIReturn:
    """Normalize the transport's stream object into an AIReturn."""
    loop = asyncio.get_running_loop()

    def translate(error: BaseException) -> BaseException:
        if isinstance(error, PASSTHROUGH_ERRORS):
            return error
        return handle_ai_call_api_error(error, diagnostics).error

    def deferred(name: str, default: Any = None) -> asyncio.Future:
        source = getattr(result, name, None)
        if not inspect.isawaitable(source):
            future = loop.create_future()
            future.set_result(default if source is None else source)
            return future
        return _translated_future(asyncio.ensure_future(source), translate)

    return AIReturn(
        type=result_type,
        provider_name=provider_name,
        full_stream=_translated_stream(result.full_stream, translate),
        text=deferred("text"),
        reasoning=deferred("reasoning", ""),
        usage=deferred("usage"),
        tool_calls=deferred("tool_calls", []),
        provider_metadata=deferred("provider_metadata"),
        sources=deferred("sources", []),
        finish_reason=deferred("finish_reason"),
        response=deferred("response"),
        object=deferred("object") if result_type == "object" else None,
    )


def _translated_future(source: asyncio.Future, translate) -> asyncio.Future:
    """Mirror ``source``, translating its failure when it fails."""
    target = source.get_loop().create_future()

    def _copy(done: asyncio.Future) -> None:
        if target.done():
            return
        if done.cancelled():
            target.set_exception(AbortError())
        elif done.exception() is not None:
            target.set_exception(translate(done.exception()))
        else:
            target.set_result(done.result())
            return
        target.add_done_callback(lambda f: f.exception())

    source.add_done_callback(_copy)
    return target


async def _translated_stream(stream: AsyncIterator[StreamChunk], translate) -> AsyncIterator[StreamChunk]:
    async for chunk in stream:
        if isinstance(chunk, ErrorPart):
            chunk = ErrorPart(error=translate(chunk.error))
        yield chunk
