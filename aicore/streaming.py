"""Streaming transport.

``stream_text`` is the default transport: it starts a background task that
drives a language model's ``do_stream``, queues chunks for a single forward-only
consumer and settles the deferred accessors (text, usage, tool calls, ...) as
the stream progresses.

Cancellation goes through an ``AbortSignal``. Once it fires, the consumer gets
no further chunks, the driver task is cancelled and every accessor that has not
settled yet fails with ``AbortError``.
"""

import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any, Literal, Protocol

from jsonschema import Draft7Validator

from .errors import AbortError, ObjectValidationError
from .models import Message, ResponseEnvelope, ToolDescriptor
from .providers.base import CallOptions, LanguageModel
from .stream_parts import (
    ErrorPart,
    FinishPart,
    ObjectPart,
    ReasoningPart,
    ResponseMetadataPart,
    SourcePart,
    StreamChunk,
    TextDeltaPart,
    ToolCallStreamPart,
)

logger = logging.getLogger(__name__)

StreamTransform = Callable[[AsyncIterator[StreamChunk]], AsyncIterator[StreamChunk]]

# Attempts at trimming an unparseable partial JSON document back to its last comma
MAX_PARTIAL_JSON_REPAIRS = 8

# Partial objects are re-parsed only after a delta containing one of these
STRUCTURAL_CHARS = frozenset('{}[],:"')

_END = object()


class AbortSignal:
    """Cancellation signal shared between a caller and one invocation."""

    def __init__(self):
        self._aborted = False
        self.reason: Any = None
        self._listeners: list[Callable[[], None]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Call ``listener`` on abort, immediately if already aborted."""
        if self._aborted:
            listener()
        else:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _abort(self, reason: Any = None) -> None:
        if self._aborted:
            return
        self._aborted = True
        self.reason = reason
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener()


class AbortController:
    """Owner side of an AbortSignal.

    Usage:
        controller = AbortController()
        result = await ai(..., abort_signal=controller.signal)
        controller.abort()
    """

    def __init__(self):
        self.signal = AbortSignal()

    def abort(self, reason: Any = None) -> None:
        self.signal._abort(reason)


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

CHUNKING_PATTERNS = {
    "word": re.compile(r"\S+\s+"),
    "line": re.compile(r"\n+"),
}


def smooth_stream(
    delay_ms: int | None = 10,
    chunking: Literal["word", "line"] = "word",
) -> StreamTransform:
    """Re-chunk text deltas into whole words (or lines) with a small delay.

    Non-text chunks flush the buffered text and pass through unchanged.
    """
    pattern = CHUNKING_PATTERNS[chunking]

    async def transform(chunks: AsyncIterator[StreamChunk]) -> AsyncIterator[StreamChunk]:
        buffer = ""
        async for chunk in chunks:
            if not isinstance(chunk, TextDeltaPart):
                if buffer:
                    yield TextDeltaPart(text_delta=buffer)
                    buffer = ""
                yield chunk
                continue

            buffer += chunk.text_delta
            while True:
                match = pattern.search(buffer)
                if match is None:
                    break
                yield TextDeltaPart(text_delta=buffer[: match.end()])
                buffer = buffer[match.end():]
                if delay_ms:
                    await asyncio.sleep(delay_ms / 1000)

        if buffer:
            yield TextDeltaPart(text_delta=buffer)

    return transform


# ---------------------------------------------------------------------------
# Partial JSON
# ---------------------------------------------------------------------------


def _close_open_structures(text: str) -> str:
    """Close an unterminated string and any open arrays/objects."""
    stack: list[str] = []
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack:
            stack.pop()

    if in_string:
        if escaped:
            text = text[:-1]
        text += '"'
    text = text.rstrip()
    if text.endswith(","):
        text = text[:-1]
    return text + "".join(reversed(stack))


def parse_partial_json(text: str) -> Any:
    """Best-effort parse of an incomplete JSON document.

    Returns the parsed value, or None when nothing usable can be recovered.
    """
    candidate = text.strip()
    if not candidate:
        return None

    for _ in range(MAX_PARTIAL_JSON_REPAIRS):
        try:
            return json.loads(_close_open_structures(candidate))
        except json.JSONDecodeError:
            pass
        cut = candidate.rfind(",")
        if cut <= 0:
            return None
        candidate = candidate[:cut]
    return None


def parse_object(text: str, schema: dict[str, Any]) -> Any:
    """Parse the final structured output and validate it against ``schema``.

    Raises:
        ObjectValidationError: Text is not JSON or does not match the schema.
    """
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise ObjectValidationError(f"Structured output is not valid JSON: {e}", text=text) from e

    errors = sorted(Draft7Validator(schema).iter_errors(value), key=lambda err: list(err.path))
    if errors:
        raise ObjectValidationError(
            f"Structured output does not match the schema: {errors[0].message}",
            text=text,
        )
    return value


# ---------------------------------------------------------------------------
# Stream result
# ---------------------------------------------------------------------------


def _mark_retrieved(future: asyncio.Future) -> None:
    # Avoid "exception was never retrieved" noise for accessors nobody awaited
    if not future.cancelled():
        future.exception()


class StreamTextResult:
    """Handle over one in-flight generation.

    ``full_stream`` (or ``text_stream``) may be consumed once, forward-only.
    The remaining attributes are futures that settle independently as the
    underlying stream progresses.
    """

    def __init__(
        self,
        model: LanguageModel,
        chunks: AsyncIterator[StreamChunk],
        abort_signal: AbortSignal | None = None,
        output_schema: dict[str, Any] | None = None,
        transform: StreamTransform | None = None,
    ):
        loop = asyncio.get_running_loop()
        self.model = model
        self.text: asyncio.Future[str] = loop.create_future()
        self.reasoning: asyncio.Future[str] = loop.create_future()
        self.usage: asyncio.Future = loop.create_future()
        self.tool_calls: asyncio.Future[list] = loop.create_future()
        self.sources: asyncio.Future[list] = loop.create_future()
        self.provider_metadata: asyncio.Future = loop.create_future()
        self.finish_reason: asyncio.Future[str] = loop.create_future()
        self.response: asyncio.Future[ResponseEnvelope] = loop.create_future()
        self.object: asyncio.Future[Any] = loop.create_future()

        self._output_schema = output_schema
        self._transform = transform
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumed = False
        self._aborted = False
        self._abort_signal = abort_signal

        self._task = loop.create_task(self._drive(chunks))
        if abort_signal is not None:
            abort_signal.add_listener(self._on_abort)

    @property
    def futures(self) -> Sequence[asyncio.Future]:
        return (
            self.text,
            self.reasoning,
            self.usage,
            self.tool_calls,
            self.sources,
            self.provider_metadata,
            self.finish_reason,
            self.response,
            self.object,
        )

    @property
    def full_stream(self) -> AsyncIterator[StreamChunk]:
        """Every chunk, in order. Can only be consumed once."""
        self._claim_stream()
        return self._iterate()

    @property
    def text_stream(self) -> AsyncIterator[str]:
        """Text deltas only. Shares the single-consumer stream with full_stream."""
        self._claim_stream()
        return self._iterate_text()

    def _claim_stream(self) -> None:
        if self._consumed:
            raise RuntimeError("Stream has already been consumed")
        self._consumed = True

    async def _iterate(self) -> AsyncIterator[StreamChunk]:
        while not self._aborted:
            chunk = await self._queue.get()
            if chunk is _END or self._aborted:
                return
            yield chunk

    async def _iterate_text(self) -> AsyncIterator[str]:
        async for chunk in self._iterate():
            if isinstance(chunk, TextDeltaPart):
                yield chunk.text_delta

    async def _drive(self, chunks: AsyncIterator[StreamChunk]) -> None:
        text_parts: list[str] = []
        object_text = ""
        reasoning_parts: list[str] = []
        tool_calls = []
        sources = []
        metadata = ResponseMetadataPart()
        finish: FinishPart | None = None
        last_object: Any = None

        stream = self._transform(chunks) if self._transform else chunks
        try:
            async for chunk in stream:
                if isinstance(chunk, ErrorPart):
                    raise chunk.error

                await self._queue.put(chunk)

                if isinstance(chunk, TextDeltaPart):
                    text_parts.append(chunk.text_delta)
                    if self._output_schema is not None:
                        object_text += chunk.text_delta
                        if not STRUCTURAL_CHARS.isdisjoint(chunk.text_delta):
                            partial = parse_partial_json(object_text)
                            if partial is not None and partial != last_object:
                                last_object = partial
                                await self._queue.put(ObjectPart(object=partial))
                elif isinstance(chunk, ReasoningPart):
                    reasoning_parts.append(chunk.text_delta)
                elif isinstance(chunk, ToolCallStreamPart):
                    tool_calls.append(chunk.to_tool_call())
                elif isinstance(chunk, SourcePart):
                    sources.append(chunk)
                elif isinstance(chunk, ResponseMetadataPart):
                    metadata = chunk
                elif isinstance(chunk, FinishPart):
                    finish = chunk

        except asyncio.CancelledError:
            self._settle_pending(AbortError())
            raise

        except Exception as e:
            logger.warning(
                "Stream from %s failed: %s",
                self.model.provider,
                e,
                extra={"provider": self.model.provider, "model": self.model.model_id},
            )
            self._queue.put_nowait(ErrorPart(error=e))
            self._settle_pending(e)
            return

        finally:
            self._queue.put_nowait(_END)
            if self._abort_signal is not None:
                self._abort_signal.remove_listener(self._on_abort)

        finish = finish or FinishPart(finish_reason="other")
        text = "".join(text_parts)

        self._resolve(self.text, text)
        self._resolve(self.reasoning, "".join(reasoning_parts))
        self._resolve(self.tool_calls, tool_calls)
        self._resolve(self.sources, sources)
        self._resolve(self.usage, finish.usage)
        self._resolve(self.provider_metadata, finish.provider_metadata)
        self._resolve(self.finish_reason, finish.finish_reason)
        self._resolve(
            self.response,
            ResponseEnvelope(
                id=metadata.id,
                model_id=metadata.model_id or self.model.model_id,
                provider=self.model.provider,
            ),
        )

        if self._output_schema is None:
            self._resolve(self.object, None)
        else:
            try:
                self._resolve(self.object, parse_object(text, self._output_schema))
            except ObjectValidationError as e:
                self._fail(self.object, e)

    def _on_abort(self) -> None:
        self._aborted = True
        if not self._task.done():
            self._task.cancel()
        # The task may be cancelled before it ever runs, so settle here too
        self._settle_pending(AbortError())
        self._queue.put_nowait(_END)

    def _settle_pending(self, error: BaseException) -> None:
        for future in self.futures:
            self._fail(future, error)

    @staticmethod
    def _resolve(future: asyncio.Future, value: Any) -> None:
        if not future.done():
            future.set_result(value)

    @staticmethod
    def _fail(future: asyncio.Future, error: BaseException) -> None:
        if not future.done():
            future.set_exception(error)
            future.add_done_callback(_mark_retrieved)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


def stream_text(
    *,
    model: LanguageModel,
    messages: Sequence[Message] = (),
    prompt: str | None = None,
    tools: dict[str, ToolDescriptor] | None = None,
    abort_signal: AbortSignal | None = None,
    provider_options: dict[str, dict[str, Any]] | None = None,
    transform: StreamTransform | None = None,
    output_schema: dict[str, Any] | None = None,
    **settings: Any,
) -> StreamTextResult:
    """Dispatch a streaming call and return immediately with its handle.

    Args:
        model: Resolved language model.
        messages: Conversation messages.
        prompt: Optional prompt, appended as a final user message.
        tools: Tool descriptors keyed by name.
        abort_signal: Optional cancellation signal.
        provider_options: Provider-specific option bags keyed by provider.
        transform: Optional chunk transform (e.g. smooth_stream()).
        output_schema: JSON schema for structured-object mode.
        **settings: Sampling settings (temperature, max_tokens, ...).

    Returns:
        StreamTextResult for this call.
    """
    if prompt:
        messages = (*messages, Message(role="user", content=prompt))

    options = CallOptions(
        messages=tuple(messages),
        tools=tools or {},
        settings=settings,
        provider_options=provider_options,
        response_schema=output_schema,
    )
    return StreamTextResult(
        model=model,
        chunks=model.do_stream(options),
        abort_signal=abort_signal,
        output_schema=output_schema,
        transform=transform,
    )


class StreamTransport(Protocol):
    """Anything that can dispatch a streaming call like ``stream_text``."""

    def stream_text(self, **kwargs: Any) -> Any:
        ...


class DefaultTransport:
    def stream_text(self, **kwargs: Any) -> StreamTextResult:
        return stream_text(**kwargs)


DEFAULT_TRANSPORT = DefaultTransport()
