"""Unit tests for the streaming transport.

Tests cover:
- smooth_stream re-chunking
- Partial JSON recovery and structured output validation
- StreamTextResult deferred accessors, single consumption and failures
- Cancellation through AbortController
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from aicore.errors import AbortError, APICallError, ObjectValidationError
from aicore.models import Message, Usage
from aicore.stream_parts import (
    ErrorPart,
    FinishPart,
    ObjectPart,
    ReasoningPart,
    ResponseMetadataPart,
    SourcePart,
    TextDeltaPart,
    ToolCallStreamPart,
)
from aicore.streaming import (
    AbortController,
    parse_object,
    parse_partial_json,
    smooth_stream,
    stream_text,
)

from tests.fakes import FakeLanguageModel, text_chunks

PERSON_SCHEMA = {
    "type": "object",
    "properties": {"name": {"type": "string"}, "age": {"type": "integer"}},
    "required": ["name", "age"],
}


async def _aiter(items):
    for item in items:
        yield item


async def _collect(stream):
    return [chunk async for chunk in stream]


class TestSmoothStream:
    """Tests for smooth_stream."""

    @pytest.mark.asyncio
    async def test_word_chunking(self):
        chunks = [TextDeltaPart(text_delta=t) for t in ("Hel", "lo wor", "ld\n")]
        out = await _collect(smooth_stream(delay_ms=0)(_aiter(chunks)))
        assert [c.text_delta for c in out] == ["Hello ", "world\n"]

    @pytest.mark.asyncio
    async def test_trailing_text_flushed(self):
        chunks = [TextDeltaPart(text_delta="Hello wo"), TextDeltaPart(text_delta="rld")]
        out = await _collect(smooth_stream(delay_ms=0)(_aiter(chunks)))
        assert [c.text_delta for c in out] == ["Hello ", "world"]

    @pytest.mark.asyncio
    async def test_non_text_chunk_flushes_buffer(self):
        finish = FinishPart(finish_reason="stop")
        out = await _collect(smooth_stream(delay_ms=0)(_aiter([TextDeltaPart(text_delta="Hi"), finish])))
        assert out == [TextDeltaPart(text_delta="Hi"), finish]

    @pytest.mark.asyncio
    async def test_line_chunking(self):
        out = await _collect(
            smooth_stream(delay_ms=0, chunking="line")(_aiter([TextDeltaPart(text_delta="a b\nc")]))
        )
        assert [c.text_delta for c in out] == ["a b\n", "c"]

    @pytest.mark.asyncio
    async def test_delay_between_chunks(self):
        chunks = [TextDeltaPart(text_delta="one two three")]
        with patch("aicore.streaming.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await _collect(smooth_stream(delay_ms=25)(_aiter(chunks)))
        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.025)


class TestPartialJson:
    """Tests for parse_partial_json and parse_object."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ('{"name": "Al', {"name": "Al"}),
            ('{"a": 1, "b": ', {"a": 1}),
            ("[1, 2", [1, 2]),
            ('{"a": {"b": [1', {"a": {"b": [1]}}),
            ('{"text": "ab\\', {"text": "ab"}),
            ('{"done": true}', {"done": True}),
        ],
    )
    def test_recovers_partial_documents(self, text, expected):
        assert parse_partial_json(text) == expected

    @pytest.mark.parametrize("text", ["", "   ", '{"a": tr'])
    def test_unrecoverable(self, text):
        assert parse_partial_json(text) is None

    def test_parse_object_valid(self):
        assert parse_object('{"name": "Alice", "age": 30}', PERSON_SCHEMA) == {"name": "Alice", "age": 30}

    def test_parse_object_not_json(self):
        with pytest.raises(ObjectValidationError) as exc_info:
            parse_object("Sure! Here it is", PERSON_SCHEMA)
        assert exc_info.value.text == "Sure! Here it is"

    def test_parse_object_schema_mismatch(self):
        with pytest.raises(ObjectValidationError, match="does not match the schema"):
            parse_object('{"name": "Alice"}', PERSON_SCHEMA)


class TestStreamTextResult:
    """Tests for stream_text and its result handle."""

    @pytest.mark.asyncio
    async def test_text_and_deferred_accessors(self):
        model = FakeLanguageModel(
            chunks=[
                ResponseMetadataPart(id="resp-9", model_id="gpt-4o-2024"),
                ReasoningPart(text_delta="thinking"),
                TextDeltaPart(text_delta="Hello "),
                TextDeltaPart(text_delta="world"),
                SourcePart(url="https://example.com", title="Example"),
                ToolCallStreamPart(tool_call_id="c1", tool_name="search", args={"q": "x"}),
                FinishPart(
                    finish_reason="tool_calls",
                    usage=Usage(prompt_tokens=5, completion_tokens=2, total_tokens=7),
                    provider_metadata={"openai": {"response_id": "resp-9"}},
                ),
            ]
        )
        result = stream_text(model=model, messages=[Message(role="user", content="Hi")])

        chunks = await _collect(result.full_stream)

        assert len(chunks) == 7
        assert await result.text == "Hello world"
        assert await result.reasoning == "thinking"
        assert (await result.usage).total_tokens == 7
        assert [c.tool_name for c in await result.tool_calls] == ["search"]
        assert (await result.sources)[0].url == "https://example.com"
        assert await result.finish_reason == "tool_calls"
        assert await result.provider_metadata == {"openai": {"response_id": "resp-9"}}
        response = await result.response
        assert (response.id, response.model_id, response.provider) == ("resp-9", "gpt-4o-2024", "openai")
        assert await result.object is None

    @pytest.mark.asyncio
    async def test_accessors_settle_without_consuming_stream(self):
        result = stream_text(model=FakeLanguageModel(), messages=[Message(role="user", content="Hi")])
        assert await result.text == "Hello world"

    @pytest.mark.asyncio
    async def test_prompt_and_settings_forwarded(self):
        model = FakeLanguageModel()
        result = stream_text(
            model=model,
            messages=[Message(role="system", content="Be nice")],
            prompt="Tell me a joke",
            temperature=0.2,
            provider_options={"openai": {"user": "u1"}},
        )
        await result.text

        options = model.calls[0]
        assert [m.role for m in options.messages] == ["system", "user"]
        assert options.messages[-1].text == "Tell me a joke"
        assert options.settings == {"temperature": 0.2}
        assert options.provider_options == {"openai": {"user": "u1"}}
        assert options.tools == {}

    @pytest.mark.asyncio
    async def test_stream_consumed_once(self):
        result = stream_text(model=FakeLanguageModel(), messages=[])
        await _collect(result.full_stream)

        with pytest.raises(RuntimeError, match="already been consumed"):
            result.full_stream
        with pytest.raises(RuntimeError):
            result.text_stream

    @pytest.mark.asyncio
    async def test_text_stream(self):
        result = stream_text(model=FakeLanguageModel(), messages=[])
        assert "".join([t async for t in result.text_stream]) == "Hello world"

    @pytest.mark.asyncio
    async def test_transform_applied(self):
        result = stream_text(
            model=FakeLanguageModel(), messages=[], transform=smooth_stream(delay_ms=0)
        )
        deltas = [c.text_delta for c in await _collect(result.full_stream) if isinstance(c, TextDeltaPart)]
        assert deltas == ["Hello ", "world"]

    @pytest.mark.asyncio
    async def test_missing_finish_part(self):
        result = stream_text(model=FakeLanguageModel(chunks=[TextDeltaPart(text_delta="x")]), messages=[])
        assert await result.finish_reason == "other"
        assert await result.usage == Usage()

    @pytest.mark.asyncio
    async def test_provider_failure_settles_accessors(self):
        """Test a mid-stream error reaches the stream and every pending accessor."""
        error = APICallError("Overloaded", response_body="busy", status_code=529)
        model = FakeLanguageModel(chunks=[TextDeltaPart(text_delta="par")], error=error)
        result = stream_text(model=model, messages=[])

        chunks = await _collect(result.full_stream)

        assert chunks[0] == TextDeltaPart(text_delta="par")
        assert isinstance(chunks[-1], ErrorPart)
        assert chunks[-1].error is error
        for future in result.futures:
            with pytest.raises(APICallError):
                await future

    @pytest.mark.asyncio
    async def test_error_part_from_model_fails_stream(self):
        error = RuntimeError("bad chunk")
        result = stream_text(model=FakeLanguageModel(chunks=[ErrorPart(error=error)]), messages=[])
        with pytest.raises(RuntimeError, match="bad chunk"):
            await result.text


class TestStructuredOutput:
    """Tests for structured-object mode."""

    @pytest.mark.asyncio
    async def test_partial_objects_and_final_object(self):
        deltas = ['{"name": "Al', 'ice", "age": 3', "0}"]
        model = FakeLanguageModel(
            chunks=[*(TextDeltaPart(text_delta=d) for d in deltas), FinishPart(finish_reason="stop")]
        )
        result = stream_text(model=model, messages=[], output_schema=PERSON_SCHEMA)

        chunks = await _collect(result.full_stream)

        partials = [c.object for c in chunks if isinstance(c, ObjectPart)]
        assert partials == [{"name": "Al"}, {"name": "Alice", "age": 3}, {"name": "Alice", "age": 30}]
        assert await result.object == {"name": "Alice", "age": 30}
        assert model.calls[0].response_schema == PERSON_SCHEMA

    @pytest.mark.asyncio
    async def test_partial_parse_skipped_for_plain_deltas(self):
        """Test deltas without JSON punctuation do not trigger a re-parse."""
        deltas = ['{"name": "Al', "ic", 'e", "age": 30}']
        model = FakeLanguageModel(
            chunks=[*(TextDeltaPart(text_delta=d) for d in deltas), FinishPart(finish_reason="stop")]
        )
        result = stream_text(model=model, messages=[], output_schema=PERSON_SCHEMA)

        with patch("aicore.streaming.parse_partial_json", wraps=parse_partial_json) as mock_parse:
            chunks = await _collect(result.full_stream)

        partials = [c.object for c in chunks if isinstance(c, ObjectPart)]
        assert partials == [{"name": "Al"}, {"name": "Alice", "age": 30}]
        assert mock_parse.call_count == 2
        assert await result.object == {"name": "Alice", "age": 30}

    @pytest.mark.asyncio
    async def test_invalid_object_fails_object_only(self):
        model = FakeLanguageModel(
            chunks=[TextDeltaPart(text_delta='{"name": "Alice"}'), FinishPart(finish_reason="stop")]
        )
        result = stream_text(model=model, messages=[], output_schema=PERSON_SCHEMA)

        with pytest.raises(ObjectValidationError):
            await result.object
        assert await result.text == '{"name": "Alice"}'


class TestAbort:
    """Tests for cancellation."""

    @pytest.mark.asyncio
    async def test_no_chunks_after_abort(self):
        """Test aborting after N chunks stops delivery and settles every accessor."""
        gate = asyncio.Event()
        model = FakeLanguageModel(chunks=text_chunks("Hello world, how are you?"), gate=gate)
        controller = AbortController()
        result = stream_text(model=model, messages=[], abort_signal=controller.signal)

        received = []
        async for chunk in result.full_stream:
            received.append(chunk)
            if len(received) == 2:
                controller.abort()

        assert len(received) == 2
        for future in result.futures:
            with pytest.raises(AbortError):
                await asyncio.wait_for(future, timeout=1)

    @pytest.mark.asyncio
    async def test_abort_before_start(self):
        controller = AbortController()
        controller.abort("user cancelled")
        result = stream_text(model=FakeLanguageModel(), messages=[], abort_signal=controller.signal)

        assert await _collect(result.full_stream) == []
        with pytest.raises(AbortError):
            await result.text
        assert controller.signal.reason == "user cancelled"

    @pytest.mark.asyncio
    async def test_abort_after_completion_is_noop(self):
        controller = AbortController()
        result = stream_text(model=FakeLanguageModel(), messages=[], abort_signal=controller.signal)
        text = await result.text
        await asyncio.sleep(0)

        controller.abort()

        assert text == "Hello world"
        assert await result.finish_reason == "stop"

    def test_listeners_called_once(self):
        controller = AbortController()
        calls = []
        controller.signal.add_listener(lambda: calls.append(1))

        controller.abort()
        controller.abort()

        assert calls == [1]
        assert controller.signal.aborted is True
