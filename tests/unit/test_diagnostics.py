"""Unit tests for the diagnostic log channel."""

import asyncio
import logging
from unittest.mock import MagicMock

import httpx
import pytest

from aicore.diagnostics import DiagnosticLogger, truncate
from aicore.models import (
    FilePart,
    ImagePart,
    InvocationConfig,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)


class TestTruncate:
    """Tests for truncate."""

    def test_short_value_unchanged(self):
        assert truncate("abc", 5) == "abc"

    def test_long_value_truncated(self):
        assert truncate("abcdef", 3) == "abc..."


class TestSnapshots:
    """Tests for message snapshots."""

    def test_text_truncated(self):
        logger = DiagnosticLogger(enabled=True, truncate_length=10)
        snapshot = logger.snapshot_part(TextPart(text="x" * 50))
        assert snapshot == {"type": "text", "text": "x" * 10 + "..."}

    def test_image_url_truncated(self):
        """Test image URLs are truncated like any other content."""
        url = "https://example.com/" + "a" * 200 + ".png?signature=secret"
        logger = DiagnosticLogger(enabled=True, truncate_length=30)

        info = logger.snapshot_part(ImagePart(image=url))["imageInfo"]

        assert info["isURL"] is True
        assert info["size"] == len(url)
        assert info["preview"] == url[:30] + "..."
        assert "secret" not in info["preview"]

    def test_data_uri_truncated(self):
        data_uri = "data:image/png;base64," + "A" * 5000
        logger = DiagnosticLogger(enabled=True)

        info = logger.snapshot_part(ImagePart(image=data_uri))["imageInfo"]

        assert len(info["preview"]) == 103

    def test_binary_image(self):
        info = DiagnosticLogger(enabled=True).snapshot_part(ImagePart(image=b"\x89PNG"))["imageInfo"]
        assert info == {
            "present": True,
            "dataType": "bytes",
            "isURL": False,
            "size": 4,
            "preview": "Binary data",
        }

    def test_file_has_no_payload(self):
        snapshot = DiagnosticLogger(enabled=True).snapshot_part(
            FilePart(file=b"%PDF-1.4 secret", mime_type="application/pdf")
        )
        assert snapshot["fileInfo"]["mimeType"] == "application/pdf"
        assert "secret" not in str(snapshot)

    def test_tool_parts_truncated(self):
        logger = DiagnosticLogger(enabled=True, truncate_length=20)
        call = logger.snapshot_part(ToolCallPart(tool_call_id="c", tool_name="t", args={"q": "y" * 100}))
        result = logger.snapshot_part(ToolResultPart(tool_call_id="c", tool_name="t", result="z" * 100))

        assert call["args"].endswith("...")
        assert len(call["args"]) == 23
        assert len(result["result"]) == 23

    def test_snapshot_messages(self):
        messages = [Message(role="user", content="Hi")]
        assert DiagnosticLogger(enabled=True).snapshot_messages(messages) == [
            {"role": "user", "content": [{"type": "text", "text": "Hi"}]}
        ]


class TestLogging:
    """Tests for gated logging."""

    def test_disabled_is_silent(self):
        log = MagicMock(spec=logging.Logger)
        diagnostics = DiagnosticLogger(enabled=False, log=log)

        diagnostics.log_request("openai", InvocationConfig(model="gpt-4o"), [Message(role="user", content="Hi")])
        diagnostics.log_dispatch("openai", "gpt-4o", [])
        diagnostics.log_error(RuntimeError("x"))
        diagnostics.log_api_error(RuntimeError("x"), "body")

        log.info.assert_not_called()

    def test_enabled_logs_request(self):
        log = MagicMock(spec=logging.Logger)
        diagnostics = DiagnosticLogger(enabled=True, log=log)

        diagnostics.log_request("openai", InvocationConfig(model="gpt-4o"), [Message(role="user", content="Hi")])

        log.info.assert_called_once()
        assert log.info.call_args.args[1:4] == ("openai", "gpt-4o", 1)

    def test_config_with_unserializable_option(self):
        """Test provider options that are not JSON values are rendered with str()."""
        log = MagicMock(spec=logging.Logger)
        config = InvocationConfig(model="gpt-4o", provider_options={"openai": {"timeout": httpx.Timeout(5.0)}})

        DiagnosticLogger(enabled=True, log=log).log_request("openai", config, [])

        log.info.assert_called_once()
        assert "Timeout" in log.info.call_args.args[-1]
        log.warning.assert_not_called()

    def test_logging_failure_is_swallowed(self):
        log = MagicMock(spec=logging.Logger)
        log.info.side_effect = RuntimeError("handler closed")
        diagnostics = DiagnosticLogger(enabled=True, log=log)

        diagnostics.log_request("openai", InvocationConfig(model="gpt-4o"), [Message(role="user", content="Hi")])
        diagnostics.log_dispatch("openai", "gpt-4o", [])
        diagnostics.log_error(RuntimeError("x"))
        diagnostics.log_api_error(RuntimeError("x"), "body")

        assert log.warning.call_count == 4

    @pytest.mark.asyncio
    async def test_observe_logs_when_settled(self):
        """Test metadata and finish reason are logged once they resolve."""
        log = MagicMock(spec=logging.Logger)
        diagnostics = DiagnosticLogger(enabled=True, log=log)
        loop = asyncio.get_running_loop()
        metadata, finish = loop.create_future(), loop.create_future()

        diagnostics.observe(metadata, finish)
        log.info.assert_not_called()

        metadata.set_result({"openai": {"response_id": "r1"}})
        finish.set_result("stop")
        await asyncio.sleep(0)

        assert log.info.call_count == 2

    @pytest.mark.asyncio
    async def test_observe_ignores_failures(self):
        log = MagicMock(spec=logging.Logger)
        diagnostics = DiagnosticLogger(enabled=True, log=log)
        finish = asyncio.get_running_loop().create_future()

        diagnostics.observe(None, finish)
        finish.set_exception(RuntimeError("boom"))
        await asyncio.sleep(0)

        log.info.assert_not_called()
