"""Diagnostic log channel for AI invocations.

Off unless explicitly enabled (``DEBUG_AI=true`` or ``Settings.debug_ai``).
When disabled every method is a no-op. It never changes control flow or
returned values, and it observes deferred results through done-callbacks so it
cannot block stream progress. A failure while writing a log line is logged
as a warning and dropped.

Every content part is truncated in snapshots, including image URLs and data
URIs, to keep log size bounded and to keep signed URLs and inline payloads out
of the logs.
"""

import asyncio
import functools
import json
import logging
from typing import Any, Iterable

from .models import (
    FilePart,
    ImagePart,
    InvocationConfig,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

logger = logging.getLogger(__name__)

DEFAULT_TRUNCATE_LENGTH = 100


def truncate(value: str, length: int = DEFAULT_TRUNCATE_LENGTH) -> str:
    return value[:length] + "..." if len(value) > length else value


def _size_of(data: bytes | str | None) -> int:
    return len(data) if data is not None else 0


def _guarded(method):
    """Log and drop failures raised while writing diagnostics."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except Exception:
            self._log.warning("Diagnostic logging failed in %s", method.__name__, exc_info=True)
            return None

    return wrapper


class DiagnosticLogger:
    """Structured, size-bounded snapshots of outbound requests and their outcome."""

    def __init__(
        self,
        enabled: bool = False,
        truncate_length: int = DEFAULT_TRUNCATE_LENGTH,
        log: logging.Logger | None = None,
    ):
        self.enabled = enabled
        self.truncate_length = truncate_length
        self._log = log or logger

    # -- snapshots ---------------------------------------------------------

    def snapshot_part(self, part: Any) -> dict[str, Any]:
        snapshot: dict[str, Any] = {"type": part.type}
        if isinstance(part, TextPart):
            snapshot["text"] = truncate(part.text, self.truncate_length)
        elif isinstance(part, ImagePart):
            image = part.image
            snapshot["imageInfo"] = {
                "present": bool(image),
                "dataType": type(image).__name__,
                "isURL": isinstance(image, str) and image.startswith(("http", "data:")),
                "size": _size_of(image),
                "preview": truncate(image, self.truncate_length) if isinstance(image, str) else "Binary data",
            }
        elif isinstance(part, FilePart):
            snapshot["fileInfo"] = {
                "present": bool(part.file),
                "mimeType": part.mime_type,
                "dataType": type(part.file).__name__,
                "size": _size_of(part.file),
            }
        elif isinstance(part, ToolCallPart):
            snapshot["toolName"] = part.tool_name
            snapshot["args"] = truncate(json.dumps(part.args, default=str), self.truncate_length)
        elif isinstance(part, ToolResultPart):
            snapshot["toolName"] = part.tool_name
            snapshot["result"] = truncate(json.dumps(part.result, default=str), self.truncate_length)
        return snapshot

    def snapshot_messages(self, messages: Iterable[Message]) -> list[dict[str, Any]]:
        return [
            {"role": message.role, "content": [self.snapshot_part(part) for part in message.content]}
            for message in messages
        ]

    # -- request side ------------------------------------------------------

    @_guarded
    def log_request(self, provider: str, config: InvocationConfig, messages: list[Message] | tuple[Message, ...]) -> None:
        if not self.enabled:
            return
        self._log.info(
            "AI request: provider=%s model=%s messages=%d\nMessages: %s\nConfig: %s",
            provider,
            config.model,
            len(messages),
            json.dumps(self.snapshot_messages(messages), indent=2, default=str),
            json.dumps(config.model_dump(by_alias=True, exclude_none=True), indent=2, default=str),
        )

    @_guarded
    def log_dispatch(self, provider: str, model: str, messages: Iterable[Message]) -> None:
        if not self.enabled:
            return
        self._log.info(
            "Messages after rules: %s\nSending to provider=%s model=%s",
            json.dumps(self.snapshot_messages(messages), indent=2, default=str),
            provider,
            model,
        )

    @_guarded
    def observe(self, provider_metadata: Any, finish_reason: Any) -> None:
        """Log provider metadata and finish reason once they settle."""
        if not self.enabled:
            return
        self._when_settled(provider_metadata, "Provider response metadata: %s")
        self._when_settled(finish_reason, "Finish reason: %s")

    def _when_settled(self, awaitable: Any, template: str) -> None:
        if not isinstance(awaitable, asyncio.Future):
            return

        def _log_result(future: asyncio.Future) -> None:
            if future.cancelled() or future.exception() is not None:
                return
            try:
                self._log.info(template, json.dumps(future.result(), indent=2, default=str))
            except Exception:
                self._log.warning("Diagnostic logging failed for a settled result", exc_info=True)

        awaitable.add_done_callback(_log_result)

    # -- failures ----------------------------------------------------------

    @_guarded
    def log_error(self, error: Any) -> None:
        if not self.enabled:
            return
        self._log.info("AI request error: %r", error)

    @_guarded
    def log_api_error(self, error: Any, response_body: Any) -> None:
        if not self.enabled:
            return
        self._log.info(
            "AI API error details: message=%s response_body=%s url=%s request_body=%s",
            getattr(error, "message", error),
            truncate(str(response_body), self.truncate_length * 10),
            getattr(error, "url", None),
            json.dumps(getattr(error, "request_body_values", None), default=str),
        )
