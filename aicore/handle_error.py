"""Error translator for failures raised while calling a provider.

Maps whatever was caught (transport errors, SDK errors, arbitrary exceptions)
to an ``AIRunError``. Configuration problems never reach this path; they are
reported by the adapter factory before dispatch.
"""

import json
import logging
from typing import Any

from anthropic import APIStatusError as AnthropicAPIStatusError
from openai import APIStatusError as OpenAIAPIStatusError

from .diagnostics import DiagnosticLogger
from .errors import ChainError, RunErrorCodes
from .result import Result

logger = logging.getLogger(__name__)

# Upstream bodies can be whole HTML error pages
MAX_RESPONSE_BODY_LENGTH = 2000


def _response_body_of(error: Any) -> tuple[bool, Any]:
    """Return (is transport-shaped, response body)."""
    if isinstance(error, (OpenAIAPIStatusError, AnthropicAPIStatusError)):
        body = error.body
        return True, body if body is None or isinstance(body, str) else json.dumps(body)
    if hasattr(error, "message") and hasattr(error, "response_body"):
        return True, error.response_body
    return False, None


def handle_ai_call_api_error(
    error: Any,
    diagnostics: DiagnosticLogger | None = None,
) -> Result[Any, ChainError]:
    """Translate a caught failure into an AIRunError result.

    Args:
        error: The caught value. Not necessarily an exception.
        diagnostics: Optional diagnostic channel; logs transport error details when enabled.

    Returns:
        Result.err(ChainError) with code AIRunError.
    """
    is_api_error, body = _response_body_of(error)

    if is_api_error:
        if diagnostics is not None:
            diagnostics.log_api_error(error, body)
        if isinstance(body, str) and len(body) > MAX_RESPONSE_BODY_LENGTH:
            body = body[:MAX_RESPONSE_BODY_LENGTH] + "..."
        message = f"Error: {error.message} and response body: {body}"
    elif isinstance(error, BaseException):
        message = f"Unknown error: {getattr(error, 'message', None) or error}"
    else:
        message = f"Unknown error: {error}"

    logger.debug("Translated provider failure: %s", message)
    return Result.err(ChainError(code=RunErrorCodes.AIRunError, message=message))
