"""Unit tests for the provider error translator."""

from unittest.mock import MagicMock

import httpx
import openai
import pytest

from aicore.diagnostics import DiagnosticLogger
from aicore.errors import APICallError, RunErrorCodes
from aicore.handle_error import MAX_RESPONSE_BODY_LENGTH, handle_ai_call_api_error


class TransportShapedError(Exception):
    """Any error exposing a message and a response body."""

    def __init__(self, message, response_body):
        super().__init__(message)
        self.message = message
        self.response_body = response_body


class TestHandleAICallAPIError:
    """Tests for handle_ai_call_api_error."""

    def test_transport_error_format(self):
        result = handle_ai_call_api_error(TransportShapedError("M", "B"))

        assert result.error.code == RunErrorCodes.AIRunError
        assert result.error.message == "Error: M and response body: B"

    def test_api_call_error(self):
        error = APICallError("Bad request", response_body='{"error":"bad"}', status_code=400)
        result = handle_ai_call_api_error(error)
        assert result.error.message == 'Error: Bad request and response body: {"error":"bad"}'

    def test_plain_error_format(self):
        result = handle_ai_call_api_error(ValueError("X"))
        assert result.error.message == "Unknown error: X"

    def test_non_error_value_format(self):
        result = handle_ai_call_api_error(42)
        assert result.error.message == "Unknown error: 42"

    def test_never_config_error(self):
        """Test every translated failure is a run error."""
        for caught in (TransportShapedError("M", "B"), RuntimeError("x"), "text", None):
            assert handle_ai_call_api_error(caught).error.code == RunErrorCodes.AIRunError

    def test_long_response_body_truncated(self):
        body = "x" * (MAX_RESPONSE_BODY_LENGTH + 500)
        result = handle_ai_call_api_error(TransportShapedError("M", body))

        assert result.error.message == f"Error: M and response body: {'x' * MAX_RESPONSE_BODY_LENGTH}..."

    def test_openai_status_error(self):
        """Test SDK status errors use their parsed body."""
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        response = httpx.Response(429, request=request)
        error = openai.RateLimitError(
            "Rate limit reached",
            response=response,
            body={"error": {"message": "slow down"}},
        )
        result = handle_ai_call_api_error(error)
        assert result.error.message == (
            'Error: Rate limit reached and response body: {"error": {"message": "slow down"}}'
        )

    def test_diagnostics_receive_api_error(self):
        diagnostics = MagicMock(spec=DiagnosticLogger)
        error = TransportShapedError("M", "B")

        handle_ai_call_api_error(error, diagnostics)

        diagnostics.log_api_error.assert_called_once_with(error, "B")

    def test_diagnostics_skip_plain_errors(self):
        diagnostics = MagicMock(spec=DiagnosticLogger)
        handle_ai_call_api_error(ValueError("X"), diagnostics)
        diagnostics.log_api_error.assert_not_called()

    @pytest.mark.parametrize("caught", [KeyError("k"), RuntimeError("")])
    def test_message_falls_back_to_str(self, caught):
        result = handle_ai_call_api_error(caught)
        assert result.error.message == f"Unknown error: {caught}"
