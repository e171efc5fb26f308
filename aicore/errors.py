"""Invocation error taxonomy.

Failures are reported to callers as ``ChainError`` values inside a ``Result``.
The code tells callers whether to surface "fix your provider settings"
(``AIProviderConfigError``) or "the call failed" (``AIRunError``).
"""

from enum import Enum
from typing import Any


class RunErrorCodes(str, Enum):
    """Stable error codes carried by ChainError."""

    AIProviderConfigError = "ai_provider_config_error"
    AIRunError = "ai_run_error"
    Unknown = "unknown_error"


class ChainError(Exception):
    """Typed failure returned by the invocation layer."""

    def __init__(
        self,
        code: RunErrorCodes,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.message} code={self.code.value}"

    def __repr__(self) -> str:
        return f"ChainError(code={self.code.value!r}, message={self.message!r})"


class APICallError(Exception):
    """Failed call to a provider API.

    Raised by provider language models while streaming. Carries the upstream
    message and the raw response body so the caller sees what the provider said.
    """

    def __init__(
        self,
        message: str,
        response_body: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
        request_body_values: Any = None,
        provider: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.response_body = response_body
        self.url = url
        self.status_code = status_code
        self.request_body_values = request_body_values
        self.provider = provider

    @property
    def is_retryable(self) -> bool:
        """429 and 5xx responses, plus connection failures without a status."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.provider:
            parts.append(f"provider={self.provider}")
        return " ".join(parts)


class AbortError(Exception):
    """The invocation was cancelled through its abort signal before settling."""

    def __init__(self, message: str = "The operation was aborted"):
        super().__init__(message)
        self.message = message


class ObjectValidationError(Exception):
    """Structured output did not parse or did not match the output schema."""

    def __init__(self, message: str, text: str | None = None):
        super().__init__(message)
        self.message = message
        self.text = text
