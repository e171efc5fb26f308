"""Environment configuration.

Reads feature toggles and tunables from the process environment, loading a
``.env`` file first when one is present.

Configuration (env vars):
- DEBUG_AI: Enable the diagnostic log channel (default: "false")
- AI_DEBUG_TRUNCATE_LENGTH: Characters kept per content part in snapshots (default: 100)
- AI_SMOOTH_STREAM_DELAY_MS: Delay between smoothed text chunks (default: 10)
- LLM_TIMEOUT_SECONDS: Provider request timeout (default: 60)
"""

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field

TRUTHY_VALUES = {"true", "1", "yes"}


class Settings(BaseModel):
    """Invocation-layer settings."""

    debug_ai: bool = False
    diagnostic_truncate_length: int = Field(default=100, ge=1)
    smooth_stream_delay_ms: int = Field(default=10, ge=0)
    request_timeout: float = Field(default=60.0, gt=0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            debug_ai=feature_enabled("DEBUG_AI"),
            diagnostic_truncate_length=int(os.environ.get("AI_DEBUG_TRUNCATE_LENGTH", "100")),
            smooth_stream_delay_ms=int(os.environ.get("AI_SMOOTH_STREAM_DELAY_MS", "10")),
            request_timeout=float(os.environ.get("LLM_TIMEOUT_SECONDS", "60")),
        )


def feature_enabled(name: str) -> bool:
    """Check a named boolean toggle in the environment."""
    return os.environ.get(name, "false").strip().lower() in TRUTHY_VALUES


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process default settings (cached after the first call)."""
    load_dotenv()
    return Settings.from_env()
