"""Unified LLM invocation layer.

Validates provider-agnostic requests against per-provider rules, builds the
provider adapter and tools, and dispatches streaming calls. Failures come back
as typed ``ChainError`` values inside a ``Result``.
"""

from .ai import AIReturn, ai
from .costs import CostPer1M, estimate_cost, get_cost_per_1m
from .diagnostics import DiagnosticLogger
from .errors import (
    AbortError,
    APICallError,
    ChainError,
    ObjectValidationError,
    RunErrorCodes,
)
from .handle_error import handle_ai_call_api_error
from .models import (
    Credential,
    FilePart,
    ImagePart,
    InvocationConfig,
    InvocationContext,
    Message,
    ProviderRules,
    Providers,
    ResponseEnvelope,
    RuleViolation,
    TextPart,
    ToolCall,
    ToolCallPart,
    ToolResultPart,
    Usage,
)
from .providers import (
    AmazonBedrockConfiguration,
    AzureConfiguration,
    VertexConfiguration,
    create_provider,
    get_language_model,
)
from .result import Result, TypedResult
from .rules import AppliedRules, apply_all_rules
from .settings import Settings, feature_enabled, get_settings
from .streaming import AbortController, AbortSignal, smooth_stream, stream_text
from .tools import build_tools

__all__ = [
    "ai",
    "AIReturn",
    "Result",
    "TypedResult",
    "ChainError",
    "RunErrorCodes",
    "APICallError",
    "AbortError",
    "ObjectValidationError",
    "handle_ai_call_api_error",
    "Credential",
    "Providers",
    "Message",
    "TextPart",
    "ImagePart",
    "FilePart",
    "ToolCallPart",
    "ToolResultPart",
    "InvocationConfig",
    "InvocationContext",
    "ProviderRules",
    "RuleViolation",
    "ResponseEnvelope",
    "ToolCall",
    "Usage",
    "AppliedRules",
    "apply_all_rules",
    "build_tools",
    "create_provider",
    "get_language_model",
    "AzureConfiguration",
    "VertexConfiguration",
    "AmazonBedrockConfiguration",
    "stream_text",
    "smooth_stream",
    "AbortController",
    "AbortSignal",
    "DiagnosticLogger",
    "Settings",
    "feature_enabled",
    "get_settings",
    "CostPer1M",
    "estimate_cost",
    "get_cost_per_1m",
]
