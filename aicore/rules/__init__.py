"""Provider policy rules.

Validates a request against provider constraints and rewrites it into a shape the
provider accepts. Violations are data, not exceptions: the orchestrator refuses
to dispatch while any are present.
"""

from typing import Iterable

from ..models import InvocationConfig, Message, Providers
from .anthropic import MAX_IMAGES_PER_REQUEST, apply_anthropic_rules
from .base import AppliedRules, RuleFn
from .google import apply_google_rules
from .openai import apply_openai_rules, is_reasoning_model
from .perplexity import apply_perplexity_rules
from .tool_ordering import apply_tool_ordering_rules

# Rules run after the tool ordering rule, in list order.
PROVIDER_RULES: dict[Providers, list[RuleFn]] = {
    Providers.anthropic: [apply_anthropic_rules],
    Providers.google_vertex: [apply_anthropic_rules],
    Providers.amazon_bedrock: [apply_anthropic_rules],
    Providers.google: [apply_google_rules],
    Providers.openai: [apply_openai_rules],
    Providers.azure: [apply_openai_rules],
    Providers.perplexity: [apply_perplexity_rules],
}


def apply_all_rules(
    provider_type: Providers,
    messages: Iterable[Message],
    config: InvocationConfig,
) -> AppliedRules:
    """Run every rule that applies to ``provider_type``.

    Args:
        provider_type: Provider the request will be dispatched to.
        messages: Conversation messages. Never mutated.
        config: Invocation config. Never mutated.

    Returns:
        AppliedRules with the rewritten messages/config and all violations found.
    """
    applied = AppliedRules(messages=tuple(messages), config=config)
    for rule in [apply_tool_ordering_rules, *PROVIDER_RULES.get(provider_type, [])]:
        applied = applied.extend(rule(applied.messages, applied.config))
    return applied


__all__ = [
    "AppliedRules",
    "MAX_IMAGES_PER_REQUEST",
    "PROVIDER_RULES",
    "apply_all_rules",
    "is_reasoning_model",
]
