"""OpenAI constraints for reasoning models (o1, o3, o4 families)."""

from ..models import InvocationConfig, Message, ProviderRules, RuleViolation
from .base import AppliedRules

REASONING_MODEL_PREFIXES = ("o1", "o3", "o4")


def is_reasoning_model(model: str) -> bool:
    return model.startswith(REASONING_MODEL_PREFIXES)


def apply_openai_rules(
    messages: tuple[Message, ...],
    config: InvocationConfig,
) -> AppliedRules:
    violations = []
    if is_reasoning_model(config.model) and config.temperature is not None:
        config = config.model_copy(update={"temperature": None})
        violations.append(
            RuleViolation(
                rule=ProviderRules.openai,
                message=(
                    f"OpenAI reasoning model '{config.model}' does not support the "
                    "temperature setting. It was removed."
                ),
            )
        )
    return AppliedRules(messages=messages, config=config, rules=tuple(violations))
