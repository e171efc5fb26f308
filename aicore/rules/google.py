"""Google Generative AI constraints."""

from ..models import InvocationConfig, Message, ProviderRules, RuleViolation, TextPart
from .base import AppliedRules, enforce_leading_system_messages


def apply_google_rules(
    messages: tuple[Message, ...],
    config: InvocationConfig,
) -> AppliedRules:
    messages, violations = enforce_leading_system_messages(
        messages, ProviderRules.google, "Google"
    )

    stripped = 0
    result = []
    for message in messages:
        if message.role == "system" and len(message.parts_of(TextPart)) != len(message.content):
            stripped += len(message.content) - len(message.parts_of(TextPart))
            message = message.model_copy(update={"content": tuple(message.parts_of(TextPart))})
        result.append(message)

    if stripped:
        violations.append(
            RuleViolation(
                rule=ProviderRules.google,
                message=(
                    "Google only supports text content in system messages. "
                    f"{stripped} non-text part(s) were removed."
                ),
            )
        )

    return AppliedRules(messages=tuple(result), config=config, rules=tuple(violations))
