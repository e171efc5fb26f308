"""Shared types and helpers for provider rules."""

from dataclasses import dataclass, field
from typing import Callable, Sequence

from ..models import InvocationConfig, Message, ProviderRules, RuleViolation


@dataclass(frozen=True)
class AppliedRules:
    """Outcome of a validation pass.

    ``messages`` and ``config`` are the (possibly rewritten) values to dispatch
    with. Callers must not dispatch while ``rules`` is non-empty.
    """

    messages: tuple[Message, ...]
    config: InvocationConfig
    rules: tuple[RuleViolation, ...] = field(default_factory=tuple)

    def extend(self, other: "AppliedRules") -> "AppliedRules":
        return AppliedRules(
            messages=other.messages,
            config=other.config,
            rules=self.rules + other.rules,
        )


RuleFn = Callable[[tuple[Message, ...], InvocationConfig], AppliedRules]


def enforce_leading_system_messages(
    messages: Sequence[Message],
    rule: ProviderRules,
    provider_label: str,
) -> tuple[tuple[Message, ...], list[RuleViolation]]:
    """Convert system messages that appear after the conversation start into user messages."""
    result: list[Message] = []
    converted = 0
    seen_non_system = False

    for message in messages:
        if message.role != "system":
            seen_non_system = True
            result.append(message)
        elif seen_non_system:
            result.append(message.model_copy(update={"role": "user"}))
            converted += 1
        else:
            result.append(message)

    violations = []
    if converted:
        violations.append(
            RuleViolation(
                rule=rule,
                message=(
                    f"{provider_label} only supports system messages at the beginning of "
                    f"the conversation. {converted} later system message(s) were "
                    "converted to user messages."
                ),
            )
        )
    return tuple(result), violations
