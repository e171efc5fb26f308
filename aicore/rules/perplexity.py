"""Perplexity constraints: no tool calling and text-only content."""

from ..models import (
    FilePart,
    ImagePart,
    InvocationConfig,
    Message,
    ProviderRules,
    RuleViolation,
)
from .base import AppliedRules


def apply_perplexity_rules(
    messages: tuple[Message, ...],
    config: InvocationConfig,
) -> AppliedRules:
    violations = []

    if config.tools:
        config = config.model_copy(update={"tools": None})
        violations.append(
            RuleViolation(
                rule=ProviderRules.perplexity,
                message="Perplexity does not support tools. They were removed.",
            )
        )

    removed = 0
    result = []
    for message in messages:
        parts = tuple(
            part for part in message.content if not isinstance(part, (ImagePart, FilePart))
        )
        if len(parts) == len(message.content):
            result.append(message)
            continue
        removed += len(message.content) - len(parts)
        if parts:
            result.append(message.model_copy(update={"content": parts}))

    if removed:
        violations.append(
            RuleViolation(
                rule=ProviderRules.perplexity,
                message=(
                    "Perplexity does not support image or file content. "
                    f"{removed} part(s) were removed."
                ),
            )
        )

    return AppliedRules(messages=tuple(result), config=config, rules=tuple(violations))
