"""Anthropic Messages API constraints.

Also applies to Claude served through Vertex AI and Amazon Bedrock.
"""

from ..models import ImagePart, InvocationConfig, Message, ProviderRules, RuleViolation
from .base import AppliedRules, enforce_leading_system_messages

MAX_IMAGES_PER_REQUEST = 20


def apply_anthropic_rules(
    messages: tuple[Message, ...],
    config: InvocationConfig,
) -> AppliedRules:
    messages, violations = enforce_leading_system_messages(
        messages, ProviderRules.anthropic, "Anthropic"
    )

    total_images = sum(len(message.parts_of(ImagePart)) for message in messages)
    if total_images > MAX_IMAGES_PER_REQUEST:
        messages = _drop_images_beyond(messages, MAX_IMAGES_PER_REQUEST)
        violations.append(
            RuleViolation(
                rule=ProviderRules.anthropic,
                message=(
                    f"Anthropic supports at most {MAX_IMAGES_PER_REQUEST} images per "
                    f"request. {total_images - MAX_IMAGES_PER_REQUEST} image(s) were removed."
                ),
            )
        )

    return AppliedRules(messages=messages, config=config, rules=tuple(violations))


def _drop_images_beyond(messages: tuple[Message, ...], limit: int) -> tuple[Message, ...]:
    """Keep the first ``limit`` images in conversation order."""
    seen = 0
    result = []
    for message in messages:
        if not message.parts_of(ImagePart):
            result.append(message)
            continue

        parts = []
        for part in message.content:
            if isinstance(part, ImagePart):
                seen += 1
                if seen > limit:
                    continue
            parts.append(part)
        result.append(message.model_copy(update={"content": tuple(parts)}))
    return tuple(result)
