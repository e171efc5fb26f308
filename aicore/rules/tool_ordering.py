"""Tool results must directly follow the assistant message that called them.

Applies to every provider. Misplaced tool messages are moved right after their
invocation; tool results that answer no known tool call are dropped.
"""

from ..models import (
    InvocationConfig,
    Message,
    ProviderRules,
    RuleViolation,
    ToolCallPart,
    ToolResultPart,
)
from .base import AppliedRules


def apply_tool_ordering_rules(
    messages: tuple[Message, ...],
    config: InvocationConfig,
) -> AppliedRules:
    # tool_call_id -> index of the assistant message that issued it
    call_owner: dict[str, int] = {}
    for index, message in enumerate(messages):
        if message.role != "assistant":
            continue
        for part in message.parts_of(ToolCallPart):
            call_owner.setdefault(part.tool_call_id, index)

    violations: list[RuleViolation] = []
    # owner index -> [(original index, tool message)]
    tool_messages_by_owner: dict[int, list[tuple[int, Message]]] = {}

    for index, message in enumerate(messages):
        if message.role != "tool":
            continue

        results = message.parts_of(ToolResultPart)
        kept = [part for part in results if part.tool_call_id in call_owner]
        for part in results:
            if part.tool_call_id not in call_owner:
                violations.append(
                    RuleViolation(
                        rule=ProviderRules.tool_ordering,
                        message=(
                            f"Tool result for call '{part.tool_call_id}' has no matching "
                            "tool call and was removed."
                        ),
                    )
                )
        if not kept:
            if not results:
                violations.append(
                    RuleViolation(
                        rule=ProviderRules.tool_ordering,
                        message="Tool message without tool results was removed.",
                    )
                )
            continue

        if len(kept) != len(message.content):
            message = message.model_copy(update={"content": tuple(kept)})

        owner = call_owner[kept[0].tool_call_id]
        tool_messages_by_owner.setdefault(owner, []).append((index, message))

    ordered: list[Message] = []
    for index, message in enumerate(messages):
        if message.role == "tool":
            continue
        ordered.append(message)
        for _, tool_message in tool_messages_by_owner.get(index, []):
            ordered.append(tool_message)

    # A tool message is misplaced when the nearest preceding non-tool message
    # in the input is not its owner.
    for owner, tool_messages in tool_messages_by_owner.items():
        for original_index, tool_message in tool_messages:
            previous = original_index - 1
            while previous >= 0 and messages[previous].role == "tool":
                previous -= 1
            if previous != owner:
                call_id = tool_message.parts_of(ToolResultPart)[0].tool_call_id
                violations.append(
                    RuleViolation(
                        rule=ProviderRules.tool_ordering,
                        message=(
                            "Tool results must directly follow the assistant message "
                            f"that called them. The result for tool call '{call_id}' "
                            "was moved after its invocation."
                        ),
                    )
                )

    return AppliedRules(messages=tuple(ordered), config=config, rules=tuple(violations))
