"""Tool builder.

Converts declarative tool schemas (description + object parameter schema) into
ToolDescriptors the transport can hand to a provider. Fails on the first invalid
schema; a partial tool set is never returned.
"""

import re
from typing import Any, Mapping

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from pydantic import ValidationError

from .errors import ChainError, RunErrorCodes
from .models import ToolDescriptor, ToolSchema
from .result import Result

# Shared by OpenAI function names and Anthropic tool names
TOOL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


def build_tools(
    tools: Mapping[str, Mapping[str, Any]] | None,
) -> Result[dict[str, ToolDescriptor], ChainError]:
    """Build the tool set for one invocation.

    Args:
        tools: Tool schemas keyed by tool name, or None for no tools.

    Returns:
        Result with descriptors keyed by name, or an AIRunError naming the
        first invalid tool.
    """
    built: dict[str, ToolDescriptor] = {}

    for name, raw in (tools or {}).items():
        if not TOOL_NAME_PATTERN.match(name):
            return _tool_error(
                name, "name must be 1-64 characters of letters, digits, '_' or '-'"
            )

        try:
            schema = ToolSchema.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(loc) for loc in first["loc"]) or "schema"
            return _tool_error(name, f"{location}: {first['msg']}")

        parameters = schema.parameters.model_dump()
        try:
            Draft7Validator.check_schema(parameters)
        except SchemaError as e:
            return _tool_error(name, f"parameters are not a valid JSON schema: {e.message}")

        built[name] = ToolDescriptor(
            name=name,
            description=schema.description,
            parameters=parameters,
        )

    return Result.ok(built)


def _tool_error(name: str, reason: str) -> Result[dict[str, ToolDescriptor], ChainError]:
    return Result.err(
        ChainError(
            code=RunErrorCodes.AIRunError,
            message=f"Invalid tool '{name}': {reason}",
            details={"tool": name},
        )
    )
