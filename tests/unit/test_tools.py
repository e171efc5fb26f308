"""Unit tests for the tool builder."""

import pytest

from aicore.errors import RunErrorCodes
from aicore.models import ToolDescriptor
from aicore.tools import build_tools

WEATHER_TOOL = {
    "description": "Get the weather for a city",
    "parameters": {
        "type": "object",
        "properties": {"city": {"type": "string"}},
        "required": ["city"],
    },
}


class TestBuildTools:
    """Tests for build_tools."""

    def test_no_tools(self):
        """Test None and empty maps build an empty tool set."""
        assert build_tools(None).unwrap() == {}
        assert build_tools({}).unwrap() == {}

    def test_valid_tool(self):
        result = build_tools({"get_weather": WEATHER_TOOL})

        tool = result.unwrap()["get_weather"]
        assert isinstance(tool, ToolDescriptor)
        assert tool.description == "Get the weather for a city"
        assert tool.parameters["properties"] == {"city": {"type": "string"}}
        assert tool.parameters["required"] == ["city"]

    def test_extra_schema_keywords_preserved(self):
        """Test JSON schema keywords beyond properties/required survive."""
        schema = {**WEATHER_TOOL, "parameters": {**WEATHER_TOOL["parameters"], "additionalProperties": False}}
        tool = build_tools({"get_weather": schema}).unwrap()["get_weather"]
        assert tool.parameters["additionalProperties"] is False

    def test_non_object_parameters_rejected(self):
        result = build_tools({"bad": {"description": "d", "parameters": {"type": "string"}}})

        assert result.error.code == RunErrorCodes.AIRunError
        assert result.error.message.startswith("Invalid tool 'bad': parameters.type")
        assert result.error.details == {"tool": "bad"}

    def test_missing_description_rejected(self):
        result = build_tools({"bad": {"parameters": {"type": "object"}}})
        assert result.error.message.startswith("Invalid tool 'bad': description")

    def test_empty_description_rejected(self):
        result = build_tools({"bad": {"description": "", "parameters": {"type": "object"}}})
        assert result.error is not None

    def test_invalid_json_schema_rejected(self):
        """Test property schemas are checked against the JSON Schema metaschema."""
        result = build_tools({
            "bad": {
                "description": "d",
                "parameters": {"type": "object", "properties": {"x": {"type": "not-a-type"}}},
            }
        })
        assert "parameters are not a valid JSON schema" in result.error.message

    @pytest.mark.parametrize("name", ["", "has space", "a" * 65, "dots.not.allowed"])
    def test_invalid_names_rejected(self, name):
        result = build_tools({name: WEATHER_TOOL})
        assert result.error.code == RunErrorCodes.AIRunError

    def test_never_partially_built(self):
        """Test one invalid tool fails the whole set."""
        result = build_tools({
            "get_weather": WEATHER_TOOL,
            "broken": {"description": "d", "parameters": {"type": "array"}},
        })
        assert result.value is None
        assert result.error.details == {"tool": "broken"}
