"""
call-ai - Schema Strategy Tests

Verifies model-name based strategy selection and the request fragments
each strategy contributes.
"""

import pytest

from callai.core.models import Message, Schema
from callai.strategies import SchemaStrategyType, choose_schema_strategy
from callai.strategies.model_strategies import describe_schema
from callai.utils import extract_fenced_json, join_url_parts, recursively_add_additional_properties


@pytest.fixture
def schema() -> Schema:
    return Schema.model_validate({
        "name": "todo_list",
        "properties": {
            "todos": {"type": "array", "items": {"type": "string"}},
            "owner": {"type": "string", "description": "Who owns the list"},
        },
    })


@pytest.fixture
def messages():
    return [Message(role="user", content="List my todos")]


class TestChooseSchemaStrategy:
    """Test first-match strategy rules."""

    @pytest.mark.parametrize("model,expected", [
        ("anthropic/claude-3-5-sonnet", SchemaStrategyType.TOOL_MODE),
        ("google/gemini-2.0-flash", SchemaStrategyType.JSON_SCHEMA),
        ("openai/gpt-4-turbo", SchemaStrategyType.SYSTEM_MESSAGE),
        ("openai/gpt-4o", SchemaStrategyType.JSON_SCHEMA),
        ("gpt-4o-mini", SchemaStrategyType.JSON_SCHEMA),
        ("meta-llama/llama-3.3-70b-instruct", SchemaStrategyType.SYSTEM_MESSAGE),
        ("deepseek/deepseek-chat", SchemaStrategyType.SYSTEM_MESSAGE),
        ("mistralai/mistral-large", SchemaStrategyType.SYSTEM_MESSAGE),
    ])
    def test_rules(self, schema, model, expected):
        assert choose_schema_strategy(model, schema).strategy is expected

    def test_no_schema(self):
        chosen = choose_schema_strategy("anthropic/claude-3-5-sonnet", None)

        assert chosen.strategy is SchemaStrategyType.NONE
        assert chosen.schema_requested is False
        assert chosen.force_stream is False

    def test_default_models(self, schema):
        assert choose_schema_strategy(None, schema).model == "openai/gpt-4o"
        assert choose_schema_strategy(None, None).model == "openrouter/auto"

    def test_tool_mode_flags(self, schema):
        chosen = choose_schema_strategy("anthropic/claude-3-opus", schema)

        assert chosen.force_stream is True
        assert chosen.emit_partial is False
        assert chosen.prefer_tool_arguments is True
        assert choose_schema_strategy("openai/gpt-4o", schema).prefer_tool_arguments is False

    def test_case_insensitive(self, schema):
        assert choose_schema_strategy("Anthropic/Claude-3", schema).strategy is SchemaStrategyType.TOOL_MODE


class TestPrepareRequest:
    """Test the body fragments each strategy produces."""

    def test_json_schema(self, schema, messages):
        body = choose_schema_strategy("openai/gpt-4o", schema).prepare_request(messages)

        json_schema = body["response_format"]["json_schema"]
        assert body["response_format"]["type"] == "json_schema"
        assert json_schema["name"] == "todo_list"
        assert json_schema["strict"] is True
        assert json_schema["schema"]["required"] == ["todos", "owner"]
        assert json_schema["schema"]["additionalProperties"] is False

    def test_json_schema_default_name(self, messages):
        schema = Schema(properties={"a": {"type": "number"}})

        body = choose_schema_strategy("openai/gpt-4o", schema).prepare_request(messages)

        assert body["response_format"]["json_schema"]["name"] == "result"

    def test_json_schema_keeps_extra_keywords(self, messages):
        schema = Schema.model_validate({"properties": {"a": {"type": "number"}}, "$defs": {"x": {}}})

        body = choose_schema_strategy("openai/gpt-4o", schema).prepare_request(messages)

        assert body["response_format"]["json_schema"]["schema"]["$defs"] == {"x": {}}

    def test_tool_mode(self, schema, messages):
        body = choose_schema_strategy("anthropic/claude-3-5-sonnet", schema).prepare_request(messages)

        tool = body["tools"][0]
        assert tool["type"] == "function"
        assert tool["function"]["name"] == "todo_list"
        assert tool["function"]["parameters"]["properties"] == schema.properties
        assert body["tool_choice"] == {"type": "function", "function": {"name": "todo_list"}}

    def test_tool_mode_default_name(self, messages):
        schema = Schema(properties={"a": {"type": "number"}})

        body = choose_schema_strategy("anthropic/claude-3-5-sonnet", schema).prepare_request(messages)

        assert body["tools"][0]["function"]["name"] == "generate_structured_data"

    def test_system_message_prepended(self, schema, messages):
        body = choose_schema_strategy("deepseek/deepseek-chat", schema).prepare_request(messages)

        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert '"todos": array' in body["messages"][0]["content"]
        assert "// Who owns the list" in body["messages"][0]["content"]

    def test_existing_system_message_kept(self, schema):
        messages = [
            Message(role="system", content="Be terse"),
            Message(role="user", content="Go"),
        ]

        body = choose_schema_strategy("deepseek/deepseek-chat", schema).prepare_request(messages)

        assert body["messages"][0]["content"] == "Be terse"
        assert len(body["messages"]) == 2

    def test_no_schema_adds_nothing(self, messages):
        assert choose_schema_strategy("openai/gpt-4o", None).prepare_request(messages) == {}


class TestExtractJson:
    """Test per-strategy JSON recovery."""

    def test_gemini_fenced(self, schema):
        chosen = choose_schema_strategy("google/gemini-pro", schema)

        assert chosen.extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_openai_strips(self, schema):
        chosen = choose_schema_strategy("openai/gpt-4o", schema)

        assert chosen.extract_json('  {"a": 1}\n') == '{"a": 1}'


class TestDescribeSchema:
    def test_defaults_type_to_string(self):
        text = describe_schema(Schema(properties={"title": {}}))

        assert '"title": string' in text
        assert text.startswith("Please return your response as JSON")


class TestUtils:
    """Test shared helpers."""

    def test_recursive_additional_properties(self):
        schema = {
            "type": "object",
            "properties": {
                "owner": {"type": "object", "properties": {"name": {"type": "string"}}},
                "items": {
                    "type": "array",
                    "items": {"type": "object", "properties": {"id": {"type": "integer"}}},
                },
            },
        }

        result = recursively_add_additional_properties(schema)

        assert result["additionalProperties"] is False
        assert result["properties"]["owner"]["additionalProperties"] is False
        assert result["properties"]["owner"]["required"] == ["name"]
        assert result["properties"]["items"]["items"]["required"] == ["id"]
        assert "additionalProperties" not in schema

    def test_explicit_additional_properties_kept(self):
        result = recursively_add_additional_properties({"type": "object", "additionalProperties": True})

        assert result["additionalProperties"] is True

    @pytest.mark.parametrize("text,expected", [
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('Sure:\n```\n[1, 2]\n```\nDone', "[1, 2]"),
        ('  {"plain": true}  ', '{"plain": true}'),
    ])
    def test_extract_fenced_json(self, text, expected):
        assert extract_fenced_json(text) == expected

    def test_join_url_parts(self):
        assert join_url_parts("https://host/", "/api/v1/chat") == "https://host/api/v1/chat"
        assert join_url_parts("https://host", "api") == "https://host/api"
