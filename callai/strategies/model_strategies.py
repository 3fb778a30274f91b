"""
call-ai - Model Strategies

How each model family is asked for structured output, and how the JSON is
recovered from its answer:

- OPENAI: ``response_format.json_schema`` in strict mode
- GEMINI: same request, answer may arrive inside a fenced code block
- CLAUDE: a forced tool call whose arguments are the JSON
- SYSTEM_MESSAGE: schema described in a prepended system message
- DEFAULT: no schema, text passes through
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..core.models import Message, Schema
from ..utils import extract_fenced_json, recursively_add_additional_properties

DEFAULT_TOOL_NAME = "generate_structured_data"
DEFAULT_SCHEMA_NAME = "result"


def _object_schema(schema: Schema) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": schema.properties,
        "required": schema.required_fields(),
        "additionalProperties": (
            schema.additional_properties if schema.additional_properties is not None else False
        ),
    }


class ModelStrategy(ABC):
    """Base class for per-model structured output handling."""

    name: str = "base"
    force_stream: bool = False

    @abstractmethod
    def prepare_request(self, schema: Optional[Schema], messages: List[Message]) -> Dict[str, Any]:
        """Return request body fields to merge into the chat completion body."""
        pass

    def extract_json(self, text: str) -> str:
        return text.strip()


class OpenAIStrategy(ModelStrategy):
    name = "openai"

    def prepare_request(self, schema: Optional[Schema], messages: List[Message]) -> Dict[str, Any]:
        if schema is None:
            raise ValueError(f"{self.name} strategy requires a schema")

        processed = _object_schema(schema)
        processed.update({
            key: value for key, value in schema.extra_keywords.items() if key not in processed
        })

        return {
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.name or DEFAULT_SCHEMA_NAME,
                    "strict": True,
                    "schema": recursively_add_additional_properties(processed),
                },
            },
        }


class GeminiStrategy(OpenAIStrategy):
    name = "gemini"

    def extract_json(self, text: str) -> str:
        return extract_fenced_json(text)


class ClaudeStrategy(ModelStrategy):
    """Tool mode: the model is forced to call a tool whose parameters are the schema."""

    name = "anthropic"
    force_stream = True

    def prepare_request(self, schema: Optional[Schema], messages: List[Message]) -> Dict[str, Any]:
        if schema is None:
            raise ValueError(f"{self.name} strategy requires a schema")

        tool_name = schema.name or DEFAULT_TOOL_NAME
        return {
            "tools": [
                {
                    "type": "function",
                    "function": {
                        "name": tool_name,
                        "description": "Generate data according to the required schema",
                        "parameters": _object_schema(schema),
                    },
                }
            ],
            "tool_choice": {"type": "function", "function": {"name": tool_name}},
        }

    def extract_json(self, text: str) -> str:
        return extract_fenced_json(text)


class SystemMessageStrategy(ModelStrategy):
    """Describe the schema in a system message for models without native support."""

    name = "system_message"

    def prepare_request(self, schema: Optional[Schema], messages: List[Message]) -> Dict[str, Any]:
        if schema is None or any(message.role == "system" for message in messages):
            return {"messages": [message.to_dict() for message in messages]}

        system = Message(role="system", content=describe_schema(schema))
        return {"messages": [system.to_dict()] + [message.to_dict() for message in messages]}

    def extract_json(self, text: str) -> str:
        return extract_fenced_json(text)


class DefaultStrategy(ModelStrategy):
    name = "default"

    def prepare_request(self, schema: Optional[Schema], messages: List[Message]) -> Dict[str, Any]:
        return {}


def describe_schema(schema: Schema) -> str:
    """Render the schema as the instruction text used by the system message strategy."""
    lines = []
    for key, value in schema.properties.items():
        value = value if isinstance(value, dict) else {}
        description = f" // {value['description']}" if value.get("description") else ""
        lines.append(f'  "{key}": {value.get("type") or "string"}{description}')

    return (
        "Please return your response as JSON following this schema exactly:\n"
        "{\n" + ",\n".join(lines) + "\n}\n"
        "Do not include any explanation or text outside of the JSON object."
    )


openai_strategy = OpenAIStrategy()
gemini_strategy = GeminiStrategy()
claude_strategy = ClaudeStrategy()
system_message_strategy = SystemMessageStrategy()
default_strategy = DefaultStrategy()
