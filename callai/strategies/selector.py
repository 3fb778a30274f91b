"""
call-ai - Schema Strategy Selection

Picks how structured output is requested based on the model name.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..config import DEFAULT_SCHEMA_MODEL, FALLBACK_MODEL
from ..core.models import Message, Schema
from .model_strategies import (
    ModelStrategy,
    claude_strategy,
    default_strategy,
    gemini_strategy,
    openai_strategy,
    system_message_strategy,
)


class SchemaStrategyType(str, Enum):
    """How structured output is requested."""
    JSON_SCHEMA = "json_schema"
    TOOL_MODE = "tool_mode"
    SYSTEM_MESSAGE = "system_message"
    NONE = "none"


@dataclass
class SchemaStrategy:
    """Strategy chosen for one call."""
    strategy: SchemaStrategyType
    model: str
    impl: ModelStrategy
    schema: Optional[Schema] = None

    @property
    def force_stream(self) -> bool:
        return self.impl.force_stream

    @property
    def emit_partial(self) -> bool:
        """Tool-mode arguments are not useful until complete."""
        return self.strategy is not SchemaStrategyType.TOOL_MODE

    @property
    def prefer_tool_arguments(self) -> bool:
        return self.strategy is SchemaStrategyType.TOOL_MODE

    @property
    def schema_requested(self) -> bool:
        return self.strategy is not SchemaStrategyType.NONE

    def prepare_request(self, messages: List[Message]) -> Dict[str, Any]:
        return self.impl.prepare_request(self.schema, messages)

    def extract_json(self, text: str) -> str:
        return self.impl.extract_json(text)


# Checked in order; first match wins
_SCHEMA_RULES: List[Tuple["re.Pattern[str]", SchemaStrategyType, ModelStrategy]] = [
    (re.compile(r"claude", re.I), SchemaStrategyType.TOOL_MODE, claude_strategy),
    (re.compile(r"gemini", re.I), SchemaStrategyType.JSON_SCHEMA, gemini_strategy),
    (re.compile(r"gpt-4-turbo", re.I), SchemaStrategyType.SYSTEM_MESSAGE, system_message_strategy),
    (re.compile(r"openai|gpt", re.I), SchemaStrategyType.JSON_SCHEMA, openai_strategy),
    (re.compile(r"llama-3|deepseek", re.I), SchemaStrategyType.SYSTEM_MESSAGE, system_message_strategy),
]


def choose_schema_strategy(model: Optional[str], schema: Optional[Schema]) -> SchemaStrategy:
    """
    Choose the schema strategy for a model.

    Without a model, ``openai/gpt-4o`` is used for schema calls and
    ``openrouter/auto`` otherwise. Unknown models with a schema fall back to
    the system message strategy.
    """
    resolved_model = model or (DEFAULT_SCHEMA_MODEL if schema is not None else FALLBACK_MODEL)

    if schema is None:
        return SchemaStrategy(SchemaStrategyType.NONE, resolved_model, default_strategy)

    for pattern, strategy_type, impl in _SCHEMA_RULES:
        if pattern.search(resolved_model):
            return SchemaStrategy(strategy_type, resolved_model, impl, schema)

    return SchemaStrategy(
        SchemaStrategyType.SYSTEM_MESSAGE, resolved_model, system_message_strategy, schema
    )
