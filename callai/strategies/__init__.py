"""
call-ai - Schema Strategies
"""

from .model_strategies import (
    ClaudeStrategy,
    DefaultStrategy,
    GeminiStrategy,
    ModelStrategy,
    OpenAIStrategy,
    SystemMessageStrategy,
    describe_schema,
)
from .selector import SchemaStrategy, SchemaStrategyType, choose_schema_strategy

__all__ = [
    "ClaudeStrategy",
    "DefaultStrategy",
    "GeminiStrategy",
    "ModelStrategy",
    "OpenAIStrategy",
    "SystemMessageStrategy",
    "describe_schema",
    "SchemaStrategy",
    "SchemaStrategyType",
    "choose_schema_strategy",
]
