"""
call-ai - Configuration

Environment-backed defaults. Options passed to a call always win over the
values read here.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional


DEFAULT_ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"
CHAT_COMPLETIONS_PATH = "/api/v1/chat/completions"
FALLBACK_MODEL = "openrouter/auto"
DEFAULT_SCHEMA_MODEL = "openai/gpt-4o"
DEFAULT_REFERER = "https://vibes.diy"
DEFAULT_TITLE = "Vibes"
DEFAULT_TIMEOUT = 120.0


class LogFormat(str, Enum):
    """Log output format."""

    JSON = "json"
    TEXT = "text"


def is_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_log_format() -> LogFormat:
    """
    Get the configured log format.

    Default: json. Any value other than json selects text output.
    """
    value = os.getenv("LOG_FORMAT", "json").lower().strip()
    if value == "json":
        return LogFormat.JSON
    return LogFormat.TEXT


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: expected a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"Invalid {name}: must be positive")
    return value


@dataclass
class Settings:
    """Process environment snapshot used to fill in unset call options."""

    api_key: Optional[str] = None
    chat_url: Optional[str] = None
    endpoint: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_key=os.getenv("CALLAI_API_KEY") or os.getenv("OPENROUTER_API_KEY") or None,
            chat_url=os.getenv("CALLAI_CHAT_URL") or None,
            endpoint=os.getenv("CALLAI_ENDPOINT") or None,
            timeout=_get_float("CALLAI_TIMEOUT", DEFAULT_TIMEOUT),
            debug=is_truthy(os.getenv("CALLAI_DEBUG")),
        )


def get_settings() -> Settings:
    """Read settings from the environment (not cached, so tests can monkeypatch)."""
    return Settings.from_env()
