"""
call-ai - Stream Data Model

Values flowing through the streaming pipeline:

    bytes -> SSEEvent -> DeltaFragment -> AccumulationBuffer -> FinalizedResult
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class SSEEvent:
    """One decoded server-sent event."""
    data: str
    event_type: Optional[str] = None


class FragmentKind(str, Enum):
    """Classification of a single stream event."""
    CONTENT = "content"                  # Text delta
    TOOL_CALL_DELTA = "tool_call_delta"  # Partial tool/function arguments
    FINISH = "finish"                    # Vendor finish signal
    IGNORED = "ignored"                  # Keep-alive, metadata, unknown shapes


@dataclass(frozen=True)
class DeltaFragment:
    """
    Result of classifying one SSEEvent.

    ``text`` is set for content and tool_call_delta fragments, and for
    finish fragments whose event also carried a final text delta.
    ``finish_reason`` is set for finish fragments only. ``tool_arguments``
    marks a finish fragment whose text came from a tool call.
    """
    kind: FragmentKind
    text: Optional[str] = None
    finish_reason: Optional[str] = None
    tool_arguments: bool = False

    @classmethod
    def ignored(cls) -> "DeltaFragment":
        return cls(FragmentKind.IGNORED)

    @property
    def appends_text(self) -> bool:
        return bool(self.text) and self.kind is not FragmentKind.IGNORED

    @property
    def is_tool_arguments(self) -> bool:
        return self.kind is FragmentKind.TOOL_CALL_DELTA or self.tool_arguments


@dataclass
class FinalizedResult:
    """The single completed result of one request."""
    text: str                     # Finalized (and, for schema calls, extracted) text
    value: Any                    # Parsed JSON for schema calls, otherwise the text
    finish_reason: str            # Normalized finish reason


@dataclass
class StreamConfig:
    """
    Per-call configuration shared by every pipeline stage.

    Created once per request; nothing here is process-wide.
    """
    model: str = ""
    request_id: str = field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")
    debug: bool = False

    # Structured output
    schema_requested: bool = False
    strategy: str = "none"
    json_extractor: Optional[Callable[[str], str]] = None

    # Emit intermediate snapshots (False for tool-mode schema calls)
    emit_partial: bool = True

    # Finalize from tool-call arguments alone when any were streamed
    prefer_tool_arguments: bool = False

    def extract_json(self, text: str) -> str:
        if self.json_extractor is None:
            return text.strip()
        return self.json_extractor(text)
