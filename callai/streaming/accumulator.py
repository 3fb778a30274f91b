"""
call-ai - Incremental Text Accumulator

Appends fragment text verbatim. Nothing here parses the buffer: it may hold
invalid JSON (a key split mid-token, an open string) until finalization.
"""

from dataclasses import dataclass

from ..observability.logging import get_logger
from .models import DeltaFragment, StreamConfig

logger = get_logger(__name__)


@dataclass
class AccumulationBuffer:
    """Cumulative text of one request."""
    text: str = ""
    tool_arguments: str = ""      # Tool-call argument text only
    is_finalized: bool = False

    def final_text(self, prefer_tool_arguments: bool = False) -> str:
        """Text to finalize; tool arguments replace any preamble when preferred."""
        if prefer_tool_arguments and self.tool_arguments:
            return self.tool_arguments
        return self.text


class TextAccumulator:
    """Owns the single AccumulationBuffer of one request."""

    def __init__(self, config: StreamConfig):
        self.config = config
        self.buffer = AccumulationBuffer()
        self.fragments_seen = 0
        self.content_started = False

    def append(self, fragment: DeltaFragment) -> str:
        """Append the fragment's text and return the cumulative text."""
        self.fragments_seen += 1

        if self.buffer.is_finalized:
            logger.trace(
                self.config.debug,
                "Ignoring fragment after finalization",
                kind=fragment.kind.value,
            )
            return self.snapshot()

        if fragment.appends_text:
            self.buffer.text += fragment.text
            if fragment.is_tool_arguments:
                self.buffer.tool_arguments += fragment.text
            self.content_started = True

        return self.snapshot()

    def snapshot(self) -> str:
        return self.buffer.final_text(self.config.prefer_tool_arguments)
