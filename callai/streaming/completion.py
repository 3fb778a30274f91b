"""
call-ai - Completion Detector

Finalizes the accumulation buffer exactly once, on the vendor finish signal.
Structured output is parsed here and nowhere earlier.
"""

import json
from typing import Optional

from ..core.errors import InvalidStructuredResponseError
from ..observability.logging import get_logger
from .accumulator import AccumulationBuffer
from .models import FinalizedResult, StreamConfig

logger = get_logger(__name__)


# Vendor finish reasons -> normalized reasons
FINISH_REASON_MAP = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "function_call": "tool_calls",
    "max_tokens": "length",
}


def normalize_finish_reason(reason: Optional[str]) -> str:
    if not reason:
        return "stop"
    return FINISH_REASON_MAP.get(reason, reason)


class CompletionDetector:
    """Single finalization point for one request."""

    def __init__(self, config: StreamConfig):
        self.config = config
        self.result: Optional[FinalizedResult] = None

    @property
    def finalized(self) -> bool:
        return self.result is not None

    def finalize(self, buffer: AccumulationBuffer, finish_reason: Optional[str]) -> Optional[FinalizedResult]:
        """
        Finalize the buffer.

        Every finish reason takes the same path. When the config prefers
        tool arguments and any were streamed, they replace the text buffer.

        Returns:
            The FinalizedResult, or None when the buffer was already finalized.

        Raises:
            InvalidStructuredResponseError: a schema was requested and the
                finalized text is not valid JSON
        """
        if buffer.is_finalized:
            return None
        buffer.is_finalized = True

        reason = normalize_finish_reason(finish_reason)
        text = buffer.final_text(self.config.prefer_tool_arguments)

        if not self.config.schema_requested:
            result = FinalizedResult(text=text, value=text, finish_reason=reason)
        else:
            candidate = self.config.extract_json(text)
            try:
                value = json.loads(candidate)
            except json.JSONDecodeError as e:
                raise InvalidStructuredResponseError(
                    raw_text=text,
                    reason=str(e),
                    finish_reason=reason,
                    request_id=self.config.request_id,
                )
            result = FinalizedResult(text=candidate, value=value, finish_reason=reason)

        logger.trace(
            self.config.debug,
            "Buffer finalized",
            finish_reason=reason,
            vendor_finish_reason=finish_reason,
            length=len(result.text),
        )
        self.result = result
        return result
