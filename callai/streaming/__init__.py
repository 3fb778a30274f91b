"""
call-ai Streaming Module

Decodes server-sent events and normalizes vendor deltas into cumulative
snapshots with a single finalization.
"""

from .models import (
    SSEEvent,
    FragmentKind,
    DeltaFragment,
    FinalizedResult,
    StreamConfig,
)
from .decoder import SSEDecoder, decode_sse_stream
from .classifier import VendorShape, classify_event
from .accumulator import AccumulationBuffer, TextAccumulator
from .completion import CompletionDetector, normalize_finish_reason
from .pipeline import StreamPipeline
from .emitter import StreamResponse

__all__ = [
    "SSEEvent",
    "FragmentKind",
    "DeltaFragment",
    "FinalizedResult",
    "StreamConfig",
    "SSEDecoder",
    "decode_sse_stream",
    "VendorShape",
    "classify_event",
    "AccumulationBuffer",
    "TextAccumulator",
    "CompletionDetector",
    "normalize_finish_reason",
    "StreamPipeline",
    "StreamResponse",
]
