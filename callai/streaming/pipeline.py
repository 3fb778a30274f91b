"""
call-ai - Stream Pipeline

Wires classifier, accumulator and completion detector for one request.
"""

from typing import Dict, Optional

from ..core.errors import StreamInterruptedError
from ..observability.logging import get_logger
from ..observability.metrics import StreamMetrics
from .accumulator import AccumulationBuffer, TextAccumulator
from .classifier import classify_event
from .completion import CompletionDetector
from .models import FinalizedResult, FragmentKind, SSEEvent, StreamConfig

logger = get_logger(__name__)


class StreamPipeline:
    """
    Per-request pipeline state.

    Owns exactly one buffer; events fed after finalization are dropped.
    """

    def __init__(self, config: StreamConfig, metrics: Optional[StreamMetrics] = None):
        self.config = config
        self.metrics = metrics
        self.accumulator = TextAccumulator(config)
        self.detector = CompletionDetector(config)
        self.fragment_counts: Dict[FragmentKind, int] = {kind: 0 for kind in FragmentKind}

    @property
    def buffer(self) -> AccumulationBuffer:
        return self.accumulator.buffer

    @property
    def finalized(self) -> bool:
        return self.detector.finalized

    @property
    def result(self) -> Optional[FinalizedResult]:
        return self.detector.result

    def feed_event(self, event: SSEEvent) -> Optional[str]:
        """
        Process one event.

        Returns:
            The snapshot to emit, or None. After a finish signal this is the
            finalized text; intermediate snapshots are returned only when
            the config allows partial emission.
        """
        if self.buffer.is_finalized:
            logger.trace(self.config.debug, "Dropping event after finalization")
            return None

        fragment = classify_event(event, self.config)
        self.fragment_counts[fragment.kind] += 1
        if self.metrics is not None:
            self.metrics.record_event(fragment.kind.value)

        if fragment.kind is FragmentKind.IGNORED:
            return None

        snapshot = self.accumulator.append(fragment)

        if fragment.kind is FragmentKind.FINISH:
            result = self.detector.finalize(self.buffer, fragment.finish_reason)
            if self.metrics is not None:
                self.metrics.record_finalization(result.finish_reason)
            return result.text

        return snapshot if self.config.emit_partial else None

    def finish_on_close(self) -> FinalizedResult:
        """
        Handle transport close.

        Without a finish signal, a structured call is incomplete and raises
        StreamInterruptedError; a plain-text call finalizes as ``stop``.
        """
        if self.detector.result is not None:
            return self.detector.result

        if self.config.schema_requested:
            raise StreamInterruptedError(
                partial_content=self.buffer.text,
                message="Stream closed before a finish signal; structured response is incomplete",
                request_id=self.config.request_id,
            )

        logger.trace(self.config.debug, "Stream closed without finish signal, finalizing as stop")
        result = self.detector.finalize(self.buffer, "stop")
        if self.metrics is not None:
            self.metrics.record_finalization(result.finish_reason)
        return result
