"""
call-ai - Result Emitter

StreamResponse exposes one request's stream as an async iterator of
cumulative snapshots:

    async for snapshot in response:
        render(snapshot)          # each snapshot replaces the previous one
    response.result.value         # finalized text, or parsed JSON for schema calls

The iterator is single-pass and single-consumer. The last snapshot is the
finalized text. Errors from transport, decoding and classification
propagate out of the ``async for``.
"""

import time
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Optional

import httpx

from ..core.errors import CallAIError, StreamInterruptedError, handle_transport_error
from ..metadata import ResponseMeta, register_meta
from ..observability.logging import get_logger
from ..observability.metrics import StreamMetrics
from ..observability.tracing import ModelCallSpan
from .decoder import decode_sse_stream
from .models import FinalizedResult, StreamConfig
from .pipeline import StreamPipeline

logger = get_logger(__name__)


class StreamResponse:
    """Single-consumer async iterator over one streaming response."""

    def __init__(
        self,
        chunks: AsyncIterable[bytes],
        config: StreamConfig,
        meta: Optional[ResponseMeta] = None,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
        metrics: Optional[StreamMetrics] = None,
        span: Optional[ModelCallSpan] = None,
    ):
        self.config = config
        self.meta = meta or ResponseMeta(model=config.model, request_id=config.request_id)
        self.pipeline = StreamPipeline(config, metrics=metrics)
        self._chunks = chunks
        self._on_close = on_close
        self._metrics = metrics
        self._span = span
        self._iterator: Optional[AsyncIterator[str]] = None
        self._closed = False
        self._started_at = time.perf_counter()
        self._first_snapshot_at: Optional[float] = None

    @property
    def result(self) -> Optional[FinalizedResult]:
        """The finalized result once iteration completed, else None."""
        return self.pipeline.result

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[str]:
        if self._iterator is not None:
            raise RuntimeError("StreamResponse can only be iterated once")
        self._iterator = self._run()
        return self._iterator

    async def __aenter__(self) -> "StreamResponse":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def collect(self) -> Any:
        """Drain the stream and return the finalized value."""
        async for _ in self:
            pass
        return self.pipeline.result.value

    async def aclose(self) -> None:
        """Stop consuming; no finalization happens for an abandoned stream."""
        if self._iterator is not None:
            await self._iterator.aclose()
        await self._close_transport()

    async def _run(self) -> AsyncIterator[str]:
        last_emitted: Optional[str] = None
        error: Optional[BaseException] = None
        tracker = self._metrics.track_active_stream() if self._metrics is not None else None
        if tracker is not None:
            tracker.__enter__()

        try:
            async for event in decode_sse_stream(self._chunks, request_id=self.config.request_id):
                snapshot = self.pipeline.feed_event(event)
                if self.pipeline.finalized:
                    break
                if snapshot is not None and snapshot != last_emitted:
                    self._mark_first_snapshot()
                    last_emitted = snapshot
                    yield snapshot

            result = self.pipeline.finish_on_close()
        except httpx.HTTPError as exc:
            error = self._transport_failure(exc)
            self._record_failure(error)
            raise error from exc
        except CallAIError as exc:
            error = exc
            self._record_failure(exc)
            raise
        finally:
            if tracker is not None:
                tracker.__exit__(None, None, None)
            await self._close_transport(error)

        self._record_success(result)
        if result.text != last_emitted:
            self._mark_first_snapshot()
            yield result.text

    def _transport_failure(self, exc: httpx.HTTPError) -> CallAIError:
        error = handle_transport_error(exc, self.config.request_id)
        if self.pipeline.accumulator.content_started:
            return StreamInterruptedError(
                partial_content=self.pipeline.buffer.text,
                message=f"Stream interrupted: {error.message}",
                request_id=self.config.request_id,
            )
        return error

    def _mark_first_snapshot(self) -> None:
        if self._first_snapshot_at is not None:
            return
        self._first_snapshot_at = time.perf_counter()
        if self._metrics is not None:
            self._metrics.record_time_to_first_snapshot(
                self.config.model, self._first_snapshot_at - self._started_at
            )

    def _record_success(self, result: FinalizedResult) -> None:
        self.meta.complete(raw_response=result.text, finish_reason=result.finish_reason)
        register_meta(result.text, self.meta)

        logger.info(
            "Stream finalized",
            request_id=self.config.request_id,
            model=self.config.model,
            finish_reason=result.finish_reason,
            events=sum(self.pipeline.fragment_counts.values()),
            duration_ms=round((self.meta.duration or 0) * 1000, 2),
        )
        if self._metrics is not None:
            self._metrics.record_request(
                model=self.config.model,
                strategy=self.config.strategy,
                streaming=True,
                outcome="success",
                duration_seconds=self.meta.duration,
            )

    def _record_failure(self, error: CallAIError) -> None:
        logger.warning(
            "Stream failed",
            request_id=self.config.request_id,
            model=self.config.model,
            error_code=error.error.code,
            error_message=error.message,
        )
        if self._metrics is not None:
            self._metrics.record_failure(error.error.code)
            self._metrics.record_request(
                model=self.config.model,
                strategy=self.config.strategy,
                streaming=True,
                outcome=error.error.code,
            )

    async def _close_transport(self, error: Optional[BaseException] = None) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._on_close is not None:
                await self._on_close()
        finally:
            if self._span is not None:
                if error is None and self.pipeline.result is None:
                    # Abandoned before a finish signal
                    self._span.cancel()
                else:
                    self._span.end(error)
