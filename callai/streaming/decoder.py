"""
call-ai - SSE Chunk Decoder

Turns the raw byte stream of a server-sent-events response into SSEEvents.

- Streaming-aware UTF-8: a multi-byte character split across reads is held
  back until its remaining bytes arrive
- Events are separated by a blank line; CRLF framing is accepted
- ``:`` comment lines and lines without a ``data:`` field are skipped
- ``data: [DONE]`` ends the sequence
"""

import codecs
from typing import AsyncIterable, AsyncIterator, List, Optional

from ..core.errors import StreamDecodeError
from .models import DONE_SENTINEL, SSEEvent


class SSEDecoder:
    """
    Incremental SSE decoder for one response.

    Usage:
        decoder = SSEDecoder()
        for chunk in chunks:
            for event in decoder.feed(chunk):
                ...
        remaining = decoder.flush()
    """

    def __init__(self, request_id: str = ""):
        self.request_id = request_id
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="strict")
        self._buffer = ""
        self._done = False
        self.events_decoded = 0

    @property
    def done(self) -> bool:
        """True once ``[DONE]`` was seen."""
        return self._done

    def feed(self, chunk: bytes) -> List[SSEEvent]:
        """Decode one chunk and return every event it completed."""
        if self._done or not chunk:
            return []

        try:
            text = self._utf8.decode(chunk)
        except UnicodeDecodeError as e:
            raise StreamDecodeError(
                f"Invalid UTF-8 in event stream: {e.reason}",
                request_id=self.request_id,
            )

        self._append(text)
        return self._drain()

    def flush(self) -> List[SSEEvent]:
        """
        Finish decoding at stream close.

        A trailing event without the closing blank line is still returned.
        """
        if self._done:
            return []

        try:
            text = self._utf8.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise StreamDecodeError(
                f"Event stream ended inside a UTF-8 sequence: {e.reason}",
                request_id=self.request_id,
            )

        self._append(text)
        if self._buffer.endswith("\r"):
            self._buffer = self._buffer[:-1] + "\n"

        events = self._drain()
        if self._done:
            return events

        remainder, self._buffer = self._buffer, ""
        if remainder.strip():
            event = self._parse_block(remainder)
            if event is not None:
                if event.data == DONE_SENTINEL:
                    self._done = True
                else:
                    self.events_decoded += 1
                    events.append(event)
        return events

    def _append(self, text: str) -> None:
        # A trailing CR may be the first half of a CRLF pair
        self._buffer += text
        pending_cr = self._buffer.endswith("\r")
        body = self._buffer[:-1] if pending_cr else self._buffer
        body = body.replace("\r\n", "\n").replace("\r", "\n")
        self._buffer = body + ("\r" if pending_cr else "")

    def _drain(self) -> List[SSEEvent]:
        events: List[SSEEvent] = []
        while "\n\n" in self._buffer:
            block, self._buffer = self._buffer.split("\n\n", 1)
            event = self._parse_block(block)
            if event is None:
                continue
            if event.data == DONE_SENTINEL:
                self._done = True
                self._buffer = ""
                break
            self.events_decoded += 1
            events.append(event)
        return events

    @staticmethod
    def _parse_block(block: str) -> Optional[SSEEvent]:
        data_lines: List[str] = []
        event_type: Optional[str] = None

        for line in block.split("\n"):
            if not line or line.startswith(":"):
                continue
            if line.startswith("data:"):
                value = line[5:]
                data_lines.append(value[1:] if value.startswith(" ") else value)
            elif line.startswith("event:"):
                event_type = line[6:].strip() or None
            # id:, retry: and malformed lines carry nothing we use

        if not data_lines:
            return None
        return SSEEvent(data="\n".join(data_lines).strip(), event_type=event_type)


async def decode_sse_stream(
    chunks: AsyncIterable[bytes],
    request_id: str = "",
) -> AsyncIterator[SSEEvent]:
    """Decode an async byte stream into SSEEvents, stopping at ``[DONE]``."""
    decoder = SSEDecoder(request_id=request_id)

    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
        if decoder.done:
            return

    for event in decoder.flush():
        yield event
