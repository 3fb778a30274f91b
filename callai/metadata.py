"""
call-ai - Response Metadata

Timing and routing information for a call, looked up after the fact with
``get_meta``.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ResponseMeta:
    """Metadata for one call."""
    model: str
    endpoint: str = ""
    request_id: str = ""
    strategy: str = "none"
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    duration: Optional[float] = None  # seconds
    finish_reason: Optional[str] = None
    fallback_from: Optional[str] = None
    raw_response: Any = None

    def complete(self, raw_response: Any = None, finish_reason: Optional[str] = None) -> "ResponseMeta":
        self.end_time = time.time()
        self.duration = self.end_time - self.start_time
        if raw_response is not None:
            self.raw_response = raw_response
        if finish_reason is not None:
            self.finish_reason = finish_reason
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "endpoint": self.endpoint,
            "request_id": self.request_id,
            "strategy": self.strategy,
            "timing": {
                "start_time": self.start_time,
                "end_time": self.end_time,
                "duration": self.duration,
            },
            "finish_reason": self.finish_reason,
            "fallback_from": self.fallback_from,
        }


class ResponseMetaStore:
    """
    Bounded lookup from returned values to their metadata.

    Keyed by string value, so only string results (plain text, or the final
    snapshot of a stream) can be looked up. Oldest entries are evicted first.
    """

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, ResponseMeta]" = OrderedDict()

    def register(self, value: Any, meta: ResponseMeta) -> None:
        if not isinstance(value, str):
            return
        self._entries[value] = meta
        self._entries.move_to_end(value)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def get(self, value: Any) -> Optional[ResponseMeta]:
        if not isinstance(value, str):
            return None
        return self._entries.get(value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


_store = ResponseMetaStore()


def register_meta(value: Any, meta: ResponseMeta) -> None:
    _store.register(value, meta)


def get_meta(response: Any) -> Optional[ResponseMeta]:
    """
    Get metadata for a call result.

    Accepts a StreamResponse (anything with a ``meta`` attribute) or a
    string returned by ``call_ai``.
    """
    if isinstance(response, str):
        return _store.get(response)
    meta = getattr(response, "meta", None)
    if isinstance(meta, ResponseMeta):
        return meta
    return None


def clear_meta() -> None:
    _store.clear()
