"""
call-ai - Streaming AI Client

Async client for OpenAI, OpenRouter and Anthropic compatible chat completion
endpoints, with streaming responses normalized into cumulative snapshots and
structured (JSON schema) output.
"""

__version__ = "0.1.0"

from .api import build_request, call_ai
from .config import FALLBACK_MODEL, Settings
from .core.errors import (
    CallAIError,
    InvalidModelError,
    InvalidStructuredResponseError,
    StreamAPIError,
    StreamDecodeError,
    StreamInterruptedError,
    TransportError,
)
from .core.models import CallOptions, Message, Schema
from .metadata import ResponseMeta, get_meta
from .streaming.emitter import StreamResponse

__all__ = [
    "call_ai",
    "build_request",
    "FALLBACK_MODEL",
    "Settings",
    "CallAIError",
    "InvalidModelError",
    "InvalidStructuredResponseError",
    "StreamAPIError",
    "StreamDecodeError",
    "StreamInterruptedError",
    "TransportError",
    "CallOptions",
    "Message",
    "Schema",
    "ResponseMeta",
    "get_meta",
    "StreamResponse",
]
