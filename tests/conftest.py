"""
call-ai - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- SSE byte stream builders for streaming tests
- httpx.MockTransport based clients for end-to-end tests
"""

import json
import os
import pytest
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Union

import httpx
from prometheus_client import CollectorRegistry

from callai.config import Settings, is_truthy
from callai.core.http_client import StreamingHttpClient
from callai.metadata import clear_meta
from callai.observability.metrics import StreamMetrics


RUN_INTEGRATION = is_truthy(os.getenv("RUN_INTEGRATION"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires RUN_INTEGRATION=1)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )

    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)


# ============================================================
# SSE Builders
# ============================================================

def sse(payload: Union[str, Dict[str, Any]]) -> str:
    """Format one SSE event."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


def sse_body(events: Iterable[Union[str, Dict[str, Any]]], done: bool = True) -> bytes:
    """Build a complete SSE body."""
    body = "".join(sse(event) for event in events)
    if done:
        body += sse("[DONE]")
    return body.encode("utf-8")


def split_bytes(data: bytes, size: int) -> List[bytes]:
    """Split bytes into chunks of ``size`` (ignores character boundaries)."""
    return [data[i:i + size] for i in range(0, len(data), size)]


async def byte_stream(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


def openai_chunk(content: Optional[str] = None, finish_reason: Optional[str] = None,
                 tool_arguments: Optional[str] = None) -> Dict[str, Any]:
    """OpenAI/OpenRouter chat.completion.chunk."""
    delta: Dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_arguments is not None:
        delta["tool_calls"] = [{"index": 0, "function": {"arguments": tool_arguments}}]
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "model": "openai/gpt-4o",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def anthropic_text(text: str) -> Dict[str, Any]:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


def anthropic_json(partial_json: str) -> Dict[str, Any]:
    return {"type": "content_block_delta", "index": 0,
            "delta": {"type": "input_json_delta", "partial_json": partial_json}}


def anthropic_stop(stop_reason: str = "end_turn") -> Dict[str, Any]:
    return {"type": "message_delta", "delta": {"stop_reason": stop_reason}}


# ============================================================
# Mock HTTP
# ============================================================

class RecordingTransport:
    """
    Queue of canned responses served through httpx.MockTransport.

    Usage:
        transport.add_stream([openai_chunk("Hi"), openai_chunk(finish_reason="stop")])
        transport.add_json(200, {...})
    """

    def __init__(self):
        self.responses: List[Callable[[httpx.Request], httpx.Response]] = []
        self.requests: List[httpx.Request] = []

    def add_json(self, status_code: int, data: Any, headers: Optional[Dict[str, str]] = None):
        self.responses.append(lambda request: httpx.Response(status_code, json=data, headers=headers))

    def add_text(self, status_code: int, text: str, content_type: str = "text/plain"):
        self.responses.append(
            lambda request: httpx.Response(status_code, text=text, headers={"content-type": content_type})
        )

    def add_stream(self, events: Iterable[Union[str, Dict[str, Any]]], done: bool = True,
                   chunk_size: Optional[int] = None):
        body = sse_body(events, done=done)
        chunks = split_bytes(body, chunk_size) if chunk_size else [body]
        self.add_chunks(chunks)

    def add_chunks(self, chunks: List[bytes]):
        self.responses.append(
            lambda request: httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=byte_stream(chunks),
            )
        )

    def add_broken_stream(self, chunks: List[bytes], exc: Exception):
        """Stream that raises ``exc`` after sending ``chunks``."""
        async def broken() -> AsyncIterator[bytes]:
            for chunk in chunks:
                yield chunk
            raise exc

        self.responses.append(
            lambda request: httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=broken(),
            )
        )

    def add_error(self, exc: Exception):
        def raise_error(request: httpx.Request) -> httpx.Response:
            raise exc
        self.responses.append(raise_error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request to {request.url}")
        return self.responses.pop(0)(request)

    def request_json(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def http_client(transport) -> StreamingHttpClient:
    return StreamingHttpClient(timeout=5.0, transport=httpx.MockTransport(transport.handler))


@pytest.fixture
def metrics() -> StreamMetrics:
    """Metrics on an isolated registry."""
    return StreamMetrics(registry=CollectorRegistry())


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="sk-test-key")


@pytest.fixture
def mock_openai_response():
    """Standard mock OpenAI chat response."""
    return {
        "id": "chatcmpl-test123",
        "object": "chat.completion",
        "created": 1234567890,
        "model": "openai/gpt-4o",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "Hello! I'm a mock response."
                },
                "finish_reason": "stop"
            }
        ],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": 8,
            "total_tokens": 18
        }
    }


@pytest.fixture
def mock_anthropic_response():
    """Standard mock Anthropic response."""
    return {
        "id": "msg-test123",
        "type": "message",
        "role": "assistant",
        "content": [
            {
                "type": "text",
                "text": "Hello! I'm a mock Claude response."
            }
        ],
        "model": "anthropic/claude-3-5-sonnet",
        "stop_reason": "end_turn",
        "usage": {
            "input_tokens": 10,
            "output_tokens": 8
        }
    }


@pytest.fixture(autouse=True)
def reset_metadata():
    """Keep the response metadata store isolated between tests."""
    clear_meta()
    yield
    clear_meta()
