"""
call-ai - HTTP Client

Thin async transport over httpx:
- One POST per call, no retries (retry and key refresh belong to the caller)
- Streaming responses are status-checked before the body is handed out
- Request correlation (request_id logging) with secret redaction
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from ..observability.logging import get_logger
from .errors import (
    RateLimitedError,
    error_from_response,
    handle_transport_error,
)

logger = get_logger(__name__)

_REDACTED_KEYS = ("api_key", "key", "token", "secret", "password", "authorization")


@dataclass
class RequestContext:
    """Context for tracking one request through the client."""
    request_id: str = field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")
    step_name: str = ""
    model: str = ""
    debug: bool = False

    def to_log_extra(self) -> Dict[str, str]:
        return {"request_id": self.request_id, "model": self.model}


@dataclass
class HttpResponse:
    """Decoded JSON response with timing."""
    status_code: int
    data: Any
    headers: Dict[str, str]
    request_id: str
    latency_ms: float


def summarize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Create a safe payload summary for logs (no secrets, no full prompts)."""
    summary: Dict[str, Any] = {}
    for key, value in payload.items():
        if key.lower() in _REDACTED_KEYS:
            summary[key] = "***REDACTED***"
        elif key == "messages" and isinstance(value, list):
            summary[key] = f"[{len(value)} messages]"
        elif isinstance(value, str) and len(value) > 100:
            summary[key] = f"{value[:50]}...({len(value)} chars)"
        else:
            summary[key] = value
    return summary


def _retry_after(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("retry-after")
    if value and value.isdigit():
        return int(value)
    return None


class StreamingHttpClient:
    """
    Async HTTP client for chat completion endpoints.

    Usage:
        async with StreamingHttpClient(timeout=30) as client:
            response = await client.open_stream(url, body, headers, ctx)
            async for chunk in response.aiter_bytes():
                ...
            await response.aclose()
    """

    def __init__(
        self,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.timeout = timeout
        self.transport = transport
        self.default_headers = headers or {}
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.default_headers,
                transport=self.transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "StreamingHttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _log_request_start(self, ctx: RequestContext, url: str, body: Dict[str, Any], streaming: bool):
        logger.info(
            f"STEP [{ctx.step_name}] POST {url}",
            streaming=streaming,
            **ctx.to_log_extra()
        )
        logger.trace(ctx.debug, "Request payload", payload=summarize_payload(body), **ctx.to_log_extra())

    def _log_response(self, ctx: RequestContext, status: int, latency_ms: float):
        log = logger.info if status < 400 else logger.warning
        log(
            f"STEP [{ctx.step_name}] Response: status={status}, latency={latency_ms:.0f}ms",
            status_code=status,
            latency_ms=round(latency_ms, 2),
            **ctx.to_log_extra()
        )

    def _merge_headers(self, headers: Optional[Dict[str, str]], ctx: RequestContext) -> Dict[str, str]:
        merged = {**self.default_headers, **(headers or {})}
        merged.setdefault("X-Request-ID", ctx.request_id)
        return merged

    async def _raise_for_response(self, response: httpx.Response, ctx: RequestContext):
        body = await response.aread()
        error = error_from_response(
            response.status_code,
            body.decode("utf-8", errors="replace"),
            model=ctx.model,
            request_id=ctx.request_id,
            content_type=response.headers.get("content-type", ""),
            status_text=response.reason_phrase,
        )
        if isinstance(error, RateLimitedError):
            retry_after = _retry_after(response)
            if retry_after is not None:
                error.error.retry_after = retry_after
        raise error

    async def open_stream(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        ctx: Optional[RequestContext] = None,
    ) -> httpx.Response:
        """
        Send a streaming POST and return the open response.

        The caller owns the response and must ``aclose()`` it.

        Raises:
            CallAIError: non-2xx status, a JSON body instead of an event
                stream, or a network failure before the body started
        """
        ctx = ctx or RequestContext(step_name="open_stream")
        client = await self._get_client()
        self._log_request_start(ctx, url, body, streaming=True)

        start_time = time.perf_counter()
        request = client.build_request("POST", url, json=body, headers=self._merge_headers(headers, ctx))
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise handle_transport_error(e, ctx.request_id) from e

        self._log_response(ctx, response.status_code, (time.perf_counter() - start_time) * 1000)

        content_type = response.headers.get("content-type", "")
        if response.status_code >= 400 or "application/json" in content_type:
            try:
                await self._raise_for_response(response, ctx)
            except httpx.HTTPError as e:
                raise handle_transport_error(e, ctx.request_id) from e
            finally:
                await response.aclose()

        return response

    async def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        ctx: Optional[RequestContext] = None,
    ) -> HttpResponse:
        """
        Send a POST and decode the JSON response.

        Raises:
            CallAIError: non-2xx status, a body that is not JSON, or a
                network failure
        """
        ctx = ctx or RequestContext(step_name="post_json")
        client = await self._get_client()
        self._log_request_start(ctx, url, body, streaming=False)

        start_time = time.perf_counter()
        try:
            response = await client.post(url, json=body, headers=self._merge_headers(headers, ctx))
            latency_ms = (time.perf_counter() - start_time) * 1000
            self._log_response(ctx, response.status_code, latency_ms)

            if response.status_code >= 400:
                await self._raise_for_response(response, ctx)
        except httpx.HTTPError as e:
            raise handle_transport_error(e, ctx.request_id) from e

        try:
            data = response.json()
        except ValueError:
            raise error_from_response(
                response.status_code,
                response.text,
                model=ctx.model,
                request_id=ctx.request_id,
                content_type=response.headers.get("content-type", ""),
            )

        return HttpResponse(
            status_code=response.status_code,
            data=data,
            headers=dict(response.headers),
            request_id=ctx.request_id,
            latency_ms=latency_ms,
        )
