"""
call-ai - Error Definitions

Error taxonomy for the streaming client with infra vs semantic classification.

- Transport errors: non-2xx status or network failure, surfaced immediately
- Decode errors: broken UTF-8 or an event payload that is not JSON
- Vendor errors: an error object delivered in-band by the endpoint
- Structured-parse errors: the finalized text is not valid JSON although a
  schema was requested

Every error carries ``{message, status, context}`` so that callers (key
refresh, model fallback) can enrich or react to it. The core never retries.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"


@dataclass
class ErrorDetails:
    """Full error information handed to the caller."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType

    # Context fields
    status: Optional[int] = None
    model: Optional[str] = None
    request_id: str = ""

    # Recovery fields
    retryable: bool = False
    retry_after: Optional[int] = None
    partial_content: Optional[str] = None

    # Debug fields
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "retryable": self.retryable,
        }

        if self.status is not None:
            result["status"] = self.status
        if self.model:
            result["model"] = self.model
        if self.request_id:
            result["request_id"] = self.request_id
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.partial_content:
            result["partial_content"] = self.partial_content
        if self.context:
            result["context"] = self.context

        return {"error": result}


class CallAIError(Exception):
    """Base exception for all call-ai errors."""

    def __init__(self, error: ErrorDetails):
        self.error = error
        super().__init__(error.message)

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def status(self) -> Optional[int]:
        return self.error.status

    @property
    def context(self) -> Dict[str, Any]:
        return self.error.context

    @property
    def retryable(self) -> bool:
        return self.error.retryable

    def to_dict(self) -> Dict[str, Any]:
        return self.error.to_dict()


class InfraError(CallAIError):
    """Base class for transport and stream infrastructure failures."""
    pass


class SemanticError(CallAIError):
    """Base class for errors the caller must fix (request, model, schema)."""
    pass


# ============================================================
# Transport Errors
# ============================================================

class TransportError(CallAIError):
    """The endpoint answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        model: str = "",
        request_id: str = "",
        body: Optional[Any] = None,
        content_type: str = "",
    ):
        code_map = {
            400: "bad_request",
            401: "unauthorized",
            402: "payment_required",
            403: "forbidden",
            404: "not_found",
            429: "rate_limited",
            500: "upstream_500",
            502: "upstream_502",
            503: "upstream_503",
            504: "upstream_504",
        }
        infra = status_code >= 500 or status_code == 429
        context: Dict[str, Any] = {}
        if body is not None:
            context["body"] = body
        if content_type:
            context["content_type"] = content_type

        super().__init__(
            ErrorDetails(
                code=code_map.get(status_code, "http_error"),
                message=message or f"HTTP error! Status: {status_code}",
                type=ErrorType.INFRA if infra else ErrorType.SEMANTIC,
                status=status_code,
                model=model or None,
                request_id=request_id,
                retryable=infra,
                context=context,
            )
        )


class AuthenticationError(TransportError):
    """401/403 from the endpoint; key refresh belongs to the caller."""
    pass


class RateLimitedError(TransportError):
    """429 from the endpoint."""

    def __init__(self, retry_after: int = 60, **kwargs):
        super().__init__(429, **kwargs)
        self.error.retry_after = retry_after


class InvalidModelError(TransportError):
    """4xx response indicating the requested model is unknown or unavailable."""

    def __init__(self, status_code: int, model: str, message: str = "", **kwargs):
        super().__init__(
            status_code,
            message=message or f"Model '{model}' is not available",
            model=model,
            **kwargs
        )
        self.error.code = "invalid_model"


class ConnectionFailedError(InfraError):
    """Network failure before or while reading the response."""

    def __init__(self, message: str = "Failed to connect to endpoint", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="connection_failed",
                message=message,
                type=ErrorType.INFRA,
                request_id=request_id,
                retryable=True,
            )
        )


class RequestTimeoutError(InfraError):
    """The transport timed out."""

    def __init__(self, message: str = "Request timed out", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="timeout",
                message=message,
                type=ErrorType.INFRA,
                status=408,
                request_id=request_id,
                retryable=True,
            )
        )


# ============================================================
# Stream Errors
# ============================================================

class StreamInterruptedError(InfraError):
    """The stream ended before a finish signal was received."""

    def __init__(
        self,
        partial_content: str = "",
        message: str = "Stream ended before the response was complete",
        request_id: str = "",
    ):
        super().__init__(
            ErrorDetails(
                code="stream_interrupted",
                message=message,
                type=ErrorType.INFRA,
                request_id=request_id,
                retryable=False,  # Content already delivered to the caller
                partial_content=partial_content or None,
            )
        )

    @property
    def partial_content(self) -> str:
        return self.error.partial_content or ""


class StreamDecodeError(InfraError):
    """Malformed UTF-8 or an event payload that is not JSON."""

    def __init__(self, message: str, raw: Optional[str] = None, request_id: str = ""):
        context: Dict[str, Any] = {}
        if raw is not None:
            context["raw"] = raw[:200]
        super().__init__(
            ErrorDetails(
                code="stream_decode_error",
                message=message,
                type=ErrorType.INFRA,
                request_id=request_id,
                retryable=False,
                context=context,
            )
        )


class StreamAPIError(SemanticError):
    """Error object returned by the endpoint inside a 2xx response."""

    def __init__(
        self,
        message: str,
        status: int = 400,
        error_type: str = "",
        details: Optional[Any] = None,
        request_id: str = "",
    ):
        context: Dict[str, Any] = {}
        if error_type:
            context["error_type"] = error_type
        if details is not None:
            context["details"] = details
        super().__init__(
            ErrorDetails(
                code="api_error",
                message=message,
                type=ErrorType.SEMANTIC,
                status=status,
                request_id=request_id,
                retryable=False,
                context=context,
            )
        )


class InvalidStructuredResponseError(SemanticError):
    """The finalized text is not valid JSON although a schema was requested."""

    def __init__(
        self,
        raw_text: str,
        reason: str = "",
        finish_reason: Optional[str] = None,
        request_id: str = "",
    ):
        context: Dict[str, Any] = {"raw_text": raw_text}
        if finish_reason:
            context["finish_reason"] = finish_reason
        super().__init__(
            ErrorDetails(
                code="invalid_structured_response",
                message=f"Structured response is not valid JSON: {reason}" if reason
                else "Structured response is not valid JSON",
                type=ErrorType.SEMANTIC,
                request_id=request_id,
                retryable=False,
                context=context,
            )
        )

    @property
    def raw_text(self) -> str:
        return self.error.context["raw_text"]


class InvalidRequestError(SemanticError):
    """Call options failed validation."""

    def __init__(self, message: str, param: str = ""):
        super().__init__(
            ErrorDetails(
                code="invalid_request",
                message=message,
                type=ErrorType.SEMANTIC,
                retryable=False,
                context={"param": param} if param else {},
            )
        )


class MissingAPIKeyError(SemanticError):
    """No API key in the call options or the environment."""

    def __init__(self, message: str = "API key is required (pass api_key or set CALLAI_API_KEY)"):
        super().__init__(
            ErrorDetails(
                code="missing_api_key",
                message=message,
                type=ErrorType.SEMANTIC,
                status=401,
                retryable=False,
            )
        )


class UnexpectedResponseError(InfraError):
    """A 2xx response whose body has no recognizable content."""

    def __init__(self, message: str, body: Optional[Any] = None, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="unexpected_response",
                message=message,
                type=ErrorType.INFRA,
                request_id=request_id,
                retryable=False,
                context={"body": body} if body is not None else {},
            )
        )


# ============================================================
# Error Factories
# ============================================================

_INVALID_MODEL_HINTS = ("model", "engine", "not found", "invalid", "unavailable")


def parse_error_body(text: str) -> Any:
    """Decode an error body as JSON, falling back to the raw text."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return text


def extract_error_message(body: Any, status_code: int, status_text: str = "") -> str:
    """
    Pull a readable message out of the common error body shapes:
    ``{"error": {"message": ...}}``, ``{"error": "..."}``, ``{"message": ...}``
    or plain text. The status code is appended when missing.
    """
    message = ""

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            message = str(error["message"])
        elif isinstance(error, str) and error:
            message = error
        elif body.get("message"):
            message = str(body["message"])
    elif isinstance(body, str) and body.strip():
        message = body if len(body) <= 100 else body[:100] + "..."

    if not message:
        message = f"API returned {status_code}: {status_text}".rstrip(": ")

    if str(status_code) not in message:
        message = f"{message} (Status: {status_code})"

    return message


def is_invalid_model_error(status_code: int, body: Any) -> bool:
    """
    Check whether a 4xx response means the requested model cannot be used.

    Only 4xx responses qualify. 400 and 404 always do; other 4xx responses
    qualify when the error message mentions the model or its availability.
    """
    if status_code < 400 or status_code >= 500:
        return False

    if status_code in (400, 404):
        return True

    error = body.get("error") if isinstance(body, dict) else body
    if isinstance(error, dict):
        error = error.get("message")
    if not isinstance(error, str):
        return False

    lowered = error.lower()
    return any(hint in lowered for hint in _INVALID_MODEL_HINTS)


def error_from_response(
    status_code: int,
    body_text: str,
    model: str = "",
    request_id: str = "",
    content_type: str = "",
    status_text: str = "",
) -> CallAIError:
    """Create the appropriate error for an unsuccessful HTTP response."""
    body = parse_error_body(body_text)

    if status_code < 400:
        # 2xx with a JSON body on a streaming request
        if isinstance(body, dict) and body.get("error"):
            return error_from_payload(body, request_id=request_id)
        return TransportError(
            status_code,
            message=f"Unexpected response body (content-type: {content_type or 'unknown'})",
            model=model,
            request_id=request_id,
            body=body,
            content_type=content_type,
        )

    message = extract_error_message(body, status_code, status_text)
    common = dict(model=model, request_id=request_id, body=body, content_type=content_type)

    if status_code in (401, 403):
        return AuthenticationError(status_code, message=message, **common)

    if status_code == 429:
        retry_after = 60
        if isinstance(body, dict) and isinstance(body.get("retry_after"), int):
            retry_after = body["retry_after"]
        return RateLimitedError(retry_after, message=message, **common)

    if is_invalid_model_error(status_code, body):
        return InvalidModelError(status_code, model=model, message=message,
                                 request_id=request_id, body=body, content_type=content_type)

    return TransportError(status_code, message=message, **common)


def error_from_payload(
    payload: Dict[str, Any],
    request_id: str = "",
    prefix: str = "API streaming error",
) -> StreamAPIError:
    """
    Convert an in-band error payload into a StreamAPIError.

    Handles ``{"error": {...}}``, ``{"error": "..."}``, Anthropic's
    ``{"type": "error", "error": {...}}`` and OpenAI-style chunks whose
    ``finish_reason`` is ``"error"``.
    """
    error = payload.get("error")
    status = 400
    error_type = ""

    if isinstance(error, dict):
        message = error.get("message") or json.dumps(error)
        error_type = str(error.get("type") or "")
        for key in ("status", "code"):
            if isinstance(error.get(key), int):
                status = error[key]
                break
    elif isinstance(error, str) and error:
        message = error
    else:
        message = "Unknown streaming error"
        choices = payload.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            choice_message = choices[0].get("message") or {}
            if isinstance(choice_message, dict) and choice_message.get("content"):
                message = str(choice_message["content"])

    return StreamAPIError(
        f"{prefix}: {message}",
        status=status,
        error_type=error_type,
        details=error if error is not None else payload,
        request_id=request_id,
    )


def handle_transport_error(error: Exception, request_id: str = "") -> CallAIError:
    """Convert an httpx failure into a canonical call-ai error."""
    if isinstance(error, CallAIError):
        return error

    if isinstance(error, httpx.TimeoutException):
        return RequestTimeoutError(f"Request timed out: {error}", request_id)

    if isinstance(error, (httpx.ConnectError, httpx.NetworkError, httpx.RemoteProtocolError)):
        return ConnectionFailedError(f"Connection failed: {error}", request_id)

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return error_from_response(
            response.status_code,
            response.text,
            request_id=request_id,
            content_type=response.headers.get("content-type", ""),
        )

    return InfraError(
        ErrorDetails(
            code="unknown_error",
            message=str(error) or error.__class__.__name__,
            type=ErrorType.INFRA,
            request_id=request_id,
            retryable=False,
        )
    )

