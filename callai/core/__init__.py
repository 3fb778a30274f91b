"""
call-ai Core Module

Request models, error taxonomy and the HTTP transport.
"""

from .models import (
    # Messages
    Message,
    ContentPart,
    ImageUrl,
    normalize_messages,

    # Options
    CallOptions,
    Schema,
)

from .errors import (
    ErrorType,
    ErrorDetails,
    CallAIError,
    InfraError,
    SemanticError,

    # Transport
    TransportError,
    AuthenticationError,
    RateLimitedError,
    InvalidModelError,
    ConnectionFailedError,
    RequestTimeoutError,

    # Stream
    StreamInterruptedError,
    StreamDecodeError,
    StreamAPIError,
    InvalidStructuredResponseError,

    # Request
    InvalidRequestError,
    MissingAPIKeyError,
    UnexpectedResponseError,

    # Factories
    error_from_response,
    error_from_payload,
    handle_transport_error,
    is_invalid_model_error,
)

from .http_client import StreamingHttpClient, RequestContext, HttpResponse
