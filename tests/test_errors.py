"""
call-ai - Error System Tests

Verifies:
- Status codes map to the right error classes
- Error messages are extracted from the common body shapes
- Invalid-model detection only fires on 4xx
- httpx failures map to infra errors
- Error payloads carry {message, status, context}
"""

import httpx
import pytest

from callai.core.errors import (
    AuthenticationError,
    CallAIError,
    ConnectionFailedError,
    ErrorType,
    InfraError,
    InvalidModelError,
    InvalidStructuredResponseError,
    RateLimitedError,
    RequestTimeoutError,
    SemanticError,
    StreamAPIError,
    StreamInterruptedError,
    TransportError,
    error_from_payload,
    error_from_response,
    extract_error_message,
    handle_transport_error,
    is_invalid_model_error,
)


class TestErrorFromResponse:
    """Test status code to error class mapping."""

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors(self, status):
        error = error_from_response(status, '{"error": {"message": "Invalid key"}}')

        assert isinstance(error, AuthenticationError)
        assert error.status == status
        assert "Invalid key" in error.message

    def test_rate_limited(self):
        error = error_from_response(429, '{"error": "slow down", "retry_after": 12}')

        assert isinstance(error, RateLimitedError)
        assert error.error.retry_after == 12
        assert error.retryable is True
        assert error.error.type == ErrorType.INFRA

    def test_invalid_model_on_404(self):
        error = error_from_response(404, '{"error": {"message": "No such model"}}', model="bad/model")

        assert isinstance(error, InvalidModelError)
        assert error.error.code == "invalid_model"
        assert error.error.model == "bad/model"

    def test_invalid_model_on_422_with_hint(self):
        error = error_from_response(422, '{"error": {"message": "Model unavailable in region"}}')

        assert isinstance(error, InvalidModelError)

    def test_plain_422_is_transport_error(self):
        error = error_from_response(422, '{"error": {"message": "temperature out of range"}}')

        assert type(error) is TransportError
        assert error.error.type == ErrorType.SEMANTIC

    @pytest.mark.parametrize("status,code", [
        (500, "upstream_500"),
        (502, "upstream_502"),
        (503, "upstream_503"),
    ])
    def test_server_errors_are_infra(self, status, code):
        error = error_from_response(status, "Internal error")

        assert error.error.code == code
        assert error.error.type == ErrorType.INFRA
        assert error.retryable is True

    def test_body_kept_in_context(self):
        error = error_from_response(500, '{"error": {"message": "boom"}}', content_type="application/json")

        assert error.context["body"] == {"error": {"message": "boom"}}
        assert error.context["content_type"] == "application/json"

    def test_2xx_json_error_body(self):
        """A 2xx JSON body with an error object is a vendor error."""
        error = error_from_response(200, '{"error": {"message": "No credits", "code": 402}}')

        assert isinstance(error, StreamAPIError)
        assert error.status == 402

    def test_2xx_null_error_is_not_vendor_error(self):
        error = error_from_response(200, '{"id": "x", "error": null}', content_type="application/json")

        assert isinstance(error, TransportError)

    def test_2xx_unexpected_body(self):
        error = error_from_response(200, '{"id": "x"}', content_type="application/json")

        assert isinstance(error, TransportError)
        assert "application/json" in error.message


class TestExtractErrorMessage:
    """Test message extraction from error bodies."""

    def test_nested_error_message(self):
        message = extract_error_message({"error": {"message": "Bad things"}}, 400)

        assert message == "Bad things (Status: 400)"

    def test_string_error(self):
        assert extract_error_message({"error": "Oops"}, 400) == "Oops (Status: 400)"

    def test_top_level_message(self):
        assert extract_error_message({"message": "Top"}, 403) == "Top (Status: 403)"

    def test_plain_text_truncated(self):
        message = extract_error_message("x" * 150, 500)

        assert message.startswith("x" * 100 + "...")
        assert message.endswith("(Status: 500)")

    def test_status_not_duplicated(self):
        assert extract_error_message({"error": "Error 404: gone"}, 404) == "Error 404: gone"

    def test_empty_body_uses_status_text(self):
        assert extract_error_message("", 502, "Bad Gateway") == "API returned 502: Bad Gateway"


class TestIsInvalidModelError:
    """Test invalid model detection."""

    @pytest.mark.parametrize("status", [400, 404])
    def test_always_for_400_and_404(self, status):
        assert is_invalid_model_error(status, {}) is True

    def test_hint_required_for_other_4xx(self):
        assert is_invalid_model_error(403, {"error": {"message": "Engine not found"}}) is True
        assert is_invalid_model_error(403, {"error": {"message": "Forbidden"}}) is False

    def test_string_body(self):
        assert is_invalid_model_error(422, "model is invalid") is True

    @pytest.mark.parametrize("status", [200, 500, 503])
    def test_never_outside_4xx(self, status):
        assert is_invalid_model_error(status, {"error": {"message": "model not found"}}) is False


class TestErrorFromPayload:
    """Test in-band error conversion."""

    def test_prefix_and_status(self):
        error = error_from_payload({"error": {"message": "Overloaded", "status": 529}})

        assert error.message == "API streaming error: Overloaded"
        assert error.status == 529

    def test_custom_prefix(self):
        error = error_from_payload({"error": "nope"}, prefix="API error")

        assert error.message == "API error: nope"
        assert error.status == 400

    def test_finish_reason_error_chunk(self):
        payload = {"choices": [{"message": {"content": "Provider failed"}, "finish_reason": "error"}]}

        error = error_from_payload(payload)

        assert "Provider failed" in error.message
        assert error.context["details"] == payload


class TestHandleTransportError:
    """Test httpx exception mapping."""

    def test_timeout(self):
        error = handle_transport_error(httpx.ReadTimeout("read timed out"), "req-1")

        assert isinstance(error, RequestTimeoutError)
        assert error.status == 408
        assert error.error.request_id == "req-1"

    def test_connect_error(self):
        error = handle_transport_error(httpx.ConnectError("refused"))

        assert isinstance(error, ConnectionFailedError)
        assert error.retryable is True

    def test_remote_protocol_error(self):
        error = handle_transport_error(httpx.RemoteProtocolError("peer closed"))

        assert isinstance(error, ConnectionFailedError)

    def test_status_error(self):
        request = httpx.Request("POST", "https://example.test/v1/chat/completions")
        response = httpx.Response(401, json={"error": {"message": "bad key"}}, request=request)

        error = handle_transport_error(httpx.HTTPStatusError("401", request=request, response=response))

        assert isinstance(error, AuthenticationError)

    def test_passthrough(self):
        original = StreamInterruptedError(partial_content="x")

        assert handle_transport_error(original) is original

    def test_unknown(self):
        error = handle_transport_error(ValueError("weird"))

        assert isinstance(error, InfraError)
        assert error.error.code == "unknown_error"


class TestErrorPayloads:
    """Test serialized error shape."""

    def test_to_dict(self):
        error = StreamInterruptedError(partial_content='{"a":', request_id="req-9")

        data = error.to_dict()["error"]

        assert data["code"] == "stream_interrupted"
        assert data["type"] == "infra_error"
        assert data["partial_content"] == '{"a":'
        assert data["request_id"] == "req-9"
        assert "status" not in data

    def test_structured_error_keeps_raw_text(self):
        error = InvalidStructuredResponseError('{"a": ', reason="Expecting value", finish_reason="length")

        assert isinstance(error, SemanticError)
        assert error.raw_text == '{"a": '
        assert error.to_dict()["error"]["context"]["finish_reason"] == "length"

    def test_all_errors_are_callai_errors(self):
        for error in (
            StreamInterruptedError(),
            ConnectionFailedError(),
            TransportError(500),
            StreamAPIError("x"),
        ):
            assert isinstance(error, CallAIError)
            assert isinstance(error, Exception)
