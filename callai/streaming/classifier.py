"""
call-ai - Vendor Event Classifier

Maps one SSEEvent to exactly one DeltaFragment, whatever vendor shape the
endpoint speaks:

- OpenAI / OpenRouter chat completion chunks (``choices[0].delta``)
- Anthropic messages stream events (``content_block_delta``, ``message_delta``)
- In-band error objects, raised as StreamAPIError

Unknown shapes are ignored rather than rejected. The only hard failure is a
payload that is not JSON.
"""

import json
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..core.errors import StreamDecodeError, error_from_payload
from .models import DeltaFragment, FragmentKind, SSEEvent, StreamConfig


class VendorShape(str, Enum):
    """Wire shapes understood by the classifier."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    ERROR = "error"
    UNKNOWN = "unknown"


def parse_event_payload(event: SSEEvent, config: Optional[StreamConfig] = None) -> Any:
    try:
        return json.loads(event.data)
    except json.JSONDecodeError as e:
        raise StreamDecodeError(
            f"Event payload is not valid JSON: {e.msg}",
            raw=event.data,
            request_id=config.request_id if config else "",
        )


def detect_shape(payload: Dict[str, Any]) -> VendorShape:
    if payload.get("error") or payload.get("type") == "error":
        return VendorShape.ERROR

    choices = payload.get("choices")
    if isinstance(choices, list):
        if choices and isinstance(choices[0], dict) and choices[0].get("finish_reason") == "error":
            return VendorShape.ERROR
        return VendorShape.OPENAI

    if isinstance(payload.get("type"), str):
        return VendorShape.ANTHROPIC

    return VendorShape.UNKNOWN


# ============================================================
# OpenAI / OpenRouter
# ============================================================

def _tool_call_arguments(tool_calls: Any) -> Optional[str]:
    """Argument delta of the first tool call; only one tool is ever offered."""
    if not isinstance(tool_calls, list) or not tool_calls:
        return None

    tool_call = tool_calls[0]
    if not isinstance(tool_call, dict):
        return None
    function = tool_call.get("function")
    if isinstance(function, dict) and isinstance(function.get("arguments"), str):
        return function["arguments"] or None
    return None


def _message_text(message: Dict[str, Any]) -> Optional[str]:
    """Text of a complete (non-delta) message embedded in a stream chunk."""
    content = message.get("content")
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        texts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "".join(texts) or None
    return _tool_call_arguments(message.get("tool_calls"))


def classify_openai(payload: Dict[str, Any]) -> DeltaFragment:
    choices = payload["choices"]
    if not choices or not isinstance(choices[0], dict):
        return DeltaFragment.ignored()

    choice = choices[0]
    kind = FragmentKind.CONTENT
    text: Optional[str] = None

    delta = choice.get("delta")
    if isinstance(delta, dict):
        content = delta.get("content")
        if isinstance(content, str) and content:
            text = content
        else:
            text = _tool_call_arguments(delta.get("tool_calls"))
            if text is None and isinstance(delta.get("function_call"), dict):
                arguments = delta["function_call"].get("arguments")
                text = arguments if isinstance(arguments, str) and arguments else None
            if text is not None:
                kind = FragmentKind.TOOL_CALL_DELTA
    elif isinstance(choice.get("message"), dict):
        text = _message_text(choice["message"])

    finish_reason = choice.get("finish_reason")
    if finish_reason:
        return DeltaFragment(
            FragmentKind.FINISH,
            text=text,
            finish_reason=str(finish_reason),
            tool_arguments=kind is FragmentKind.TOOL_CALL_DELTA,
        )

    if text is None:
        return DeltaFragment.ignored()
    return DeltaFragment(kind, text=text)


# ============================================================
# Anthropic
# ============================================================

def classify_anthropic(payload: Dict[str, Any]) -> DeltaFragment:
    event_type = payload.get("type")

    if event_type == "content_block_delta":
        delta = payload.get("delta")
        if not isinstance(delta, dict):
            return DeltaFragment.ignored()

        text = delta.get("text")
        if isinstance(text, str) and text:
            return DeltaFragment(FragmentKind.CONTENT, text=text)

        partial_json = delta.get("partial_json")
        if isinstance(partial_json, str) and partial_json:
            return DeltaFragment(FragmentKind.TOOL_CALL_DELTA, text=partial_json)

        return DeltaFragment.ignored()

    if event_type == "content_block_start":
        block = payload.get("content_block")
        if isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
            return DeltaFragment(FragmentKind.CONTENT, text=block["text"])
        return DeltaFragment.ignored()

    if event_type == "message_delta":
        delta = payload.get("delta")
        stop_reason = delta.get("stop_reason") if isinstance(delta, dict) else None
        if stop_reason:
            return DeltaFragment(FragmentKind.FINISH, finish_reason=str(stop_reason))
        return DeltaFragment.ignored()

    if event_type == "tool_use" and isinstance(payload.get("input"), dict):
        # Complete tool input delivered as one object
        return DeltaFragment(FragmentKind.TOOL_CALL_DELTA, text=json.dumps(payload["input"]))

    # message_start, content_block_stop, message_stop, ping
    return DeltaFragment.ignored()


def classify_unknown(payload: Dict[str, Any]) -> DeltaFragment:
    return DeltaFragment.ignored()


_CLASSIFIERS: Dict[VendorShape, Callable[[Dict[str, Any]], DeltaFragment]] = {
    VendorShape.OPENAI: classify_openai,
    VendorShape.ANTHROPIC: classify_anthropic,
    VendorShape.UNKNOWN: classify_unknown,
}


def classify_event(event: SSEEvent, config: Optional[StreamConfig] = None) -> DeltaFragment:
    """
    Classify one SSEEvent.

    Raises:
        StreamDecodeError: the payload is not JSON
        StreamAPIError: the payload is an in-band vendor error
    """
    payload = parse_event_payload(event, config)
    if not isinstance(payload, dict):
        return DeltaFragment.ignored()

    shape = detect_shape(payload)
    if shape is VendorShape.ERROR:
        raise error_from_payload(payload, request_id=config.request_id if config else "")

    return _CLASSIFIERS[shape](payload)
