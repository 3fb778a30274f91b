"""
call-ai - API Entry Points

``call_ai`` sends one chat completion request and returns either the
finalized value or a StreamResponse of cumulative snapshots.

Usage:
    text = await call_ai("Say hello", api_key=key)

    stream = await call_ai("Write a story", api_key=key, stream=True)
    async with stream:
        async for snapshot in stream:
            render(snapshot)

    data = await call_ai("List three fruits", api_key=key, schema={
        "properties": {"fruits": {"type": "array", "items": {"type": "string"}}},
    })

On an invalid-model error the call is repeated once with ``openrouter/auto``
unless ``skip_retry`` is set.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError

from .config import (
    CHAT_COMPLETIONS_PATH,
    DEFAULT_ENDPOINT,
    DEFAULT_REFERER,
    DEFAULT_TITLE,
    FALLBACK_MODEL,
    Settings,
    get_settings,
)
from .core.errors import (
    CallAIError,
    InvalidModelError,
    InvalidRequestError,
    MissingAPIKeyError,
    UnexpectedResponseError,
    error_from_payload,
)
from .core.http_client import RequestContext, StreamingHttpClient
from .core.models import CallOptions, Prompt, normalize_messages
from .metadata import ResponseMeta, register_meta
from .observability.logging import LogContext, get_logger
from .observability.metrics import StreamMetrics, get_metrics
from .observability.tracing import ModelCallSpan
from .strategies.selector import SchemaStrategy, choose_schema_strategy
from .streaming.accumulator import AccumulationBuffer
from .streaming.completion import CompletionDetector
from .streaming.emitter import StreamResponse
from .streaming.models import StreamConfig
from .utils import join_url_parts

logger = get_logger(__name__)

_SAMPLING_FIELDS = ("temperature", "top_p", "max_tokens", "stop")


@dataclass
class PreparedRequest:
    """Everything needed to send one chat completion request."""
    endpoint: str
    headers: Dict[str, str]
    body: Dict[str, Any]
    strategy: SchemaStrategy
    stream: bool  # Wire-level streaming (requested or forced by the strategy)

    @property
    def model(self) -> str:
        return self.strategy.model


# ============================================================
# Request building
# ============================================================

def resolve_options(
    options: Optional[Union[CallOptions, Dict[str, Any]]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> CallOptions:
    """Merge an options object/dict with keyword overrides and validate."""
    if isinstance(options, CallOptions) and not overrides:
        return options

    data: Dict[str, Any] = {}
    if isinstance(options, CallOptions):
        data = options.model_dump(by_alias=True, exclude_unset=True)
    elif options:
        data = dict(options)
    data.update(overrides or {})

    try:
        return CallOptions.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        param = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidRequestError(f"Invalid call options: {first.get('msg', e)}", param=param)


def resolve_endpoint(options: CallOptions, settings: Settings) -> str:
    if options.endpoint:
        return options.endpoint
    chat_url = options.chat_url or settings.chat_url
    if chat_url:
        return join_url_parts(chat_url, CHAT_COMPLETIONS_PATH)
    return settings.endpoint or DEFAULT_ENDPOINT


def build_request(
    prompt: Prompt,
    options: CallOptions,
    settings: Optional[Settings] = None,
) -> PreparedRequest:
    """
    Build the endpoint, headers and body for a call.

    Sampling fields are sent only when set. Unrecognized options are copied
    into the body; schema fields from the strategy are applied last.

    Raises:
        MissingAPIKeyError: no key in the options or the environment
        InvalidRequestError: the prompt is not a valid message list
    """
    settings = settings or get_settings()

    api_key = options.api_key or settings.api_key
    if not api_key:
        raise MissingAPIKeyError()

    try:
        messages = normalize_messages(prompt)
    except (ValidationError, ValueError) as e:
        raise InvalidRequestError(f"Invalid prompt: {e}", param="prompt")

    strategy = choose_schema_strategy(options.model, options.schema_)
    stream = options.stream or strategy.force_stream

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": options.referer or DEFAULT_REFERER,
        "X-Title": options.title or DEFAULT_TITLE,
    }
    headers.update(options.headers)

    body: Dict[str, Any] = {
        "model": strategy.model,
        "messages": [message.to_dict() for message in messages],
        "stream": stream,
    }
    for name in _SAMPLING_FIELDS:
        value = getattr(options, name)
        if value is not None:
            body[name] = value

    if options.response_format == "json":
        body["response_format"] = {"type": "json_object"}

    body.update(options.extra_body)

    if strategy.schema_requested:
        body.update(strategy.prepare_request(messages))

    return PreparedRequest(
        endpoint=resolve_endpoint(options, settings),
        headers=headers,
        body=body,
        strategy=strategy,
        stream=stream,
    )


# ============================================================
# Response extraction
# ============================================================

def _join_blocks(blocks: Any) -> Optional[str]:
    """Content blocks: a tool_use block's input wins over text blocks."""
    if not isinstance(blocks, list):
        return None
    texts = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "tool_use" and "input" in block:
            return json.dumps(block["input"])
        if block.get("type") == "text" and isinstance(block.get("text"), str):
            texts.append(block["text"])
    return "".join(texts) if texts else None


def _arguments_text(arguments: Any) -> str:
    return arguments if isinstance(arguments, str) else json.dumps(arguments)


def extract_content(data: Dict[str, Any], request_id: str = "") -> Tuple[str, Optional[str]]:
    """
    Pull the text and finish reason out of a non-streaming response.

    Handles ``message.content`` (string or content blocks), ``tool_calls``,
    the legacy ``function_call``, ``choices[0].text`` and Anthropic message
    bodies.

    Raises:
        UnexpectedResponseError: no recognizable content
    """
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice = choices[0]
        finish_reason = choice.get("finish_reason")
        message = choice.get("message")

        if isinstance(message, dict):
            tool_calls = message.get("tool_calls")
            if isinstance(tool_calls, list) and tool_calls:
                function = tool_calls[0].get("function") if isinstance(tool_calls[0], dict) else None
                if isinstance(function, dict) and "arguments" in function:
                    return _arguments_text(function["arguments"]), finish_reason or "tool_calls"

            function_call = message.get("function_call")
            if isinstance(function_call, dict) and "arguments" in function_call:
                return _arguments_text(function_call["arguments"]), finish_reason or "tool_calls"

            content = message.get("content")
            if isinstance(content, str):
                return content, finish_reason
            text = _join_blocks(content)
            if text is not None:
                return text, finish_reason

        if isinstance(choice.get("text"), str):
            return choice["text"], finish_reason

    text = _join_blocks(data.get("content"))
    if text is not None:
        return text, data.get("stop_reason")

    raise UnexpectedResponseError(
        "Failed to extract content from API response",
        body=data,
        request_id=request_id,
    )


# ============================================================
# Calls
# ============================================================

async def call_ai(
    prompt: Prompt,
    options: Optional[Union[CallOptions, Dict[str, Any]]] = None,
    *,
    client: Optional[StreamingHttpClient] = None,
    metrics: Optional[StreamMetrics] = None,
    settings: Optional[Settings] = None,
    **kwargs
) -> Any:
    """
    Make one AI call.

    Args:
        prompt: A prompt string or a list of messages
        options: CallOptions or a dict of options
        client: HTTP client to use (a private one is created and closed otherwise)
        metrics: Metrics collector (default: the process-wide collector)
        settings: Environment settings (default: read from the environment)
        **kwargs: Options, merged over ``options``

    Returns:
        StreamResponse when ``stream=True``; otherwise the finalized text, or
        the parsed JSON value when a schema was requested.

    Raises:
        CallAIError: see ``callai.core.errors``
    """
    opts = resolve_options(options, kwargs)
    settings = settings or get_settings()
    metrics = metrics or get_metrics()

    try:
        return await _call_once(prompt, opts, client, metrics, settings)
    except InvalidModelError as error:
        failed_model = error.error.model or opts.model or ""
        if opts.skip_retry or failed_model == FALLBACK_MODEL:
            raise

        logger.warning(
            "Model unavailable, retrying with fallback model",
            from_model=failed_model,
            to_model=FALLBACK_MODEL,
            status_code=error.status,
        )
        metrics.record_fallback(failed_model, FALLBACK_MODEL)

        retry_options = opts.model_copy(update={"model": FALLBACK_MODEL, "skip_retry": True})
        return await _call_once(prompt, retry_options, client, metrics, settings, fallback_from=failed_model)


async def _call_once(
    prompt: Prompt,
    options: CallOptions,
    client: Optional[StreamingHttpClient],
    metrics: StreamMetrics,
    settings: Settings,
    fallback_from: Optional[str] = None,
) -> Any:
    prepared = build_request(prompt, options, settings)
    strategy = prepared.strategy
    debug = options.debug if options.debug is not None else settings.debug

    config = StreamConfig(
        model=prepared.model,
        debug=debug,
        schema_requested=strategy.schema_requested,
        strategy=strategy.strategy.value,
        json_extractor=strategy.extract_json if strategy.schema_requested else None,
        emit_partial=strategy.emit_partial,
        prefer_tool_arguments=strategy.prefer_tool_arguments,
    )
    meta = ResponseMeta(
        model=prepared.model,
        endpoint=prepared.endpoint,
        request_id=config.request_id,
        strategy=config.strategy,
        fallback_from=fallback_from,
    )

    token = LogContext.set_current(LogContext(
        request_id=config.request_id,
        model=prepared.model,
        endpoint=prepared.endpoint,
        strategy=config.strategy,
    ))
    try:
        logger.trace(debug, "Prepared request", stream=prepared.stream, force_stream=strategy.force_stream)

        http = client or StreamingHttpClient(timeout=options.timeout or settings.timeout)
        owns_client = client is None
        ctx = RequestContext(
            request_id=config.request_id,
            step_name="chat_completion",
            model=prepared.model,
            debug=debug,
        )
        span = ModelCallSpan(prepared.model, config.strategy, prepared.stream, prepared.endpoint)

        if prepared.stream:
            stream = await _open_stream(prepared, config, meta, http, owns_client, ctx, metrics, span)
            if options.stream:
                return stream
            # Strategy forced streaming; buffer to a single value
            return await stream.collect()

        return await _complete(prepared, config, meta, http, owns_client, ctx, metrics, span)
    finally:
        LogContext.reset(token)


async def _open_stream(
    prepared: PreparedRequest,
    config: StreamConfig,
    meta: ResponseMeta,
    http: StreamingHttpClient,
    owns_client: bool,
    ctx: RequestContext,
    metrics: StreamMetrics,
    span: ModelCallSpan,
) -> StreamResponse:
    try:
        response = await http.open_stream(prepared.endpoint, prepared.body, prepared.headers, ctx)
    except CallAIError as error:
        if owns_client:
            await http.close()
        span.end(error)
        metrics.record_failure(error.error.code)
        metrics.record_request(prepared.model, config.strategy, streaming=True, outcome=error.error.code)
        raise

    async def on_close():
        try:
            await response.aclose()
        finally:
            if owns_client:
                await http.close()

    return StreamResponse(
        response.aiter_bytes(),
        config,
        meta=meta,
        on_close=on_close,
        metrics=metrics,
        span=span,
    )


async def _complete(
    prepared: PreparedRequest,
    config: StreamConfig,
    meta: ResponseMeta,
    http: StreamingHttpClient,
    owns_client: bool,
    ctx: RequestContext,
    metrics: StreamMetrics,
    span: ModelCallSpan,
) -> Any:
    start_time = time.perf_counter()
    try:
        try:
            response = await http.post_json(prepared.endpoint, prepared.body, prepared.headers, ctx)
        finally:
            if owns_client:
                await http.close()

        data = response.data
        if not isinstance(data, dict):
            raise UnexpectedResponseError("API response is not a JSON object", body=data,
                                          request_id=config.request_id)
        if data.get("error"):
            error = error_from_payload(data, request_id=config.request_id, prefix="API error")
            if "not a valid model" in error.message.lower():
                raise InvalidModelError(400, model=prepared.model, message=error.message,
                                        request_id=config.request_id, body=data)
            raise error

        text, finish_reason = extract_content(data, request_id=config.request_id)
        result = CompletionDetector(config).finalize(AccumulationBuffer(text=text), finish_reason)
    except CallAIError as error:
        span.end(error)
        metrics.record_failure(error.error.code)
        metrics.record_request(prepared.model, config.strategy, streaming=False, outcome=error.error.code)
        raise

    meta.complete(raw_response=data, finish_reason=result.finish_reason)
    register_meta(result.value, meta)
    span.end()
    metrics.record_finalization(result.finish_reason)
    metrics.record_request(
        prepared.model,
        config.strategy,
        streaming=False,
        outcome="success",
        duration_seconds=time.perf_counter() - start_time,
    )
    logger.info(
        "Call completed",
        finish_reason=result.finish_reason,
        latency_ms=round(response.latency_ms, 2),
    )
    return result.value
