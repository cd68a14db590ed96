"""
Anthropic Messages 兼容端点

Claude 客户端把 base URL 指向本服务即可，请求会被转成 OpenAI chat completion。
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from log import log

from ..anthropic_converter import (
    anthropic_messages_to_internal,
    anthropic_tools_to_openai,
    build_anthropic_response,
    estimate_input_tokens,
    generate_message_id,
    resolve_model,
)
from ..anthropic_streaming import openai_stream_to_anthropic_sse
from ..auth import authenticate_bearer
from ..errors import ValidationError
from ..services import Services, get_services

router = APIRouter()

__all__ = ["router"]

DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.7


async def _read_json(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError(f"Invalid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _optional_number(body: Dict[str, Any], key: str, default: Any, kind: type) -> Any:
    value = body.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    return kind(value)


@router.post("/v1/messages")
async def anthropic_messages(
    request: Request,
    services: Services = Depends(get_services),
    token: Optional[str] = Depends(authenticate_bearer),
):
    """Anthropic Messages API 兼容端点"""
    body = await _read_json(request)

    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        raise ValidationError("messages: at least one message is required")

    internal = anthropic_messages_to_internal(messages, body.get("system"))
    requested_model = body.get("model") or services.settings.model
    upstream_model = resolve_model(body.get("model"), services.settings.model)
    max_tokens = _optional_number(body, "max_tokens", DEFAULT_MAX_TOKENS, int)
    temperature = _optional_number(body, "temperature", DEFAULT_TEMPERATURE, float)
    stream = body.get("stream", False)
    if stream is None:
        stream = False
    if not isinstance(stream, bool):
        raise ValidationError("stream must be a boolean")

    log.info(
        f"messages request: model={requested_model} -> {upstream_model}, "
        f"messages={len(internal)}, stream={stream}",
        tag="HTTP",
    )

    if stream:
        message_id = generate_message_id()
        chunks = services.completion.stream(
            internal, model=upstream_model, max_tokens=max_tokens, temperature=temperature,
        )
        return StreamingResponse(
            openai_stream_to_anthropic_sse(chunks, message_id=message_id, model=requested_model),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    completion = await services.completion.complete(
        internal,
        model=upstream_model,
        max_tokens=max_tokens,
        temperature=temperature,
        tools=anthropic_tools_to_openai(body.get("tools")),
    )
    result = await build_anthropic_response(
        completion, model=requested_model, dispatcher=services.tools,
    )
    return JSONResponse(content=result)


@router.post("/v1/messages/count_tokens")
async def anthropic_messages_count_tokens(
    request: Request,
    token: Optional[str] = Depends(authenticate_bearer),
):
    """
    Anthropic Messages API 兼容的 token 计数端点。

    只返回估算值，不调用上游。
    """
    body = await _read_json(request)
    return JSONResponse(content={"input_tokens": estimate_input_tokens(body)})
