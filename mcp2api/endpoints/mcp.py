"""
MCP 事件流端点

GET /sse?session=xxx：先发 ready，之后每 SSE_PING_INTERVAL 秒发一次 ping。
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from log import log

from ..auth import authenticate_bearer
from ..services import Services, get_services
from ..sse import heartbeat_events

router = APIRouter()

__all__ = ["router"]


@router.get("/sse")
async def mcp_sse(
    request: Request,
    session: Optional[str] = None,
    services: Services = Depends(get_services),
    token: Optional[str] = Depends(authenticate_bearer),
):
    session_id = session or "default"
    log.info(f"SSE connection opened session={session_id}", tag="SSE")
    return StreamingResponse(
        heartbeat_events(
            session_id,
            interval=services.settings.sse_ping_interval,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
