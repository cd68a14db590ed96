"""
RAG 查询端点

检索文档库 + 会话历史后调用上游，并把本轮问答写回会话记忆。
"""

from typing import Optional

from fastapi import APIRouter, Depends

from log import log

from ..auth import authenticate_bearer
from ..errors import ValidationError
from ..models import Message
from ..services import Services, get_services
from .schemas import QueryRequest

router = APIRouter()

__all__ = ["router"]


@router.post("/query")
async def query(
    payload: QueryRequest,
    services: Services = Depends(get_services),
    token: Optional[str] = Depends(authenticate_bearer),
):
    if not payload.text:
        raise ValidationError("Missing text")

    session_id = payload.session_id or "default"
    messages = await services.context.build(session_id, payload.text)
    completion = await services.completion.complete(messages)
    answer = completion.text

    # 只有上游成功返回后才写入记忆，失败的轮次不留痕迹
    services.sessions.push(session_id, Message(role="user", content=payload.text))
    services.sessions.push(session_id, Message(role="assistant", content=answer))

    log.info(f"query session={session_id} answered ({len(answer)} chars)", tag="RAG")
    return {"sessionId": session_id, "answer": answer}
