"""
管理端点

包含 RAG 文档写入和健康检查。
"""

from typing import Optional

from fastapi import APIRouter, Depends

from ..auth import authenticate_bearer
from ..errors import ValidationError
from ..services import Services, get_services
from .schemas import IngestRequest

router = APIRouter()

__all__ = ["router"]


@router.post("/admin/ingest")
async def admin_ingest(
    payload: IngestRequest,
    services: Services = Depends(get_services),
    token: Optional[str] = Depends(authenticate_bearer),
):
    """写入一篇文档：生成 embedding 后立即落盘"""
    if not payload.text:
        raise ValidationError("text required")
    doc = await services.store.ingest(payload.text, payload.resolved_metadata)
    return {"ok": True, "doc": doc.to_dict()}


@router.get("/health")
async def health():
    """存活检查，不需要认证"""
    return {"ok": True}
