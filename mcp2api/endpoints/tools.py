"""
工具端点

MCP 客户端直接调用工具用；与代上游模型执行不同，这里的失败按错误类型返回对应状态码。
"""

from typing import Optional

from fastapi import APIRouter, Depends

from ..auth import authenticate_bearer
from ..services import Services, get_services
from ..tools import ToolOutput
from .schemas import FileReadRequest, WebFetchRequest

router = APIRouter()

__all__ = ["router"]


def _render(output: ToolOutput):
    return {"data": output.content, "truncated": output.truncated}


@router.post("/tool/web_fetch")
async def tool_web_fetch(
    payload: WebFetchRequest,
    services: Services = Depends(get_services),
    token: Optional[str] = Depends(authenticate_bearer),
):
    output = await services.tools.run("web_fetch", {"url": payload.url})
    return _render(output)


@router.post("/tool/file_read")
async def tool_file_read(
    payload: FileReadRequest,
    services: Services = Depends(get_services),
    token: Optional[str] = Depends(authenticate_bearer),
):
    output = await services.tools.run("file_read", {"path": payload.path})
    return _render(output)
