"""
HTTP 端点模块

包含 Anthropic Messages、RAG 查询、MCP 心跳流、工具和管理端点。
"""

from fastapi import APIRouter

__all__ = ["create_router"]


def create_router() -> APIRouter:
    """
    创建顶层路由器

    Returns:
        挂载了全部端点的 APIRouter 实例
    """
    from .admin import router as admin_router
    from .anthropic import router as anthropic_router
    from .mcp import router as mcp_router
    from .query import router as query_router
    from .tools import router as tools_router

    router = APIRouter()
    router.include_router(anthropic_router, tags=["anthropic"])
    router.include_router(query_router, tags=["rag"])
    router.include_router(mcp_router, tags=["mcp"])
    router.include_router(tools_router, tags=["tools"])
    router.include_router(admin_router, tags=["admin"])
    return router
