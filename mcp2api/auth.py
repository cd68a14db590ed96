"""
Bearer Token 认证

未配置 BEARER 时所有请求放行；配置后要求 `Authorization: Bearer <token>` 完全匹配。
"""

import secrets
from typing import Optional

from fastapi import Header, Request

from log import log

from .errors import AuthenticationError

__all__ = ["authenticate_bearer"]


async def authenticate_bearer(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """
    Bearer Token 认证

    此函数可以直接用作 FastAPI 的 Depends 依赖

    Returns:
        验证通过的 token；未启用认证时返回 None

    Raises:
        AuthenticationError: 缺少或不匹配的 token (401)
    """
    expected = request.app.state.services.settings.bearer
    if not expected:
        return None

    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:]

    if not token or not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        client = request.client.host if request.client else "unknown"
        log.warning(f"Rejected {request.method} {request.url.path} from {client}", tag="AUTH")
        raise AuthenticationError("Unauthorized")
    return token
