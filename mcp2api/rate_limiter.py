"""
Rate Limiter - 按客户端 IP 的滑动窗口限流

每个客户端在任意 window 秒内最多 limit 个请求，超出直接返回 429，不排队等待。
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from log import log

__all__ = ["SlidingWindowRateLimiter", "RateLimitMiddleware", "RATE_LIMIT_MESSAGE"]

RATE_LIMIT_MESSAGE = "Too many requests, please retry shortly"


class SlidingWindowRateLimiter:
    """
    滑动窗口限流器

    Usage:
        limiter = SlidingWindowRateLimiter(limit=200, window=60)
        if not limiter.allow("127.0.0.1"):
            ...  # 429
    """

    def __init__(
        self,
        limit: int = 200,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_cleanup = clock()

    def allow(self, key: str) -> bool:
        """记录一次请求；返回该请求是否在配额内"""
        if self.limit <= 0:
            return True

        now = self._clock()
        # 每个窗口周期顺带清理一次空闲客户端，避免按 IP 的 bucket 无限增长
        if now - self._last_cleanup >= self.window:
            self.cleanup_idle()
        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= now - self.window:
            hits.popleft()

        if len(hits) >= self.limit:
            return False
        hits.append(now)
        return True

    def cleanup_idle(self) -> int:
        """移除窗口内没有任何请求的客户端，返回清理数量"""
        now = self._clock()
        self._last_cleanup = now
        threshold = now - self.window
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= threshold]
        for key in idle:
            del self._hits[key]
        if idle:
            log.debug(f"Cleaned up {len(idle)} idle rate limit buckets", tag="HTTP")
        return len(idle)

    def __len__(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        """重置限制器状态（用于测试）"""
        self._hits.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    限流中间件

    限流器在 lifespan 中按配置创建并挂到 app.state.rate_limiter；
    未创建时（例如 lifespan 之外的测试）不做限流。
    """

    def __init__(self, app, limiter: Optional[SlidingWindowRateLimiter] = None):
        super().__init__(app)
        self.limiter = limiter

    def _get_limiter(self, request: Request) -> Optional[SlidingWindowRateLimiter]:
        if self.limiter is not None:
            return self.limiter
        return getattr(request.app.state, "rate_limiter", None)

    async def dispatch(self, request: Request, call_next):
        limiter = self._get_limiter(request)
        client = request.client.host if request.client else "unknown"
        if limiter is not None and not limiter.allow(client):
            log.warning(f"Rate limited {client} on {request.url.path}", tag="HTTP")
            return JSONResponse(status_code=429, content={"error": RATE_LIMIT_MESSAGE})
        return await call_next(request)
