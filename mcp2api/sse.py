"""
SSE 工具函数

- format_sse_event: 构造 `event: x\\ndata: {...}\\n\\n` 帧
- parse_sse_line: 解析上游单行 SSE 数据
- heartbeat_events: /sse 端点的 ready + 周期 ping 事件流
"""

import asyncio
import json
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from log import log

__all__ = [
    "DONE_SENTINEL",
    "format_sse_event",
    "parse_sse_line",
    "heartbeat_events",
]

DONE_SENTINEL = "[DONE]"


def format_sse_event(event: str, data: Dict[str, Any]) -> bytes:
    payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n".encode("utf-8")


def parse_sse_line(line: str) -> Optional[str]:
    """
    解析单行 SSE 数据

    Args:
        line: SSE 格式的行

    Returns:
        `data:` 之后的负载字符串；空行、注释行、event/id 等非数据行返回 None
    """
    line = line.strip()
    if not line or not line.startswith("data:"):
        return None
    return line[5:].strip()


async def heartbeat_events(
    session_id: str,
    *,
    interval: float = 25.0,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    clock: Callable[[], float] = time.time,
) -> AsyncIterator[bytes]:
    """
    先发送一个 ready 事件，之后每 interval 秒发送一个 ping，直到客户端断开。

    连接关闭时 Starlette 会取消生成器，sleep 随之被取消，不会留下悬挂的定时器。
    """
    yield format_sse_event("ready", {"message": "MCP server ready", "sessionId": session_id})
    pings = 0
    try:
        while True:
            await asyncio.sleep(interval)
            if is_disconnected is not None and await is_disconnected():
                break
            pings += 1
            yield format_sse_event("ping", {"t": int(clock() * 1000)})
    finally:
        log.debug(f"heartbeat stopped for session={session_id} after {pings} pings", tag="SSE")
