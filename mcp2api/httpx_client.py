"""
通用的HTTP客户端模块

为所有需要发起 HTTP 请求的模块（embedding、chat completion、web_fetch 工具）
提供统一的 httpx 客户端配置：
- 代理支持（PROXY）
- 统一超时
- 可注入 transport（测试中使用 httpx.MockTransport）
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional, Union

import httpx

from log import log

__all__ = ["HttpxClientManager", "safe_close_client"]


class HttpxClientManager:
    """
    HTTP 客户端管理器

    每次调用 get_client() 创建一个短生命周期的 httpx.AsyncClient，
    退出上下文时关闭。
    """

    def __init__(
        self,
        *,
        proxy: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            proxy: 出站代理 URL
            transport: 自定义 transport（测试用）
        """
        self._proxy = proxy
        self._transport = transport

    def get_client_kwargs(
        self, timeout: Union[float, httpx.Timeout, None] = 30.0, **kwargs
    ) -> Dict[str, Any]:
        """
        获取httpx客户端的通用配置参数

        Args:
            timeout: 请求超时时间（秒）或 httpx.Timeout
            **kwargs: 其他参数

        Returns:
            客户端配置字典
        """
        client_kwargs: Dict[str, Any] = {"timeout": timeout, **kwargs}
        if self._transport is not None:
            client_kwargs["transport"] = self._transport
        elif self._proxy:
            client_kwargs["proxy"] = self._proxy
        return client_kwargs

    @asynccontextmanager
    async def get_client(
        self, timeout: Union[float, httpx.Timeout, None] = 30.0, **kwargs
    ) -> AsyncGenerator[httpx.AsyncClient, None]:
        """
        获取配置好的异步HTTP客户端

        Args:
            timeout: 请求超时时间（秒）
            **kwargs: 透传给 httpx.AsyncClient 的其他参数

        Yields:
            httpx.AsyncClient 实例
        """
        client = httpx.AsyncClient(**self.get_client_kwargs(timeout=timeout, **kwargs))
        try:
            yield client
        finally:
            await safe_close_client(client)


async def safe_close_client(client: Optional[httpx.AsyncClient]) -> None:
    """
    安全地关闭 HTTP 客户端

    客户端已关闭时 httpx 会抛出 RuntimeError，这里记录后忽略。
    """
    if client is None or client.is_closed:
        return
    try:
        await client.aclose()
    except RuntimeError as e:
        log.debug(f"[HttpxClient] Client already closed: {e}")
