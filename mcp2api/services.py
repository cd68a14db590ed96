"""
进程级服务容器

lifespan 启动时构建一次并挂到 app.state.services，路由通过 get_services 依赖取用。
测试可以直接构造 Services 注入假的 embedder / completion。
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from config import Settings
from log import log

from .context_builder import ContextBuilder
from .document_store import DocumentStore, Embedder
from .httpx_client import HttpxClientManager
from .openai_api import CompletionClient, EmbeddingClient
from .session_memory import SessionMemory
from .tools import ToolDispatcher

__all__ = ["Services", "build_services", "get_services"]


@dataclass
class Services:
    settings: Settings
    embedder: Embedder
    completion: CompletionClient
    store: DocumentStore
    sessions: SessionMemory
    context: ContextBuilder
    tools: ToolDispatcher


def build_services(
    settings: Settings, http_client: Optional[HttpxClientManager] = None
) -> Services:
    """
    按配置构建全部服务

    Raises:
        StoreError: 文档库文件存在但已损坏
    """
    http = http_client or HttpxClientManager(proxy=settings.proxy)
    embedder = EmbeddingClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.embedding_model,
        http_client=http,
        timeout=settings.provider_timeout,
    )
    completion = CompletionClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.model,
        http_client=http,
        timeout=settings.provider_timeout,
    )
    store = DocumentStore.open(settings.rag_path, embedder)
    sessions = SessionMemory()
    tools = ToolDispatcher(
        web_allowlist=settings.allow_web_fetch,
        file_allowlist=settings.allow_file_read,
        http_client=http,
    )

    if not settings.has_api_key:
        log.warning("OPENAI_API_KEY is not set, provider calls will fail", tag="CONFIG")
    if not settings.bearer:
        log.warning("BEARER is not set, all endpoints are unauthenticated", tag="CONFIG")

    return Services(
        settings=settings,
        embedder=embedder,
        completion=completion,
        store=store,
        sessions=sessions,
        context=ContextBuilder(embedder, store, sessions),
        tools=tools,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
