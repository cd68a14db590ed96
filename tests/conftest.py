"""
测试公共夹具

- FakeEmbedder: 关键词 -> 固定向量，无网络
- FakeCompletion: 记录调用参数，返回预设结果或预设的流式 chunk
- make_services: 组装一个不依赖上游的 Services
"""

import os
import sys
from typing import Any, Dict, List, Optional, Sequence

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config import Settings
from mcp2api.context_builder import ContextBuilder
from mcp2api.document_store import DocumentStore
from mcp2api.errors import ProviderError
from mcp2api.models import ChatCompletion
from mcp2api.services import Services
from mcp2api.session_memory import SessionMemory
from mcp2api.tools import ToolDispatcher

KEYWORD_VECTORS = {
    "python": [1.0, 0.0, 0.0],
    "rust": [0.0, 1.0, 0.0],
    "cooking": [0.0, 0.0, 1.0],
}


class FakeEmbedder:
    def __init__(self, fail: bool = False):
        self.calls: List[List[str]] = []
        self.fail = fail

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise ProviderError("embedding backend unavailable")
        vectors = []
        for text in texts:
            lowered = text.lower()
            vector = [0.1, 0.1, 0.1]
            for keyword, kw_vector in KEYWORD_VECTORS.items():
                if keyword in lowered:
                    vector = list(kw_vector)
                    break
            vectors.append(vector)
        return vectors


class FakeCompletion:
    def __init__(
        self,
        completion: Optional[ChatCompletion] = None,
        chunks: Optional[List[Any]] = None,
    ):
        self.completion = completion or ChatCompletion(text="ok")
        self.chunks = chunks or []
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, **kwargs) -> ChatCompletion:
        self.calls.append({"messages": list(messages), **kwargs})
        if isinstance(self.completion, Exception):
            raise self.completion
        return self.completion

    async def stream(self, messages, **kwargs):
        self.calls.append({"messages": list(messages), "stream": True, **kwargs})
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


def make_services(
    tmp_path,
    *,
    completion: Optional[FakeCompletion] = None,
    embedder: Optional[FakeEmbedder] = None,
    bearer: Optional[str] = None,
    web_allowlist: Sequence[str] = (),
    file_allowlist: Sequence[str] = (),
    http_client=None,
) -> Services:
    settings = Settings(
        openai_api_key="sk-test",
        bearer=bearer,
        rag_path=str(tmp_path / "rag_store.json"),
        allow_web_fetch=tuple(web_allowlist),
        allow_file_read=tuple(file_allowlist),
        sse_ping_interval=0.01,
    )
    embedder = embedder or FakeEmbedder()
    store = DocumentStore.open(settings.rag_path, embedder)
    sessions = SessionMemory()
    return Services(
        settings=settings,
        embedder=embedder,
        completion=completion or FakeCompletion(),
        store=store,
        sessions=sessions,
        context=ContextBuilder(embedder, store, sessions),
        tools=ToolDispatcher(
            web_allowlist=web_allowlist,
            file_allowlist=file_allowlist,
            http_client=http_client,
        ),
    )


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()
