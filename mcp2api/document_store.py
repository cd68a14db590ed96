"""
RAG 文档库 - 单个 JSON 快照文件

磁盘格式: {"docs": [{"id", "text", "metadata"?, "embedding"?}, ...]}

- 启动时整体加载；文件不存在视为空库
- 每次写入都整体覆盖快照（临时文件 + os.replace），不做增量写
- ingest 的读-改-写在同一个实例内通过 asyncio.Lock 串行化
"""

import asyncio
import json
import os
import secrets
import tempfile
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from log import log

from .errors import StoreError
from .models import Document
from .vector_index import ScoredDocument, top_k

__all__ = ["Embedder", "DocumentStore", "generate_document_id"]

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class Embedder(Protocol):
    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_document_id() -> str:
    """doc_<毫秒时间戳>_<随机后缀>"""
    return f"doc_{int(time.time() * 1000)}_{_base36(secrets.randbits(52))}"


class DocumentStore:
    """
    文档库

    内存中的文档列表是权威数据，磁盘快照只在 load() 和每次写入后与之对齐。
    """

    def __init__(self, path: str, embedder: Embedder):
        self.path = path
        self._embedder = embedder
        self._docs: List[Document] = []
        self._write_lock = asyncio.Lock()

    @classmethod
    def open(cls, path: str, embedder: Embedder) -> "DocumentStore":
        store = cls(path, embedder)
        store.load()
        return store

    @property
    def documents(self) -> Tuple[Document, ...]:
        return tuple(self._docs)

    def __len__(self) -> int:
        return len(self._docs)

    def load(self) -> List[Document]:
        """
        从磁盘加载快照

        Raises:
            StoreError: 文件存在但内容无法解析（宁可启动失败也不覆盖已有数据）
        """
        if not os.path.exists(self.path):
            log.info(f"No document store at {self.path}, starting empty", tag="STORE")
            self._docs = []
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read document store {self.path}: {e}") from e

        entries: Any = raw.get("docs", []) if isinstance(raw, dict) else raw
        if not isinstance(entries, list):
            raise StoreError(f"Document store {self.path} has no 'docs' list")

        try:
            docs = [Document.from_dict(entry) for entry in entries]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StoreError(f"Document store {self.path} contains an invalid document: {e}") from e

        self._docs = docs
        log.info(f"Loaded {len(docs)} documents from {self.path}", tag="STORE")
        return list(docs)

    def _snapshot(self) -> Dict[str, Any]:
        return {"docs": [doc.to_dict() for doc in self._docs]}

    def save(self) -> None:
        """整体写入快照"""
        snapshot = self._snapshot()
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=".rag_store.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"Cannot write document store {self.path}: {e}") from e

    async def ingest(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> Document:
        """
        生成 embedding、追加文档并立即落盘

        Raises:
            ProviderError: embedding 失败（不会写入任何内容）
            StoreError: 快照写入失败
        """
        vectors = await self._embedder.embed([text])
        embedding = tuple(vectors[0])

        async with self._write_lock:
            existing = {doc.id for doc in self._docs}
            doc_id = generate_document_id()
            while doc_id in existing:
                doc_id = generate_document_id()

            doc = Document(id=doc_id, text=text, metadata=metadata, embedding=embedding)
            self._docs.append(doc)
            try:
                await asyncio.to_thread(self.save)
            except StoreError:
                self._docs.pop()
                raise

        log.info(f"Ingested {doc.id} ({len(text)} chars), store size={len(self._docs)}", tag="STORE")
        return doc

    def search(self, query_vector: Sequence[float], k: int = 5) -> List[ScoredDocument]:
        return top_k(query_vector, self._docs, k)
