"""
RAG 上下文组装

build() 的输出顺序固定为: system, 历史消息..., 当前 user 消息。
上游据此区分指令和对话，顺序不能变。
"""

from typing import List, Sequence

from log import log

from .document_store import DocumentStore, Embedder
from .models import Message
from .session_memory import SessionMemory
from .vector_index import ScoredDocument

__all__ = ["ContextBuilder", "SYSTEM_INSTRUCTIONS", "format_context"]

TOP_K_DOCUMENTS = 5
HISTORY_MESSAGES = 12

SYSTEM_INSTRUCTIONS = (
    "You are an MCP server assistant. You have tools (web_fetch, file_read).\n"
    "\n"
    "Guidelines:\n"
    "- Use provided CONTEXT for factual answers.\n"
    "- If uncertain, say so.\n"
    "- Keep outputs concise but accurate."
)


def format_context(hits: Sequence[ScoredDocument]) -> str:
    return "\n\n".join(f"# Doc (score={hit.score:.3f})\n{hit.document.text}" for hit in hits)


class ContextBuilder:
    def __init__(
        self,
        embedder: Embedder,
        store: DocumentStore,
        sessions: SessionMemory,
        *,
        top_k: int = TOP_K_DOCUMENTS,
        history_limit: int = HISTORY_MESSAGES,
    ):
        self._embedder = embedder
        self._store = store
        self._sessions = sessions
        self.top_k = top_k
        self.history_limit = history_limit

    async def build(self, session_id: str, user_text: str) -> List[Message]:
        """
        组装发给上游的消息列表

        Raises:
            ProviderError: 查询文本 embedding 失败
        """
        query_vector = (await self._embedder.embed([user_text]))[0]
        hits = self._store.search(query_vector, self.top_k)
        log.debug(
            f"retrieved {len(hits)} docs for session={session_id}",
            tag="RAG",
            scores=[round(hit.score, 3) for hit in hits],
        )

        system = Message(
            role="system",
            content=f"{SYSTEM_INSTRUCTIONS}\n\nCONTEXT:\n{format_context(hits)}",
        )
        history = self._sessions.recent(session_id, self.history_limit)
        return [system, *history, Message(role="user", content=user_text)]
