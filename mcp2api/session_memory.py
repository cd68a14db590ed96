"""
短期会话记忆

每个 session 一个有界消息队列（默认 50 条），满了之后从最旧的开始淘汰。
只存在于进程内存中，重启即丢失。
"""

from collections import deque
from typing import Deque, Dict, List

from .models import Message

__all__ = ["MAX_SESSION_MESSAGES", "SessionMemory"]

MAX_SESSION_MESSAGES = 50


class SessionMemory:
    """session_id -> 最近的消息"""

    def __init__(self, max_messages: int = MAX_SESSION_MESSAGES):
        if max_messages <= 0:
            raise ValueError("max_messages must be positive")
        self.max_messages = max_messages
        self._sessions: Dict[str, Deque[Message]] = {}

    def _log_for(self, session_id: str) -> Deque[Message]:
        messages = self._sessions.get(session_id)
        if messages is None:
            messages = deque(maxlen=self.max_messages)
            self._sessions[session_id] = messages
        return messages

    def get(self, session_id: str) -> List[Message]:
        """返回该 session 的全部消息（不存在时创建空 session）"""
        return list(self._log_for(session_id))

    def push(self, session_id: str, message: Message) -> None:
        # deque(maxlen) 追加时自动丢弃最旧的一条
        self._log_for(session_id).append(message)

    def recent(self, session_id: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        return self.get(session_id)[-limit:]

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
