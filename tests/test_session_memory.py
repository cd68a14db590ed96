"""
测试 SessionMemory
"""

import pytest

from mcp2api.models import Message
from mcp2api.session_memory import MAX_SESSION_MESSAGES, SessionMemory


class TestSessionMemory:
    """测试有界会话记忆"""

    def test_unknown_session_is_created_empty(self):
        memory = SessionMemory()
        assert memory.get("new") == []
        assert "new" in memory

    def test_keeps_only_most_recent_messages(self):
        """推入 60 条后只保留最后 50 条，顺序不变"""
        memory = SessionMemory()
        for i in range(60):
            memory.push("s", Message(role="user", content=str(i)))

        messages = memory.get("s")
        assert len(messages) == MAX_SESSION_MESSAGES
        assert [m.content for m in messages] == [str(i) for i in range(10, 60)]

    def test_recent_returns_tail(self):
        memory = SessionMemory()
        for i in range(5):
            memory.push("s", Message(role="assistant", content=str(i)))
        assert [m.content for m in memory.recent("s", 2)] == ["3", "4"]
        assert memory.recent("s", 0) == []

    def test_sessions_are_isolated(self):
        memory = SessionMemory(max_messages=3)
        memory.push("a", Message(role="user", content="hello"))
        assert memory.get("b") == []
        assert len(memory) == 2

    def test_get_returns_copy(self):
        memory = SessionMemory()
        memory.push("s", Message(role="user", content="x"))
        snapshot = memory.get("s")
        snapshot.clear()
        assert len(memory.get("s")) == 1

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            SessionMemory(max_messages=0)
