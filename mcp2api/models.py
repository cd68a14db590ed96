"""
核心数据类型

- Message / Document: 会话消息与 RAG 文档
- ToolCall / Usage / ChatCompletion: 上游 chat completion 的结构化结果
- StreamDelta / StreamDone / StreamMalformed: 上游流式 chunk 的三种形态
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

__all__ = [
    "ROLES",
    "Message",
    "Document",
    "ToolCall",
    "Usage",
    "ChatCompletion",
    "StreamDelta",
    "StreamDone",
    "StreamMalformed",
    "StreamChunk",
]

ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class Message:
    """内部消息格式（OpenAI chat 形状）"""

    role: str
    content: str

    def to_openai(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Document:
    """RAG 文档"""

    id: str
    """唯一 ID (doc_<ms>_<random>)"""

    text: str
    """原文"""

    metadata: Optional[Dict[str, Any]] = None
    """调用方附带的任意元数据"""

    embedding: Optional[Tuple[float, ...]] = None
    """向量；缺失时文档仍保留在库中，但不参与检索"""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "text": self.text}
        if self.metadata is not None:
            data["metadata"] = self.metadata
        if self.embedding is not None:
            data["embedding"] = list(self.embedding)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        # 兼容旧版快照里的 "meta" 字段
        metadata = data.get("metadata", data.get("meta"))
        embedding = data.get("embedding")
        return cls(
            id=str(data["id"]),
            text=str(data.get("text", "")),
            metadata=metadata,
            embedding=tuple(float(v) for v in embedding) if embedding else None,
        )


@dataclass(frozen=True)
class ToolCall:
    """上游请求的一次工具调用"""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    raw_arguments: str = ""
    arguments_valid: bool = True


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass(frozen=True)
class ChatCompletion:
    """非流式 chat completion 的结果"""

    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Usage = field(default_factory=Usage)
    model: str = ""

    @property
    def requested_tools(self) -> bool:
        return bool(self.tool_calls)


@dataclass(frozen=True)
class StreamDelta:
    """一个已解析的增量 chunk；text 可能为空（如只带 role 或 finish_reason）"""

    text: str = ""
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class StreamDone:
    """上游终止哨兵 (data: [DONE])"""


@dataclass(frozen=True)
class StreamMalformed:
    """无法解析的 data 行；重组器会直接跳过"""

    line: str
    reason: str = ""


StreamChunk = Union[StreamDelta, StreamDone, StreamMalformed]
