from __future__ import annotations

import enum
from typing import AsyncIterator, List

from log import log

from .models import StreamChunk, StreamDelta, StreamDone, StreamMalformed
from .sse import format_sse_event

__all__ = ["StreamState", "StreamReframer", "openai_stream_to_anthropic_sse"]


class StreamState(enum.Enum):
    OPEN = "open"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERRORED = "errored"


class StreamReframer:
    """
    OpenAI 增量 chunk -> Anthropic 流式事件

    状态迁移: OPEN -> STREAMING -> CLOSED，任意非终止状态都可以进入 ERRORED。
    进入 CLOSED / ERRORED 之后不再产生任何事件。
    """

    def __init__(self, message_id: str, model: str):
        self.message_id = message_id
        self.model = model
        self.state = StreamState.OPEN
        self._parts: List[str] = []
        self.deltas_sent = 0
        self.malformed_skipped = 0

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def terminal(self) -> bool:
        return self.state in (StreamState.CLOSED, StreamState.ERRORED)

    def on_chunk(self, chunk: StreamChunk) -> List[bytes]:
        if self.terminal:
            return []

        if isinstance(chunk, StreamDone):
            return self.finish()

        if isinstance(chunk, StreamMalformed):
            self.malformed_skipped += 1
            log.debug(f"skipping malformed chunk: {chunk.reason}", tag="STREAM")
            return []

        if isinstance(chunk, StreamDelta) and chunk.text:
            self.state = StreamState.STREAMING
            self._parts.append(chunk.text)
            self.deltas_sent += 1
            return [
                format_sse_event(
                    "content_block_delta",
                    {
                        "type": "content_block_delta",
                        "index": 0,
                        "delta": {"type": "text_delta", "text": chunk.text},
                    },
                )
            ]
        return []

    def finish(self) -> List[bytes]:
        if self.terminal:
            return []
        self.state = StreamState.CLOSED
        return [
            format_sse_event(
                "message_stop",
                {
                    "type": "message_stop",
                    "message": {
                        "id": self.message_id,
                        "type": "message",
                        "role": "assistant",
                        "model": self.model,
                        "content": [{"type": "text", "text": self.text}],
                    },
                },
            )
        ]

    def fail(self, message: str) -> List[bytes]:
        if self.terminal:
            return []
        self.state = StreamState.ERRORED
        return [
            format_sse_event(
                "error",
                {"type": "error", "error": {"type": "api_error", "message": message}},
            )
        ]


async def openai_stream_to_anthropic_sse(
    chunks: AsyncIterator[StreamChunk],
    *,
    message_id: str,
    model: str,
) -> AsyncIterator[bytes]:
    """
    将上游 chunk 流转换为 Anthropic Messages Streaming SSE 字节流。

    上游没有发送 [DONE] 就结束时，同样以 message_stop 收尾；
    上游抛错时只发一个 error 事件并结束。
    """
    state = StreamReframer(message_id=message_id, model=model)
    try:
        async for chunk in chunks:
            for event in state.on_chunk(chunk):
                yield event
            if state.terminal:
                break
        for event in state.finish():
            yield event
    except Exception as e:
        log.error(f"stream {message_id} failed: {e}", tag="STREAM")
        for event in state.fail(str(e)):
            yield event
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
        log.debug(
            f"stream {message_id} ended state={state.state.value} "
            f"deltas={state.deltas_sent} skipped={state.malformed_skipped}",
            tag="STREAM",
        )
