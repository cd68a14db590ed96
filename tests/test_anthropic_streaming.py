"""
测试流式重组

验证事件顺序、只收尾一次、坏 chunk 被跳过、上游错误只产生一个 error 事件
"""

import json
from typing import List

import pytest

from mcp2api.anthropic_streaming import (
    StreamReframer,
    StreamState,
    openai_stream_to_anthropic_sse,
)
from mcp2api.errors import ProviderError
from mcp2api.models import StreamDelta, StreamDone, StreamMalformed


def _parse_events(frames: List[bytes]):
    events = []
    for frame in frames:
        text = frame.decode("utf-8")
        assert text.endswith("\n\n")
        event_line, data_line = text.strip().split("\n")
        assert event_line.startswith("event: ")
        assert data_line.startswith("data: ")
        events.append((event_line[7:], json.loads(data_line[6:])))
    return events


async def _agen(items):
    for item in items:
        if isinstance(item, Exception):
            raise item
        yield item


async def _collect(chunks) -> List[bytes]:
    return [
        frame
        async for frame in openai_stream_to_anthropic_sse(
            _agen(chunks), message_id="msg_test", model="claude-test"
        )
    ]


class TestStreamReframer:
    """测试状态机"""

    def test_hello_world(self):
        reframer = StreamReframer("msg_1", "m")
        frames = []
        for chunk in (StreamDelta(text="Hello"), StreamDelta(text=" world"), StreamDone()):
            frames.extend(reframer.on_chunk(chunk))

        events = _parse_events(frames)
        assert [name for name, _ in events] == ["content_block_delta", "content_block_delta", "message_stop"]
        assert events[0][1] == {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": "Hello"},
        }
        assert events[1][1]["delta"]["text"] == " world"
        stop = events[2][1]
        assert stop["message"]["content"] == [{"type": "text", "text": "Hello world"}]
        assert stop["message"]["id"] == "msg_1"
        assert reframer.state is StreamState.CLOSED

    def test_state_transitions(self):
        reframer = StreamReframer("msg_1", "m")
        assert reframer.state is StreamState.OPEN
        reframer.on_chunk(StreamDelta(text="a"))
        assert reframer.state is StreamState.STREAMING

    def test_empty_deltas_emit_nothing(self):
        reframer = StreamReframer("msg_1", "m")
        assert reframer.on_chunk(StreamDelta(text="")) == []
        assert reframer.on_chunk(StreamDelta(finish_reason="stop")) == []
        assert reframer.state is StreamState.OPEN

    def test_malformed_chunk_is_skipped(self):
        reframer = StreamReframer("msg_1", "m")
        reframer.on_chunk(StreamDelta(text="a"))
        assert reframer.on_chunk(StreamMalformed(line="{bad")) == []
        assert reframer.state is StreamState.STREAMING
        assert reframer.malformed_skipped == 1

    def test_no_output_after_terminal(self):
        reframer = StreamReframer("msg_1", "m")
        assert len(reframer.on_chunk(StreamDone())) == 1
        assert reframer.on_chunk(StreamDelta(text="late")) == []
        assert reframer.on_chunk(StreamDone()) == []
        assert reframer.finish() == []
        assert reframer.fail("boom") == []

    def test_fail_emits_single_error(self):
        reframer = StreamReframer("msg_1", "m")
        reframer.on_chunk(StreamDelta(text="partial"))
        events = _parse_events(reframer.fail("upstream reset"))
        assert events == [
            ("error", {"type": "error", "error": {"type": "api_error", "message": "upstream reset"}})
        ]
        assert reframer.state is StreamState.ERRORED
        assert reframer.finish() == []


class TestOpenAIStreamToAnthropicSSE:
    """测试异步转换器"""

    @pytest.mark.asyncio
    async def test_full_stream(self):
        frames = await _collect(
            [StreamDelta(text="Hello"), StreamMalformed(line="x"), StreamDelta(text=" world"), StreamDone()]
        )
        events = _parse_events(frames)
        assert [name for name, _ in events] == ["content_block_delta", "content_block_delta", "message_stop"]
        assert events[-1][1]["message"]["content"][0]["text"] == "Hello world"
        assert events[-1][1]["message"]["model"] == "claude-test"

    @pytest.mark.asyncio
    async def test_stream_without_done_is_still_finalized(self):
        events = _parse_events(await _collect([StreamDelta(text="abc")]))
        assert [name for name, _ in events] == ["content_block_delta", "message_stop"]

    @pytest.mark.asyncio
    async def test_provider_error_mid_stream(self):
        frames = await _collect([StreamDelta(text="Hel"), ProviderError("connection reset")])
        events = _parse_events(frames)
        assert [name for name, _ in events] == ["content_block_delta", "error"]
        assert events[1][1]["error"]["message"] == "connection reset"

    @pytest.mark.asyncio
    async def test_error_before_any_delta(self):
        events = _parse_events(await _collect([ProviderError("401 from provider")]))
        assert len(events) == 1
        assert events[0][0] == "error"

    @pytest.mark.asyncio
    async def test_source_is_closed(self):
        closed = []

        async def source():
            try:
                yield StreamDelta(text="a")
                yield StreamDone()
                yield StreamDelta(text="never")
            finally:
                closed.append(True)

        frames = [
            f async for f in openai_stream_to_anthropic_sse(source(), message_id="m", model="m")
        ]
        assert len(frames) == 2
        assert closed == [True]
