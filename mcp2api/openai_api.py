"""
OpenAI 上游客户端

- EmbeddingClient: POST /embeddings，文本 -> 向量
- CompletionClient: POST /chat/completions，支持一次性和流式两种模式

上游响应统一解析为 models.py 中的结构化类型（ChatCompletion / StreamChunk），
任何上游失败都以 ProviderError 抛出，由请求边界统一处理。
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from config import PLACEHOLDER_API_KEYS
from log import log

from .errors import ParseError, ProviderError
from .httpx_client import HttpxClientManager
from .models import (
    ChatCompletion,
    Message,
    StreamChunk,
    StreamDelta,
    StreamDone,
    StreamMalformed,
    ToolCall,
    Usage,
)
from .sse import DONE_SENTINEL, parse_sse_line

__all__ = [
    "EmbeddingClient",
    "CompletionClient",
    "parse_chat_completion",
    "parse_chat_chunk",
]


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text[:500]


class _OpenAIBase:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        http_client: Optional[HttpxClientManager] = None,
        timeout: float = 120.0,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http_client or HttpxClientManager()
        self._timeout = timeout

    def _headers(self) -> Dict[str, str]:
        if self._api_key in PLACEHOLDER_API_KEYS:
            raise ProviderError("OPENAI_API_KEY is not configured; set it in the environment or .env")
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _post_json(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = self._headers()
        url = f"{self._base_url}{path}"
        try:
            async with self._http.get_client(timeout=self._timeout) as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(f"Provider request to {path} failed: {e}") from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            log.warning(f"{path} returned {response.status_code}: {detail}", tag="PROVIDER")
            raise ProviderError(
                f"Provider returned {response.status_code}: {detail}",
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Provider returned a non-JSON body for {path}") from e
        if not isinstance(data, dict):
            raise ProviderError(f"Provider returned an unexpected body for {path}")
        return data


class EmbeddingClient(_OpenAIBase):
    """文本 -> 定长向量"""

    def __init__(self, *, model: str = "text-embedding-3-large", **kwargs):
        super().__init__(**kwargs)
        self.model = model

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        为每个输入文本生成一个向量

        Returns:
            与输入一一对应、顺序一致的向量列表

        Raises:
            ProviderError: 缺少 API key、上游失败或返回数量不匹配
        """
        texts = list(texts)
        if not texts:
            return []

        with log.timer("embed", tag="PROVIDER", count=len(texts)):
            data = await self._post_json("/embeddings", {"model": self.model, "input": texts})

        items = data.get("data")
        if not isinstance(items, list) or len(items) != len(texts):
            got = len(items) if isinstance(items, list) else 0
            raise ProviderError(f"Embedding response has {got} vectors for {len(texts)} inputs")
        if not all(isinstance(item, dict) for item in items):
            raise ProviderError("Embedding response contains malformed items")

        # 上游按 index 标注顺序，这里显式排序保证与输入一致
        items = sorted(items, key=lambda item: item.get("index", 0))
        vectors: List[List[float]] = []
        for item in items:
            embedding = item.get("embedding")
            if not isinstance(embedding, list):
                raise ProviderError("Embedding response item is missing 'embedding'")
            vectors.append([float(v) for v in embedding])
        return vectors


def _parse_tool_calls(raw_calls: Any) -> List[ToolCall]:
    if not isinstance(raw_calls, list):
        return []

    tool_calls: List[ToolCall] = []
    for idx, tc in enumerate(raw_calls):
        if not isinstance(tc, dict):
            continue
        fn = tc.get("function") or {}
        name = fn.get("name") or "unknown"
        raw_arguments = fn.get("arguments")

        arguments: Dict[str, Any] = {}
        valid = True
        if isinstance(raw_arguments, dict):
            arguments = raw_arguments
            raw_arguments = json.dumps(raw_arguments, ensure_ascii=False)
        elif isinstance(raw_arguments, str) and raw_arguments.strip():
            try:
                parsed = json.loads(raw_arguments)
            except json.JSONDecodeError:
                valid = False
            else:
                if isinstance(parsed, dict):
                    arguments = parsed
                else:
                    valid = False
        else:
            raw_arguments = ""

        tool_calls.append(
            ToolCall(
                id=tc.get("id") or f"call_{idx}",
                name=name,
                arguments=arguments,
                raw_arguments=raw_arguments or "",
                arguments_valid=valid,
            )
        )
    return tool_calls


def parse_chat_completion(data: Dict[str, Any]) -> ChatCompletion:
    """将 /chat/completions 的 JSON 响应解析为 ChatCompletion"""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise ProviderError("Provider response has no choices")

    choice = choices[0]
    message = choice.get("message") or {}
    content = message.get("content")
    usage = data.get("usage") or {}

    return ChatCompletion(
        text=content if isinstance(content, str) else "",
        tool_calls=_parse_tool_calls(message.get("tool_calls")),
        finish_reason=choice.get("finish_reason"),
        usage=Usage(
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
        ),
        model=str(data.get("model") or ""),
    )


def _decode_chunk_payload(payload: str) -> Dict[str, Any]:
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid JSON in stream chunk: {e.msg}") from e
    if not isinstance(obj, dict):
        raise ParseError("stream chunk is not a JSON object")
    return obj


def parse_chat_chunk(payload: str) -> StreamChunk:
    """
    解析一个流式 data 负载

    Returns:
        StreamDone / StreamDelta / StreamMalformed

    Raises:
        ProviderError: 上游在流中返回了 error 对象
    """
    if payload == DONE_SENTINEL:
        return StreamDone()

    try:
        obj = _decode_chunk_payload(payload)
    except ParseError as e:
        return StreamMalformed(line=payload, reason=str(e))

    error = obj.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise ProviderError(f"Provider stream error: {message}")

    choices = obj.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        # 例如只带 usage 的尾部 chunk
        return StreamDelta()

    choice = choices[0]
    delta = choice.get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return StreamDelta(
        text=content if isinstance(content, str) else "",
        finish_reason=choice.get("finish_reason"),
    )


class CompletionClient(_OpenAIBase):
    """chat completion 上游"""

    def __init__(self, *, model: str = "gpt-4o-mini", **kwargs):
        super().__init__(**kwargs)
        self.model = model

    def _build_body(
        self,
        messages: Sequence[Message],
        *,
        model: Optional[str],
        max_tokens: Optional[int],
        temperature: Optional[float],
        stream: bool,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": model or self.model,
            "messages": [m.to_openai() for m in messages],
            "stream": stream,
        }
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if tools:
            body["tools"] = tools
        return body

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = 0.7,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatCompletion:
        """一次性请求，返回完整结果"""
        body = self._build_body(
            messages, model=model, max_tokens=max_tokens,
            temperature=temperature, stream=False, tools=tools,
        )
        with log.timer("chat_completion", tag="PROVIDER", model=body["model"]):
            data = await self._post_json("/chat/completions", body)
        return parse_chat_completion(data)

    async def stream(
        self,
        messages: Sequence[Message],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        """
        流式请求，按到达顺序逐个产出解析后的 chunk

        收到 [DONE] 后产出 StreamDone 并结束；上游提前断开时直接结束。

        Raises:
            ProviderError: 上游返回错误状态码、传输中断或流内 error 对象
        """
        headers = self._headers()
        body = self._build_body(
            messages, model=model, max_tokens=max_tokens,
            temperature=temperature, stream=True,
        )
        url = f"{self._base_url}/chat/completions"
        # 读超时即两个 chunk 之间允许的最长等待
        timeout = httpx.Timeout(self._timeout, connect=min(self._timeout, 10.0))

        try:
            async with self._http.get_client(timeout=timeout) as client:
                async with client.stream("POST", url, json=body, headers=headers) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        detail = _error_detail(response)
                        raise ProviderError(
                            f"Provider returned {response.status_code}: {detail}",
                            upstream_status=response.status_code,
                        )

                    async for line in response.aiter_lines():
                        payload = parse_sse_line(line)
                        if payload is None:
                            continue
                        chunk = parse_chat_chunk(payload)
                        yield chunk
                        if isinstance(chunk, StreamDone):
                            return
        except httpx.HTTPError as e:
            raise ProviderError(f"Provider stream failed: {e}") from e
