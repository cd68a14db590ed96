"""
Anthropic Messages <-> OpenAI Chat Completions 格式转换

请求方向：
- Anthropic content blocks 扁平化为纯文本（只保留 type=text 的块，用换行拼接）
- 顶层 system 字段转成第一条 system 消息
- Anthropic tools ({name, description, input_schema}) 转 OpenAI function tools

响应方向（非流式）：
- ChatCompletion -> Anthropic message 对象
- 上游请求了工具调用时，按顺序逐个执行，结果追加在原文之后
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional

from log import log

from .errors import ValidationError
from .models import ROLES, ChatCompletion, Message, ToolCall
from .tools import TOOL_DEFINITIONS, ToolDispatcher, ToolOutput

__all__ = [
    "flatten_content",
    "anthropic_messages_to_internal",
    "anthropic_tools_to_openai",
    "resolve_model",
    "generate_message_id",
    "run_tool_calls",
    "build_anthropic_response",
    "estimate_input_tokens",
]

TOOL_RESULTS_HEADER = "[Tool Results]"


def flatten_content(content: Any) -> str:
    """
    把一条消息的 content 扁平化为文本

    - str: 原样返回
    - list: 只取 type == "text" 的块，用换行拼接；image / tool_use 等块忽略
    - None: 空字符串
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    texts.append(text)
        return "\n".join(texts)
    raise ValidationError("message content must be a string or a list of content blocks")


def anthropic_messages_to_internal(
    messages: Any, system: Any = None
) -> List[Message]:
    """
    Anthropic messages (+ 可选的顶层 system) -> 内部 Message 列表

    Raises:
        ValidationError: messages 不是列表、某条消息缺少合法 role
    """
    if not isinstance(messages, list):
        raise ValidationError("messages must be a list")

    result: List[Message] = []
    system_text = flatten_content(system) if system else ""
    if system_text:
        result.append(Message(role="system", content=system_text))

    for idx, msg in enumerate(messages):
        if not isinstance(msg, dict):
            raise ValidationError(f"messages[{idx}] must be an object")
        role = msg.get("role")
        if role not in ROLES:
            raise ValidationError(f"messages[{idx}].role must be one of {', '.join(ROLES)}")
        result.append(Message(role=role, content=flatten_content(msg.get("content"))))
    return result


def anthropic_tools_to_openai(tools: Any) -> List[Dict[str, Any]]:
    """
    Anthropic tools -> OpenAI function tools

    已经是 OpenAI 格式的条目原样透传；没有声明任何工具时使用内置的 web_fetch / file_read。
    """
    if not isinstance(tools, list) or not tools:
        return TOOL_DEFINITIONS

    converted: List[Dict[str, Any]] = []
    for tool in tools:
        if not isinstance(tool, dict):
            continue
        if tool.get("type") == "function" and isinstance(tool.get("function"), dict):
            converted.append(tool)
            continue
        name = tool.get("name")
        if not isinstance(name, str) or not name:
            log.debug(f"Skipping tool without a name: {tool!r}", tag="TRANSLATE")
            continue
        converted.append(
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": tool.get("description", ""),
                    "parameters": tool.get("input_schema") or {"type": "object", "properties": {}},
                },
            }
        )
    return converted or TOOL_DEFINITIONS


def resolve_model(requested: Optional[str], default: str) -> str:
    """
    决定实际发给上游的模型名

    Claude 客户端总是携带 claude-* 模型名，上游不认识，统一换成默认模型。
    """
    if not requested or not isinstance(requested, str):
        return default
    if requested.lower().startswith("claude"):
        return default
    return requested


def generate_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


async def _run_tool_call(tool_call: ToolCall, dispatcher: ToolDispatcher) -> ToolOutput:
    if not tool_call.arguments_valid:
        return ToolOutput(
            tool=tool_call.name,
            content=f"Error: Invalid JSON arguments for {tool_call.name}: {tool_call.raw_arguments[:200]}",
        )
    return await dispatcher.dispatch(tool_call.name, tool_call.arguments)


async def run_tool_calls(
    tool_calls: List[ToolCall], dispatcher: ToolDispatcher
) -> List[Dict[str, Any]]:
    """按顺序执行工具调用（不并行，保证结果顺序可追溯）"""
    results: List[Dict[str, Any]] = []
    for tool_call in tool_calls:
        output = await _run_tool_call(tool_call, dispatcher)
        results.append(
            {"tool": tool_call.name, "result": output.content, "truncated": output.truncated}
        )
    return results


async def build_anthropic_response(
    completion: ChatCompletion,
    *,
    model: str,
    dispatcher: ToolDispatcher,
    message_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    ChatCompletion -> Anthropic Messages 响应

    Args:
        completion: 上游结果
        model: 回显给客户端的模型名（客户端请求的那个）
        dispatcher: 工具调度器
        message_id: 可选的固定 ID（测试用）
    """
    text = completion.text
    if completion.requested_tools:
        log.info(
            f"Provider requested {len(completion.tool_calls)} tool call(s): "
            f"{', '.join(tc.name for tc in completion.tool_calls)}",
            tag="TOOL",
        )
        results = await run_tool_calls(completion.tool_calls, dispatcher)
        text = f"{text}\n\n{TOOL_RESULTS_HEADER}\n{json.dumps(results, ensure_ascii=False, indent=2)}"

    return {
        "id": message_id or generate_message_id(),
        "type": "message",
        "role": "assistant",
        "model": model,
        "content": [{"type": "text", "text": text}],
        "stop_reason": "tool_use" if completion.requested_tools else "end_turn",
        "stop_sequence": None,
        "usage": {
            "input_tokens": completion.usage.prompt_tokens,
            "output_tokens": completion.usage.completion_tokens,
        },
    }


def estimate_input_tokens(body: Dict[str, Any]) -> int:
    """粗略估算：每 4 个字符约 1 个 token"""
    total_chars = len(flatten_content(body.get("system"))) if body.get("system") else 0
    messages = body.get("messages") or []
    if isinstance(messages, list):
        for msg in messages:
            if isinstance(msg, dict):
                try:
                    total_chars += len(flatten_content(msg.get("content")))
                except ValidationError:
                    continue
    return max(1, total_chars // 4)
