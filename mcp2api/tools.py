"""
工具调度

两个受 allowlist 限制的工具：
- web_fetch(url): url 必须以某个允许的前缀开头
- file_read(path): 先解析为绝对路径（含符号链接），再检查是否位于允许的目录内

输出统一截断到 MAX_TOOL_OUTPUT_CHARS 个字符，并通过 ToolOutput.truncated 标明。
dispatch() 代上游模型调用工具，任何失败都转成 "Error: ..." 文本，结果会被放回对话里。
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import httpx

from log import log

from .errors import AllowlistViolation, BridgeError, NotFound, ToolExecutionError, ValidationError
from .httpx_client import HttpxClientManager

__all__ = [
    "MAX_TOOL_OUTPUT_CHARS",
    "TOOL_DEFINITIONS",
    "ToolOutput",
    "ToolDispatcher",
    "is_within_directory",
]

MAX_TOOL_OUTPUT_CHARS = 8000

# OpenAI function 格式，只用于向上游声明；调用时只校验参数是否存在
TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "web_fetch",
            "description": "Fetch content from an allowlisted URL",
            "parameters": {
                "type": "object",
                "properties": {
                    "url": {"type": "string", "description": "URL to fetch"},
                },
                "required": ["url"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "file_read",
            "description": "Read a text file from an allowlisted directory",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path of the file to read"},
                },
                "required": ["path"],
            },
        },
    },
]


@dataclass(frozen=True)
class ToolOutput:
    tool: str
    content: str
    truncated: bool = False


def _truncate(text: str, limit: int = MAX_TOOL_OUTPUT_CHARS) -> Tuple[str, bool]:
    if len(text) > limit:
        return text[:limit], True
    return text, False


def _require_str(arguments: Mapping[str, Any], key: str) -> str:
    value = arguments.get(key) if isinstance(arguments, Mapping) else None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing required argument: {key}")
    return value.strip()


def is_within_directory(path: str, directory: str) -> bool:
    """按路径分量判断包含关系：/srv/docs-evil 不在 /srv/docs 内"""
    if path == directory:
        return True
    prefix = directory if directory.endswith(os.sep) else directory + os.sep
    return path.startswith(prefix)


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8", errors="replace")


class ToolDispatcher:
    def __init__(
        self,
        *,
        web_allowlist: Iterable[str] = (),
        file_allowlist: Iterable[str] = (),
        http_client: Optional[HttpxClientManager] = None,
        timeout: float = 30.0,
    ):
        self.web_allowlist = tuple(web_allowlist)
        self.file_allowlist = tuple(os.path.realpath(d) for d in file_allowlist)
        self._http = http_client or HttpxClientManager()
        self._timeout = timeout

    @property
    def definitions(self) -> List[Dict[str, Any]]:
        return TOOL_DEFINITIONS

    async def web_fetch(self, url: str) -> ToolOutput:
        if not any(url.startswith(prefix) for prefix in self.web_allowlist):
            raise AllowlistViolation(
                f"Blocked by allowlist. Allowed prefixes: {', '.join(self.web_allowlist)}"
            )

        try:
            async with self._http.get_client(timeout=self._timeout) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"Fetch failed for {url}: {e}") from e

        content, truncated = _truncate(response.text)
        log.info(
            f"web_fetch {url} -> {response.status_code} ({len(response.text)} chars)",
            tag="TOOL",
        )
        return ToolOutput(tool="web_fetch", content=content, truncated=truncated)

    async def file_read(self, path: str) -> ToolOutput:
        if "\x00" in path:
            raise ValidationError("Invalid path: contains NUL byte")
        # 必须先解析再比较，否则 docs/../../etc/passwd 这类相对路径能绕过 allowlist
        resolved = os.path.realpath(path)
        if not any(is_within_directory(resolved, d) for d in self.file_allowlist):
            raise AllowlistViolation(
                f"Blocked by allowlist. Allowed dirs: {', '.join(self.file_allowlist)}"
            )

        try:
            text = await asyncio.to_thread(_read_text, resolved)
        except FileNotFoundError as e:
            raise ToolExecutionError(f"File not found: {path}") from e
        except IsADirectoryError as e:
            raise ToolExecutionError(f"Path is a directory: {path}") from e
        except OSError as e:
            raise ToolExecutionError(f"Cannot read {path}: {e}") from e

        content, truncated = _truncate(text)
        log.info(f"file_read {resolved} ({len(text)} chars)", tag="TOOL")
        return ToolOutput(tool="file_read", content=content, truncated=truncated)

    async def run(self, name: str, arguments: Mapping[str, Any]) -> ToolOutput:
        """
        执行工具

        Raises:
            NotFound: 未知工具
            ValidationError: 缺少参数
            AllowlistViolation: 目标不在 allowlist 内
            ToolExecutionError: I/O 失败
        """
        if name == "web_fetch":
            return await self.web_fetch(_require_str(arguments, "url"))
        if name == "file_read":
            return await self.file_read(_require_str(arguments, "path"))
        raise NotFound(f"Unknown tool: {name}")

    async def dispatch(self, name: str, arguments: Mapping[str, Any]) -> ToolOutput:
        """代上游模型执行工具；永不抛出，失败时 content 为 "Error: ..." 文本"""
        try:
            return await self.run(name, arguments)
        except BridgeError as e:
            log.warning(f"{name} failed: {e.message}", tag="TOOL")
            return ToolOutput(tool=name, content=f"Error: {e.message}")
        except Exception as e:
            log.error(f"{name} raised unexpectedly: {e!r}", tag="TOOL")
            return ToolOutput(tool=name, content=f"Error: {e}")

    async def execute(self, name: str, arguments: Mapping[str, Any]) -> str:
        return (await self.dispatch(name, arguments)).content
