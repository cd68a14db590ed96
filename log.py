"""
日志模块 - 彩色控制台输出 + 可选的 JSON 结构化日志

颜色方案：
- DEBUG:    灰色 (dim)
- INFO:     白色
- SUCCESS:  绿色
- PERF:     紫色 - 耗时统计
- WARNING:  橙色
- ERROR:    红色
- CRITICAL: 红色加粗

环境变量：
- LOG_LEVEL=debug|info|warning|error|critical  (默认 info)
- LOG_FORMAT=json  启用 JSON 格式输出（默认 text）
- LOG_FILE=path    额外写入纯文本日志文件（默认不写文件）
- NO_COLOR / FORCE_COLOR  控制颜色
"""

import json
import os
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI 颜色代码"""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    WHITE = "\033[37m"
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_MAGENTA = "\033[95m"


def _supports_color() -> bool:
    if os.getenv("NO_COLOR"):
        return False
    if os.getenv("FORCE_COLOR"):
        return True
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


_color_enabled = _supports_color()

LOG_LEVELS = {
    "debug": 0,
    "info": 1,
    "success": 1,
    "perf": 2,
    "warning": 3,
    "error": 4,
    "critical": 5,
}

LOG_STYLES = {
    "debug":    (Colors.DIM + Colors.WHITE, "DEBUG"),
    "info":     (Colors.WHITE, "INFO"),
    "success":  (Colors.BRIGHT_GREEN, "SUCCESS"),
    "perf":     (Colors.BRIGHT_MAGENTA, "PERF"),
    "warning":  (Colors.YELLOW + Colors.BOLD, "WARNING"),
    "error":    (Colors.RED, "ERROR"),
    "critical": (Colors.BRIGHT_RED + Colors.BOLD, "CRITICAL"),
}

_file_lock = threading.Lock()
_file_writing_disabled = False


def _get_current_log_level() -> int:
    level = os.getenv("LOG_LEVEL", "info").lower()
    return LOG_LEVELS.get(level, LOG_LEVELS["info"])


def _structured_enabled() -> bool:
    return os.getenv("LOG_FORMAT", "text").lower() == "json"


def _write_to_file(message: str):
    global _file_writing_disabled
    log_file = os.getenv("LOG_FILE")
    if not log_file or _file_writing_disabled:
        return
    try:
        with _file_lock:
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(message + "\n")
    except OSError as e:
        # 文件不可写时只提示一次，之后只输出到控制台
        _file_writing_disabled = True
        print(f"Warning: Disabling log file writing: {e}", file=sys.stderr)


def _colorize(text: str, color: str) -> str:
    if not _color_enabled:
        return text
    return f"{color}{text}{Colors.RESET}"


def _log(level: str, message: str, tag: Optional[str] = None, **extra):
    """
    核心日志函数

    Args:
        level: 日志级别
        message: 日志消息
        tag: 可选标签（HTTP / RAG / TOOL / STREAM ...）
        **extra: 额外的结构化字段（session_id, duration_ms 等）
    """
    level = level.lower()
    if level not in LOG_LEVELS:
        print(f"Warning: Unknown log level '{level}'", file=sys.stderr)
        return

    if LOG_LEVELS[level] < _get_current_log_level():
        return

    color, label = LOG_STYLES[level]
    now = datetime.now()
    timestamp = now.strftime("%H:%M:%S")
    stream = sys.stderr if level in ("error", "critical") else sys.stdout

    if _structured_enabled():
        entry: Dict[str, Any] = {
            "timestamp": now.isoformat(),
            "level": label,
            "message": message,
        }
        if tag:
            entry["tag"] = tag
        entry.update(extra)
        print(json.dumps(entry, ensure_ascii=False, default=str), file=stream)
        _write_to_file(json.dumps(entry, ensure_ascii=False, default=str))
        return

    tag_part = f" [{tag}]" if tag else ""
    extra_part = ""
    if extra:
        extra_part = " | " + " ".join(f"{k}={v}" for k, v in extra.items())

    plain_entry = f"[{timestamp}] [{label}]{tag_part} {message}{extra_part}"
    if _color_enabled:
        colored_tag = f" {_colorize(f'[{tag}]', Colors.BRIGHT_MAGENTA)}" if tag else ""
        colored_extra = f" {Colors.DIM}{extra_part.strip()}{Colors.RESET}" if extra_part else ""
        print(
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} {_colorize(f'[{label}]', color)}"
            f"{colored_tag} {message}{colored_extra}",
            file=stream,
        )
    else:
        print(plain_entry, file=stream)

    _write_to_file(plain_entry)


class Logger:
    """支持多种调用方式的日志器"""

    def __call__(self, level: str, message: str, tag: Optional[str] = None, **extra):
        _log(level, message, tag, **extra)

    def debug(self, message: str, tag: Optional[str] = None, **extra):
        _log("debug", message, tag, **extra)

    def info(self, message: str, tag: Optional[str] = None, **extra):
        _log("info", message, tag, **extra)

    def success(self, message: str, tag: Optional[str] = None, **extra):
        _log("success", message, tag, **extra)

    def warning(self, message: str, tag: Optional[str] = None, **extra):
        _log("warning", message, tag, **extra)

    def error(self, message: str, tag: Optional[str] = None, **extra):
        _log("error", message, tag, **extra)

    def critical(self, message: str, tag: Optional[str] = None, **extra):
        _log("critical", message, tag, **extra)

    def perf(self, message: str, tag: Optional[str] = None, **extra):
        """耗时统计日志"""
        _log("perf", message, tag, **extra)

    @contextmanager
    def timer(self, operation: str, tag: Optional[str] = None, **extra):
        """
        计时器上下文管理器

        Usage:
            with log.timer("embed", tag="RAG"):
                vectors = await client.embed(texts)
        """
        start_time = time.perf_counter()
        try:
            yield
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.perf(
                f"{operation} completed in {duration_ms:.2f}ms",
                tag=tag,
                duration_ms=round(duration_ms, 2),
                **extra,
            )


log = Logger()

__all__ = [
    "log",
    "LOG_LEVELS",
    "Colors",
]
