"""
Configuration for the mcp2api server.
Centralizes all configuration to avoid duplication across modules.

- 所有配置优先从环境变量读取（web.py 启动时会先加载 .env）
- 启动时通过 load_settings() 固化为不可变的 Settings 快照，核心模块只消费快照
"""

import os
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

# 占位 key（.env 示例里的默认值），视同未配置
PLACEHOLDER_API_KEYS = ("", "sk-...")

_overrides: dict[str, Any] = {}


def set_config_override(key: str, value: Any) -> None:
    """进程内覆盖某个配置项（优先级低于环境变量，主要给测试和嵌入式启动使用）"""
    _overrides[key] = value


def clear_config_overrides() -> None:
    _overrides.clear()


async def get_config_value(key: str, default: Any = None, env_var: Optional[str] = None) -> Any:
    """Get configuration value with priority: ENV > override > default."""
    # Priority 1: Environment variable
    if env_var and os.getenv(env_var):
        return os.getenv(env_var)

    # Priority 2: in-process override
    value = _overrides.get(key)
    if value is not None:
        return value

    return default


def _parse_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


async def _get_int(key: str, default: int, env_var: str) -> int:
    value = await get_config_value(key, default, env_var)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


async def _get_float(key: str, default: float, env_var: str) -> float:
    value = await get_config_value(key, default, env_var)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# Server Configuration
async def get_server_host() -> str:
    """
    Get server host setting.

    Environment variable: HOST
    Default: 0.0.0.0
    """
    return str(await get_config_value("host", "0.0.0.0", "HOST"))


async def get_server_port() -> int:
    """
    Get server port setting.

    Environment variable: PORT
    Default: 8787
    """
    return await _get_int("port", 8787, "PORT")


async def get_proxy_config() -> Optional[str]:
    """Get outbound proxy URL (PROXY)."""
    proxy_url = await get_config_value("proxy", env_var="PROXY")
    return proxy_url if proxy_url else None


# Provider Configuration
async def get_openai_api_key() -> str:
    """
    Get the OpenAI API key.

    Environment variable: OPENAI_API_KEY
    Default: "" (provider calls fail with ProviderError)
    """
    return str(await get_config_value("openai_api_key", "", "OPENAI_API_KEY"))


async def get_openai_base_url() -> str:
    """
    Get the chat completion / embedding provider base URL.

    Environment variable: OPENAI_BASE_URL
    Default: https://api.openai.com/v1
    """
    url = str(await get_config_value("openai_base_url", "https://api.openai.com/v1", "OPENAI_BASE_URL"))
    return url.rstrip("/")


async def get_chat_model() -> str:
    """Environment variable: MODEL. Default: gpt-4o-mini"""
    return str(await get_config_value("model", "gpt-4o-mini", "MODEL"))


async def get_embedding_model() -> str:
    """Environment variable: EMBEDDING_MODEL. Default: text-embedding-3-large"""
    return str(await get_config_value("embedding_model", "text-embedding-3-large", "EMBEDDING_MODEL"))


async def get_provider_timeout() -> float:
    """
    Timeout (seconds) for provider calls; for streams it bounds the wait between chunks.

    Environment variable: PROVIDER_TIMEOUT
    Default: 120
    """
    return await _get_float("provider_timeout", 120.0, "PROVIDER_TIMEOUT")


# Security Configuration
async def get_bearer_token() -> Optional[str]:
    """
    Shared bearer token for all non-health routes.

    Environment variable: BEARER
    Default: None (auth disabled)
    """
    token = await get_config_value("bearer", None, "BEARER")
    return str(token) if token else None


async def get_rate_limit_per_minute() -> int:
    """Environment variable: RATE_LIMIT_PER_MINUTE. Default: 200"""
    return await _get_int("rate_limit_per_minute", 200, "RATE_LIMIT_PER_MINUTE")


# RAG / Tools Configuration
async def get_rag_path() -> str:
    """Environment variable: RAG_PATH. Default: ./rag_store.json"""
    return str(await get_config_value("rag_path", "./rag_store.json", "RAG_PATH"))


async def get_web_fetch_allowlist() -> List[str]:
    """
    URL prefixes web_fetch may request.

    Environment variable: ALLOW_WEB_FETCH (comma-separated)
    Default: [] (every URL is blocked)
    """
    return _parse_list(await get_config_value("allow_web_fetch", None, "ALLOW_WEB_FETCH"))


async def get_file_read_allowlist() -> List[str]:
    """
    Directories file_read may read from, resolved to absolute paths.

    Environment variable: ALLOW_FILE_READ (comma-separated)
    Default: [] (every path is blocked)
    """
    dirs = _parse_list(await get_config_value("allow_file_read", None, "ALLOW_FILE_READ"))
    return [os.path.realpath(d) for d in dirs]


async def get_sse_ping_interval() -> float:
    """Environment variable: SSE_PING_INTERVAL (seconds). Default: 25"""
    return await _get_float("sse_ping_interval", 25.0, "SSE_PING_INTERVAL")


@dataclass(frozen=True)
class Settings:
    """启动时固化的配置快照"""

    host: str = "0.0.0.0"
    port: int = 8787
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-large"
    provider_timeout: float = 120.0
    bearer: Optional[str] = None
    rate_limit_per_minute: int = 200
    rag_path: str = "./rag_store.json"
    allow_web_fetch: Tuple[str, ...] = field(default_factory=tuple)
    allow_file_read: Tuple[str, ...] = field(default_factory=tuple)
    sse_ping_interval: float = 25.0
    proxy: Optional[str] = None

    @property
    def has_api_key(self) -> bool:
        return self.openai_api_key not in PLACEHOLDER_API_KEYS


async def load_settings() -> Settings:
    """读取全部配置，返回不可变快照"""
    return Settings(
        host=await get_server_host(),
        port=await get_server_port(),
        openai_api_key=await get_openai_api_key(),
        openai_base_url=await get_openai_base_url(),
        model=await get_chat_model(),
        embedding_model=await get_embedding_model(),
        provider_timeout=await get_provider_timeout(),
        bearer=await get_bearer_token(),
        rate_limit_per_minute=await get_rate_limit_per_minute(),
        rag_path=await get_rag_path(),
        allow_web_fetch=tuple(await get_web_fetch_allowlist()),
        allow_file_read=tuple(await get_file_read_allowlist()),
        sse_ping_interval=await get_sse_ping_interval(),
        proxy=await get_proxy_config(),
    )
