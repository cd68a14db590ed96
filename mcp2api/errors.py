"""
错误类型定义

每个错误类自带 HTTP 状态码和 Anthropic 风格的 error type，
web.py 中的异常处理器据此渲染结构化错误响应。
"""

__all__ = [
    "BridgeError",
    "ProviderError",
    "AllowlistViolation",
    "ValidationError",
    "ParseError",
    "NotFound",
    "ToolExecutionError",
    "StoreError",
    "AuthenticationError",
]


class BridgeError(Exception):
    """所有业务错误的基类"""

    status_code: int = 500
    error_type: str = "api_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ProviderError(BridgeError):
    """embedding / chat completion 上游不可达或拒绝请求"""

    status_code = 502
    error_type = "api_error"

    def __init__(self, message: str, upstream_status: int = 0):
        super().__init__(message)
        self.upstream_status = upstream_status


class AllowlistViolation(BridgeError):
    """工具目标不在 allowlist 范围内"""

    status_code = 403
    error_type = "permission_error"


class ValidationError(BridgeError):
    """请求缺少必填字段或字段非法"""

    status_code = 400
    error_type = "invalid_request_error"


class ParseError(BridgeError):
    """上游流式 chunk 无法解析（流内会被跳过，不会暴露给调用方）"""

    status_code = 400
    error_type = "invalid_request_error"


class NotFound(BridgeError):
    """未知的工具名"""

    status_code = 404
    error_type = "not_found_error"


class ToolExecutionError(BridgeError):
    """工具执行过程中的 I/O 失败（文件不存在、网络错误等）"""

    status_code = 400
    error_type = "api_error"


class StoreError(BridgeError):
    """文档库快照损坏或无法写入"""

    status_code = 500
    error_type = "api_error"


class AuthenticationError(BridgeError):
    """Bearer token 缺失或不匹配"""

    status_code = 401
    error_type = "authentication_error"
