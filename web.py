"""
Main Web Integration - Integrates all routers and modules
集合router并开启主服务
"""

# 加载 .env 文件中的环境变量（必须在其他导入之前）
from dotenv import load_dotenv
load_dotenv()  # 加载 .env 文件

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import load_settings
from log import log

from mcp2api.endpoints import create_router
from mcp2api.errors import BridgeError
from mcp2api.rate_limiter import RateLimitMiddleware, SlidingWindowRateLimiter
from mcp2api.services import Services, build_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    log.info("启动 MCP2API 主服务", tag="STARTUP")

    # 测试可以预先注入 services，此时跳过构建
    if getattr(app.state, "services", None) is None:
        settings = await load_settings()
        # 文档库损坏时 StoreError 直接让启动失败，避免之后的写入覆盖已有数据
        app.state.services = build_services(settings)

    services: Services = app.state.services
    if getattr(app.state, "rate_limiter", None) is None:
        app.state.rate_limiter = SlidingWindowRateLimiter(
            limit=services.settings.rate_limit_per_minute, window=60.0,
        )

    yield

    log.info("MCP2API 主服务已停止", tag="STARTUP")


def _error_body(request: Request, error_type: str, message: str) -> dict:
    # Anthropic 客户端只认自己的错误形状
    if request.url.path.startswith("/v1/"):
        return {"type": "error", "error": {"type": error_type, "message": message}}
    return {"error": message}


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc.message}", tag="HTTP")
    else:
        log.warning(f"{request.method} {request.url.path} rejected: {exc.message}", tag="HTTP")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.error_type, exc.message),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "invalid request")
    else:
        message = "Invalid request"
    log.warning(f"{request.method} {request.url.path} invalid body: {message}", tag="HTTP")
    return JSONResponse(
        status_code=400,
        content=_error_body(request, "invalid_request_error", message),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error(f"{request.method} {request.url.path} crashed: {exc!r}", tag="HTTP")
    return JSONResponse(
        status_code=500,
        content=_error_body(request, "api_error", str(exc) or exc.__class__.__name__),
    )


def create_app(services: Optional[Services] = None) -> FastAPI:
    """创建 FastAPI 应用；传入 services 时跳过 lifespan 中的构建"""
    application = FastAPI(
        title="MCP2API",
        description="MCP server with RAG and an Anthropic Messages bridge to OpenAI",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.state.services = services
    application.state.rate_limiter = None

    # 后添加的中间件在外层：CORS 包住限流
    application.add_middleware(RateLimitMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        log.info(
            f"{request.method} {request.url.path} - {response.status_code} ({elapsed_ms:.0f}ms)",
            tag="HTTP",
        )
        return response

    application.add_exception_handler(BridgeError, bridge_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    application.include_router(create_router())
    return application


# 创建FastAPI应用
app = create_app()

# 导出给其他模块使用
__all__ = ["app", "create_app"]


def _log_banner(services: Services) -> None:
    settings = services.settings
    port = settings.port
    log.info("=" * 60, tag="STARTUP")
    log.info("启动 MCP2API", tag="STARTUP")
    log.info("=" * 60, tag="STARTUP")
    log.info("API端点:", tag="STARTUP")
    log.info(f"   SSE (MCP):       GET  http://127.0.0.1:{port}/sse?session=xxx", tag="STARTUP")
    log.info(f"   Query:           POST http://127.0.0.1:{port}/query", tag="STARTUP")
    log.info(f"   Anthropic:       POST http://127.0.0.1:{port}/v1/messages", tag="STARTUP")
    log.info(f"   RAG Ingest:      POST http://127.0.0.1:{port}/admin/ingest", tag="STARTUP")
    log.info(f"   Tools:           POST http://127.0.0.1:{port}/tool/web_fetch | /tool/file_read", tag="STARTUP")
    log.info(f"   Health:          GET  http://127.0.0.1:{port}/health", tag="STARTUP")
    log.info("=" * 60, tag="STARTUP")
    log.info(f"   web_fetch allowlist: {len(settings.allow_web_fetch)} prefixes", tag="STARTUP")
    log.info(f"   file_read allowlist: {len(settings.allow_file_read)} directories", tag="STARTUP")
    log.info(f"   RAG documents: {len(services.store)}", tag="STARTUP")
    log.info(f"   Bearer auth: {'enabled' if settings.bearer else 'disabled'}", tag="STARTUP")
    log.info(f"   Rate limit: {settings.rate_limit_per_minute} req/min", tag="STARTUP")
    log.info("=" * 60, tag="STARTUP")


async def main():
    """异步主启动函数"""
    from hypercorn.asyncio import serve
    from hypercorn.config import Config

    settings = await load_settings()
    services = build_services(settings)
    app.state.services = services
    _log_banner(services)

    # 配置hypercorn
    config = Config()
    config.bind = [f"{settings.host}:{settings.port}"]
    config.accesslog = "-"
    config.errorlog = "-"
    config.loglevel = "INFO"
    config.use_colors = True

    # 流式响应可能持续很久，读写超时要覆盖上游最长等待
    config.keep_alive_timeout = 300
    config.read_timeout = 300
    config.write_timeout = 300

    await serve(app, config)


if __name__ == "__main__":
    asyncio.run(main())
