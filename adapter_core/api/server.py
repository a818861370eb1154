"""Ollama 兼容的 HTTP 服务。

路由：
- POST /api/chat     决策请求（非流式）
- GET  /api/tags     模型列表（静态）
- POST /api/show     模型信息（静态）
- GET  /api/version  版本
- GET  /health       健康检查

后端客户端在应用启动时 open、关闭时 close，整个进程共享一个实例。
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adapter_core.api.schemas import ChatRequestBody, ShowRequestBody
from adapter_core.api.service import ChatService
from adapter_core.api.wire import PACKAGE_VERSION, error_to_wire, show_payload, tags_payload, version_payload
from adapter_core.config.settings import settings
from adapter_core.flows.runner import ResponseEngine
from adapter_core.infrastructure.logging.logger import logger
from adapter_core.providers import create_backend


def create_app(config=None, backend=None) -> FastAPI:
    """构造 FastAPI 应用；backend 未提供时按配置创建 OpencodeClient。"""

    cfg = config or settings
    client = backend or create_backend(cfg)
    service = ChatService(ResponseEngine(client, cfg), default_model=cfg.model_id)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client.open()
        try:
            yield
        finally:
            client.close()

    app = FastAPI(title="ollama-opencode-adapter", version=PACKAGE_VERSION, lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.backend = client

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("Error processing request", exc_info=exc, extra={"extra": {"path": request.url.path}})
        return JSONResponse(status_code=500, content=error_to_wire(exc, cfg.model_id))

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "opencode": "connected" if client.is_connected() else "disconnected",
            "ollama_compatible": True,
        }

    @app.post("/api/chat")
    def chat(body: ChatRequestBody):
        status, payload = service.handle_chat(body.model_dump(exclude_none=True))
        return JSONResponse(status_code=status, content=payload)

    @app.get("/api/tags")
    def tags():
        return tags_payload(cfg.model_id)

    @app.post("/api/show")
    def show(body: ShowRequestBody):
        return show_payload()

    @app.get("/api/version")
    def version():
        return version_payload()

    return app


def main() -> None:
    logger.info(
        "Starting ollama-opencode-adapter",
        extra={"extra": {
            "host": settings.host,
            "port": settings.port,
            "opencode": settings.opencode_base_url,
            "model": f"{settings.model_provider}/{settings.model_id}",
        }},
    )
    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_level=_uvicorn_level(settings.log_level))


def _uvicorn_level(level: str) -> str:
    return {"fatal": "critical", "warn": "warning"}.get(level, level)


if __name__ == "__main__":
    main()
