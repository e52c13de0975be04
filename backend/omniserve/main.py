"""Punto de entrada principal para la aplicación FastAPI."""

import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from omniserve.api.routes.health import router as health_router
from omniserve.api.routes.knowledge import router as knowledge_router
from omniserve.api.routes.panel import router as panel_router
from omniserve.channels.webchat.router import router as webchat_router
from omniserve.core.config import settings
from omniserve.core.logging import configure_logging, resolve_log_level
from omniserve.core.middleware import RequestLoggingMiddleware


def create_app() -> FastAPI:
    """Crea y configura la instancia de FastAPI."""
    default_log_level = logging.DEBUG if settings.environment != "production" else logging.INFO
    log_level = resolve_log_level(settings.log_level, default=default_log_level)
    per_logger_files: dict[str, str] = {}
    if settings.log_file_path:
        log_dir = Path(settings.log_file_path).parent
        per_logger_files = {
            "omniserve.request": str(log_dir / "request.log"),
            "omniserve.channels.webchat": str(log_dir / "webchat.log"),
        }

    configure_logging(
        level=log_level,
        log_file=settings.log_file_path,
        per_logger_files=per_logger_files,
    )

    app = FastAPI(title="OmniServe API", version="0.1.0", root_path="/api")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Se ajustará por ambiente
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(panel_router)
    app.include_router(knowledge_router)
    app.include_router(webchat_router)

    @app.get("/info", tags=["info"])
    def info() -> dict[str, str | None]:  # pragma: no cover - ruta simple de apoyo
        return {
            "environment": settings.environment,
            "agent_id": settings.agent_id,
            "rag_id": settings.rag_id,
        }

    return app


app = create_app()
