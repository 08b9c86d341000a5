"""Application entry point and FastAPI app factory."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config.settings import Settings, get_settings, validate_settings
from .controllers import health, proxy, recordings, sessions
from .controllers.dependencies import get_database, get_phrases
from .domain.errors import (
    CaptureError,
    InvalidTransitionError,
    ProxyRequestError,
    TakeValidationError,
    VoiceCollectError,
)
from .middleware import StructuredLoggingMiddleware, TelemetryMiddleware

logger = logging.getLogger(__name__)

PIPELINE_LOGGERS = (
    "voice_collect.services.upload_pipeline",
    "voice_collect.services.collection_proxy",
)

# Checked in order; the first matching class wins.
_ERROR_STATUS: tuple[tuple[type[VoiceCollectError], int], ...] = (
    (InvalidTransitionError, 409),
    (TakeValidationError, 422),
    (CaptureError, 400),
)


def _configure_logging(settings: Settings) -> None:
    """Ensure structured middleware logs stream to stdout and file."""

    logging.getLogger().handlers.clear()
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)

    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=1_000_000,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(file_handler)
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    middleware_logger = logging.getLogger("voice_collect.middleware.structured")
    middleware_logger.handlers.clear()
    middleware_stdout = logging.StreamHandler(sys.stdout)
    middleware_stdout.setFormatter(logging.Formatter("%(message)s"))
    middleware_logger.addHandler(middleware_stdout)
    middleware_logger.setLevel(logging.INFO)
    middleware_logger.propagate = False

    pipeline_log_path = Path(settings.upload_log_file)
    pipeline_log_path.parent.mkdir(parents=True, exist_ok=True)
    pipeline_handler = RotatingFileHandler(
        pipeline_log_path,
        maxBytes=500_000,
        backupCount=5,
        encoding="utf-8",
    )
    pipeline_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )
    for name in PIPELINE_LOGGERS:
        pipeline_logger = logging.getLogger(name)
        pipeline_logger.handlers.clear()
        pipeline_logger.addHandler(pipeline_handler)
        pipeline_logger.setLevel(logging.INFO)

    noisy_loggers = [
        "botocore",
        "boto3",
        "httpx",
        "httpcore",
        "urllib3",
        "sqlalchemy.engine",
    ]
    for name in noisy_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()
    _configure_logging(settings)
    validate_settings(settings, list(get_phrases()))

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        description="Voice data collection: recording sessions and a resilient upload proxy",
    )

    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    app.include_router(health.router)
    app.include_router(proxy.router)
    app.include_router(recordings.router)
    app.include_router(sessions.router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Root endpoint."""

        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "status": "operational",
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose application metrics for Prometheus scraping."""

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(ProxyRequestError)
    async def proxy_request_handler(request: Request, exc: ProxyRequestError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(VoiceCollectError)
    async def domain_error_handler(request: Request, exc: VoiceCollectError) -> JSONResponse:
        for error_type, status_code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                return JSONResponse(status_code=status_code, content={"detail": str(exc)})
        logger.error("Unhandled application error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        await get_database().init_models()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await get_database().dispose()

    return app


app = create_app()


if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run(
        "voice_collect.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
    )
