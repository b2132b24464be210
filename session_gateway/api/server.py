"""
Session Gateway HTTP Server
===========================
FastAPI app factory. Settings and the container are created once here (the
composition root) and the built components are exposed on ``app.state``.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.exceptions import SessionGatewayError
from ..core.logger import StructuredLogger
from ..infrastructure.config.config_loader import get_settings_from_working_directory
from ..infrastructure.config.settings import AppSettings, Environment
from ..infrastructure.container import Container
from .error_mapper import ErrorMapper
from .events_routes import dev_router as webhook_test_router
from .events_routes import router as events_router
from .messages_routes import router as messages_router
from .response_envelope import json_error, json_ok
from .sessions_routes import router as sessions_router


def create_app(settings: Optional[AppSettings] = None, container: Optional[Container] = None) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Application settings; loaded from the working directory if omitted
        container: Pre-built container (tests); built from settings if omitted
    """
    if settings is None:
        settings = container.settings if container else get_settings_from_working_directory()
    container = container or Container(settings)
    logger = StructuredLogger("session_gateway.api", settings.logging)
    error_mapper = ErrorMapper()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("api.startup", {
            "environment": settings.api.environment.value,
            "transport_mode": settings.transport.mode.value,
            "webhook_active": settings.webhook.is_active
        })
        await container.start()
        try:
            yield
        finally:
            await container.shutdown()
            logger.info("api.shutdown_complete", {})

    app = FastAPI(title=settings.app_name, version=settings.version, debug=settings.debug, lifespan=lifespan)

    app.state.settings = settings
    app.state.container = container
    app.state.session_registry = container.create_session_registry()
    app.state.event_dispatcher = container.create_event_dispatcher()
    app.state.orchestrator = container.create_orchestrator()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SessionGatewayError)
    async def gateway_error_handler(request: Request, exc: SessionGatewayError) -> JSONResponse:
        info = error_mapper.map_exception(exc)
        log = logger.error if info.http_status >= 500 else logger.warning
        log("api.request_failed", {
            "method": request.method,
            "path": request.url.path,
            "error_code": info.error_code,
            "error": exc.message
        })
        return json_error(info.error_code, info.error_message, info.http_status)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "Invalid request")
        return json_error("validation_error", f"{location}: {detail}" if location else detail, 400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict) and "error_code" in exc.detail:
            info = error_mapper.map(exc.detail["error_code"], message=exc.detail.get("error_message"))
            return json_error(info.error_code, info.error_message, exc.status_code)
        code = "not_found" if exc.status_code == 404 else "http_error"
        return json_error(code, str(exc.detail), exc.status_code)

    @app.get("/health")
    async def health() -> JSONResponse:
        registry = app.state.session_registry
        return json_ok({
            "status": "ok",
            "time": datetime.now(timezone.utc).isoformat(),
            "sessions": len(registry),
            "webhook": app.state.event_dispatcher.get_stats(),
        })

    app.include_router(sessions_router)
    app.include_router(messages_router)
    app.include_router(events_router)

    if settings.api.environment == Environment.DEVELOPMENT:
        app.include_router(webhook_test_router)

    return app
