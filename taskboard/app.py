"""
FastAPI application entry point for the Taskboard API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from taskboard.config import Settings, get_settings
from taskboard.dependencies import Services, build_services
from taskboard.routes import auth_router, avatar_router, tasks_router

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = [str(p) for p in error.get("loc", ()) if p not in ("body", "query")]
        field = ".".join(loc)
        message = error.get("msg", "Invalid value")
        parts.append(f"{field}: {message}" if field else message)
    return "; ".join(parts) or "Invalid request"


async def _on_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": _validation_message(exc)},
    )


async def _on_unhandled_error(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app(
    settings: Optional[Settings] = None, services: Optional[Services] = None
) -> FastAPI:
    """
    Build the application. ``services`` overrides the clients that would
    otherwise be constructed from ``settings``.
    """
    settings = settings or get_settings()
    if services is None:
        settings.validate_required()
        services = build_services(settings)

    app = FastAPI(title="Taskboard API", version="0.1.0")
    app.state.settings = settings
    app.state.services = services

    if settings.client_url:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[settings.client_url],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        logger.warning("CLIENT_URL is not set; cross-origin requests are disabled")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("[%s] %s", request.method, request.url.path)
        return await call_next(request)

    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(Exception, _on_unhandled_error)

    app.include_router(auth_router, prefix=settings.api_prefix)
    app.include_router(tasks_router, prefix=settings.api_prefix)
    app.include_router(avatar_router, prefix=settings.api_prefix)

    @app.get("/", response_class=PlainTextResponse)
    def liveness():
        return "Backend API is running"

    return app
