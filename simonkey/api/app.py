# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the analytics API.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from simonkey import __version__
from simonkey.api.routes import health
from simonkey.api.v1 import router as v1_router
from simonkey.core.config import get_settings
from simonkey.core.errors import FunctionError
from simonkey.infrastructure.background import (
    setup_dramatiq,
    shutdown_dramatiq,
    start_scheduler,
    stop_scheduler,
)
from simonkey.infrastructure.documents import close_document_store, init_document_store
from simonkey.utils.logging import bind_context, clear_context, setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Initializes and cleans up:
    - Logging
    - Document store
    - Dramatiq broker
    - APScheduler for periodic tasks (when SCHEDULER_ENABLED)

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting %s (environment=%s, debug=%s)",
        settings.app_name,
        settings.environment,
        settings.debug,
    )

    # =========================================================================
    # Startup
    # =========================================================================

    try:
        await init_document_store(settings)
    except Exception as e:
        logger.warning("Failed to initialize document store: %s", str(e), exc_info=True)

    try:
        setup_dramatiq()
        logger.info("Dramatiq broker initialized")
    except Exception as e:
        logger.warning("Failed to setup Dramatiq: %s", str(e))

    if settings.scheduler.enabled:
        try:
            await start_scheduler()
            logger.info("Scheduler started")
        except Exception as e:
            logger.warning("Failed to start scheduler: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    # Stop scheduler first (it enqueues messages)
    try:
        await stop_scheduler()
    except Exception as e:
        logger.warning("Error stopping scheduler: %s", str(e))

    try:
        shutdown_dramatiq()
    except Exception as e:
        logger.warning("Error shutting down Dramatiq: %s", str(e))

    try:
        await close_document_store()
    except Exception as e:
        logger.warning("Error closing document store: %s", str(e))

    logger.info("Shutting down %s", settings.app_name)


async def function_error_handler(request: Request, exc: FunctionError) -> JSONResponse:
    """Render a FunctionError as the callable error envelope."""
    if exc.http_status >= 500:
        logger.error("Function error on %s: %s", request.url.path, exc)
    else:
        logger.info("Function error on %s: %s %s", request.url.path, exc.status, exc.message)
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Simonkey Analytics API",
        description="KPI, ranking and notebook maintenance backend",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        # Disable automatic redirects from /path to /path/
        # This prevents 307 redirects that lose Authorization headers
        redirect_slashes=False,
    )

    # =========================================================================
    # Exception handlers
    # =========================================================================
    app.add_exception_handler(FunctionError, function_error_handler)

    # =========================================================================
    # Middleware
    # =========================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        bind_context(request_id=request_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers["X-Request-ID"] = request_id
        return response

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router, prefix=settings.api.prefix)

    return app
