# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides health and readiness endpoints for the API.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from simonkey import __version__
from simonkey.api.dependencies import get_app_settings
from simonkey.core.config import Settings
from simonkey.infrastructure.background.broker import get_broker_manager, is_test_mode
from simonkey.infrastructure.background.scheduler import scheduler_status
from simonkey.infrastructure.documents import DocumentStoreError, get_document_store

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""

    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class BackgroundHealth(BaseModel):
    """Periodic job scheduler and task queue status."""

    scheduler: dict[str, Any] = Field(description="Scheduler running flag and job counters")
    queues: dict[str, Any] = Field(description="Broker type and pending messages per queue")


class ComponentsHealth(BaseModel):
    """All components health status."""

    document_store: ComponentHealth | None = None
    redis: ComponentHealth | None = None
    background: BackgroundHealth | None = None


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(description="Overall health status")
    service: str = Field(description="Service name")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    checked_at: datetime = Field(description="When health was checked")
    components: ComponentsHealth = Field(default_factory=ComponentsHealth)


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


async def check_document_store() -> ComponentHealth:
    """Check the document store answers a ping."""
    try:
        store = get_document_store()
        start = time.time()
        healthy = await store.ping()
        latency = (time.time() - start) * 1000
    except DocumentStoreError as e:
        logger.error("Document store health check failed: %s", e)
        return ComponentHealth(status="unhealthy", message=str(e))

    if not healthy:
        return ComponentHealth(status="unhealthy", latency_ms=round(latency, 2))
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


async def check_redis(settings: Settings) -> ComponentHealth:
    """Check the Redis server behind the task broker."""
    if is_test_mode():
        return ComponentHealth(status="skipped", message="Stub broker in use")

    redis_cfg = settings.redis
    client = aioredis.Redis(
        host=redis_cfg.host,
        port=redis_cfg.port,
        db=redis_cfg.database,
        password=redis_cfg.password.get_secret_value() if redis_cfg.password else None,
    )
    try:
        start = time.time()
        await client.ping()
        latency = (time.time() - start) * 1000
        return ComponentHealth(status="healthy", latency_ms=round(latency, 2))
    except (aioredis.RedisError, OSError) as e:
        logger.error("Redis health check failed: %s", e)
        return ComponentHealth(status="unhealthy", message=str(e))
    finally:
        await client.aclose()


async def check_background() -> BackgroundHealth:
    """Report the scheduler jobs and queue depths. Informational only."""
    queues = await asyncio.to_thread(get_broker_manager().get_queue_stats)
    return BackgroundHealth(scheduler=scheduler_status(), queues=queues)


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    """Check if the API is healthy with component details.

    The document store decides between healthy and unhealthy; a Redis
    outage only degrades the service, since callables still work. The
    background section reports scheduler jobs and queue depths and does
    not affect the overall status.

    Returns:
        HealthResponse with detailed status.
    """
    store_health = await check_document_store()
    redis_health = await check_redis(settings)

    if store_health.status != "healthy":
        overall_status = "unhealthy"
    elif redis_health.status == "unhealthy":
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthResponse(
        status=overall_status,
        service=settings.app_name,
        version=__version__,
        environment=settings.environment,
        uptime_seconds=int(time.time() - _server_start_time),
        checked_at=datetime.now(timezone.utc),
        components=ComponentsHealth(
            document_store=store_health,
            redis=redis_health,
            background=await check_background(),
        ),
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check() -> JSONResponse:
    """Check if the API is ready to accept traffic.

    Returns:
        ReadinessResponse, with status 503 when the store is unavailable.
    """
    store_health = await check_document_store()
    ready = store_health.status == "healthy"
    body = ReadinessResponse(
        ready=ready,
        checks={
            "document_store": {
                "status": store_health.status,
                "latency_ms": store_health.latency_ms,
            }
        },
    )
    return JSONResponse(
        status_code=200 if ready else 503,
        content=body.model_dump(),
    )
