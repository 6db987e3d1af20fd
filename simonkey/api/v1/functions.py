# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Callable function endpoints.

Each function is invoked with ``POST /api/v1/functions/{name}`` and a body
of ``{"data": {...}}``. Successful calls answer ``{"result": ...}``; failures
answer ``{"error": {"status", "message", "details"}}`` with the HTTP status
of the error code.

Functions:
- updateUserKpis {userId?} - Rebuild a user's KPI dashboard
- getUserKpis {userId?} - Read a user's stored KPI dashboard
- updateTeacherKpis {teacherId?, refreshStudents?} - Rebuild a teacher's dashboard
- updateInstitutionRankings {institutionId} - Rank an institution's students
- calculateUserStats {userId?} - Compute a user's study statistics

A caller may act on itself; acting on another user requires the admin role.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from simonkey.api.dependencies import get_app_settings, get_clock, get_store, require_caller
from simonkey.core.config import Settings
from simonkey.core.errors import (
    FunctionError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from simonkey.domains.auth import CallerClaims
from simonkey.domains.kpi import (
    KpiService,
    TeacherKpiService,
    TeacherNotFoundError,
    UserNotFoundError,
)
from simonkey.domains.rankings import InvalidInstitutionError, RankingService
from simonkey.domains.stats import UserStatsService
from simonkey.infrastructure.documents import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter()


class CallableRequest(BaseModel):
    """Request envelope of a callable function."""

    data: dict[str, Any] | None = Field(default=None, description="Function arguments")


@dataclass
class FunctionContext:
    """Everything a function handler needs for one call."""

    caller: CallerClaims
    store: DocumentStore
    settings: Settings
    clock: Callable[[], datetime]


FunctionHandler = Callable[[FunctionContext, dict[str, Any]], Awaitable[Any]]

_FUNCTIONS: dict[str, FunctionHandler] = {}


def callable_function(name: str) -> Callable[[FunctionHandler], FunctionHandler]:
    """Register a handler under a callable function name."""

    def decorator(handler: FunctionHandler) -> FunctionHandler:
        _FUNCTIONS[name] = handler
        return handler

    return decorator


def registered_functions() -> list[str]:
    return sorted(_FUNCTIONS)


def _optional_id(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{key} must be a string", details={"field": key})
    return value


def _target_user(ctx: FunctionContext, data: dict[str, Any], key: str) -> str:
    """Resolve the user a call acts on.

    Raises:
        PermissionDeniedError: If a non-admin targets another user.
    """
    target = _optional_id(data, key) or ctx.caller.sub
    if target != ctx.caller.sub and not ctx.caller.is_admin:
        raise PermissionDeniedError(
            "You can only access your own data",
            details={"field": key},
        )
    return target


@callable_function("updateUserKpis")
async def update_user_kpis(ctx: FunctionContext, data: dict[str, Any]) -> dict[str, Any]:
    user_id = _target_user(ctx, data, "userId")
    snapshot = await KpiService(ctx.store, ctx.settings.kpi, ctx.clock).update_user_kpis(user_id)
    return {"success": True, "userId": user_id, "kpis": snapshot.to_document()}


@callable_function("getUserKpis")
async def get_user_kpis(ctx: FunctionContext, data: dict[str, Any]) -> dict[str, Any]:
    user_id = _target_user(ctx, data, "userId")
    kpis = await KpiService(ctx.store, ctx.settings.kpi, ctx.clock).get_user_kpis(user_id)
    if kpis is None:
        raise NotFoundError(f"No KPIs found for user {user_id}", details={"userId": user_id})
    return kpis


@callable_function("updateTeacherKpis")
async def update_teacher_kpis(ctx: FunctionContext, data: dict[str, Any]) -> dict[str, Any]:
    teacher_id = _target_user(ctx, data, "teacherId")
    refresh_students = data.get("refreshStudents", False)
    if not isinstance(refresh_students, bool):
        raise InvalidArgumentError(
            "refreshStudents must be a boolean",
            details={"field": "refreshStudents"},
        )
    service = TeacherKpiService(ctx.store, ctx.settings.kpi, ctx.clock)
    snapshot = await service.update_teacher_kpis(teacher_id, refresh_students=refresh_students)
    return {"success": True, "teacherId": teacher_id, "kpis": snapshot.to_document()}


@callable_function("updateInstitutionRankings")
async def update_institution_rankings(ctx: FunctionContext, data: dict[str, Any]) -> dict[str, Any]:
    institution_id = _optional_id(data, "institutionId")
    if institution_id is None:
        raise InvalidArgumentError("institutionId is required", details={"field": "institutionId"})
    service = RankingService(
        ctx.store,
        ctx.clock,
        batch_size=ctx.settings.freeze.batch_size,
        max_concurrent_reads=ctx.settings.kpi.max_concurrent_reads,
    )
    result = await service.update_institution_rankings(institution_id)
    return result.to_dict()


@callable_function("calculateUserStats")
async def calculate_user_stats(ctx: FunctionContext, data: dict[str, Any]) -> dict[str, Any]:
    user_id = _target_user(ctx, data, "userId")
    stats = await UserStatsService(ctx.store, ctx.settings.kpi, ctx.clock).calculate_user_stats(user_id)
    return {"success": True, "stats": stats.to_dict()}


@router.post(
    "/{name}",
    summary="Invoke a callable function",
    description="Run a named function with the caller's identity.",
)
async def call_function(
    name: str,
    body: CallableRequest | None = None,
    caller: CallerClaims = Depends(require_caller),
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> dict[str, Any]:
    """Dispatch a callable function.

    Args:
        name: Function name.
        body: Request envelope.
        caller: Verified caller.
        store: Document store.
        settings: Application settings.
        clock: Source of "now".

    Returns:
        ``{"result": ...}`` envelope.

    Raises:
        FunctionError: Mapped into the error envelope by the app handler.
    """
    handler = _FUNCTIONS.get(name)
    if handler is None:
        raise NotFoundError(f"Function not found: {name}", details={"function": name})

    data = (body.data if body else None) or {}
    ctx = FunctionContext(caller=caller, store=store, settings=settings, clock=clock)
    logger.info("Calling function %s for caller %s", name, caller.sub)

    try:
        result = await handler(ctx, data)
    except FunctionError:
        raise
    except (UserNotFoundError, TeacherNotFoundError) as e:
        raise NotFoundError(str(e))
    except InvalidInstitutionError as e:
        raise InvalidArgumentError(str(e))
    except Exception as e:
        logger.error("Function %s failed: %s", name, e, exc_info=True)
        raise InternalError.wrap(e)

    return {"result": result}
