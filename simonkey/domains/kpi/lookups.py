# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Relational lookups shared by the KPI, ranking and stats services.

The database keeps several generations of link fields side by side
(``idMateria`` vs ``subjectId``, ``idEscuela`` vs ``idInstitucion``), and
institution membership is sometimes only reachable through the school admin
who created the account. These helpers encode the lookup order once.

Reads here follow the degrade-on-failure policy: a failing sub-query is
logged and treated as empty so one broken collection cannot sink a whole
dashboard.
"""

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Sequence
from typing import Any, TypeVar

from simonkey.domains.kpi.aggregation import count_concepts
from simonkey.infrastructure.documents import DocumentSnapshot, DocumentStore, FieldFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHOOL_SUBSCRIPTION = "school"
STUDENT_ROLE = "student"
TEACHER_ROLE = "teacher"
ACTIVE_ENROLLMENT = "active"

# Collections that may hold the admin referenced by a user's idAdmin
ADMIN_PROBE_COLLECTIONS = ("users", "schoolAdmins", "schoolUsers")


def is_school_student(user: dict[str, Any] | None) -> bool:
    user = user or {}
    return user.get("subscription") == SCHOOL_SUBSCRIPTION and user.get("schoolRole") == STUDENT_ROLE


def notebook_subject(notebook: dict[str, Any] | None) -> str | None:
    """Subject id of a notebook from idMateria, materiaId or legacy subjectId."""
    notebook = notebook or {}
    for key in ("idMateria", "materiaId", "subjectId"):
        value = notebook.get(key)
        if value:
            return str(value)
    return None


def direct_institution(user: dict[str, Any] | None) -> str | None:
    """Institution id stored on the user document itself, if any."""
    user = user or {}
    school_data = user.get("schoolData") or {}
    for value in (user.get("idEscuela"), user.get("idInstitucion"), school_data.get("idEscuela")):
        if value:
            return str(value)
    return None


def user_display_name(user: dict[str, Any] | None, fallback: str) -> str:
    user = user or {}
    return user.get("nombre") or user.get("displayName") or user.get("email") or fallback


async def query_or_empty(
    store: DocumentStore,
    collection: str,
    filters: Sequence[FieldFilter] = (),
    *,
    what: str,
) -> list[DocumentSnapshot]:
    """Run a query, logging and returning [] on failure."""
    try:
        return await store.query(collection, filters)
    except Exception:
        logger.warning("Failed to load %s from %s", what, collection, exc_info=True)
        return []


async def get_or_none(store: DocumentStore, path: str, *, what: str) -> DocumentSnapshot | None:
    """Read a document, logging and returning None on failure or absence."""
    try:
        snapshot = await store.get(path)
    except Exception:
        logger.warning("Failed to load %s at %s", what, path, exc_info=True)
        return None
    return snapshot if snapshot.exists else None


async def bounded_gather(limit: int, awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """Await coroutines concurrently with at most ``limit`` in flight."""
    semaphore = asyncio.Semaphore(limit)

    async def _run(awaitable: Awaitable[T]) -> T:
        async with semaphore:
            return await awaitable

    return list(await asyncio.gather(*(_run(a) for a in awaitables)))


async def resolve_institution(store: DocumentStore, user: dict[str, Any] | None) -> str | None:
    """Resolve a user's institution.

    Direct fields win. Otherwise the admin referenced by ``idAdmin`` is looked
    up in ADMIN_PROBE_COLLECTIONS in order, and the first document found
    supplies idEscuela or idInstitucion.

    Args:
        store: Document store.
        user: User document data.

    Returns:
        Institution id, or None when it cannot be resolved.
    """
    institution = direct_institution(user)
    if institution:
        return institution

    admin_id = (user or {}).get("idAdmin")
    if not admin_id:
        return None

    for collection in ADMIN_PROBE_COLLECTIONS:
        admin = await get_or_none(store, f"{collection}/{admin_id}", what="school admin")
        if admin is None:
            continue
        institution = admin.get("idEscuela") or admin.get("idInstitucion")
        logger.debug("Resolved admin %s via %s: institution=%s", admin_id, collection, institution)
        return str(institution) if institution else None

    logger.info("Admin %s not found in any of %s", admin_id, ", ".join(ADMIN_PROBE_COLLECTIONS))
    return None


async def active_enrollments(store: DocumentStore, student_id: str) -> list[dict[str, Any]]:
    """Active enrollments of a student."""
    snapshots = await query_or_empty(
        store,
        "enrollments",
        [
            FieldFilter("studentId", "==", student_id),
            FieldFilter("status", "==", ACTIVE_ENROLLMENT),
        ],
        what="enrollments",
    )
    return [s.to_dict() for s in snapshots]


async def school_students(
    store: DocumentStore,
    institution_id: str | None = None,
) -> list[DocumentSnapshot]:
    """School students, optionally restricted to one institution.

    Institution membership is matched on any of the direct institution
    fields, so students created by older clients are not missed.
    """
    students = await query_or_empty(
        store,
        "users",
        [
            FieldFilter("subscription", "==", SCHOOL_SUBSCRIPTION),
            FieldFilter("schoolRole", "==", STUDENT_ROLE),
        ],
        what="school students",
    )
    if institution_id is None:
        return students
    return [s for s in students if direct_institution(s.data) == institution_id]


async def school_teachers(store: DocumentStore) -> list[DocumentSnapshot]:
    """All school teachers."""
    return await query_or_empty(
        store,
        "users",
        [
            FieldFilter("subscription", "==", SCHOOL_SUBSCRIPTION),
            FieldFilter("schoolRole", "==", TEACHER_ROLE),
        ],
        what="school teachers",
    )


async def concept_count(store: DocumentStore, collection: str, notebook_id: str) -> int:
    """Number of concept records attached to a notebook."""
    documents = await query_or_empty(
        store,
        collection,
        [FieldFilter("cuadernoId", "==", notebook_id)],
        what="concepts",
    )
    return count_concepts([d.data or {} for d in documents])
