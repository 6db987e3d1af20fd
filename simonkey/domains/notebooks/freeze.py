# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduled freeze/unfreeze of notebooks.

Teachers and students can schedule a notebook to freeze (become read-only,
with its score pinned) and later unfreeze. A periodic sweep applies the
transitions that are due:

    unfrozen --scheduledFreezeAt reached--> frozen(frozenScore)
    frozen --scheduledUnfreezeAt reached--> unfrozen

The trigger field is deleted when a transition is applied, so each
scheduled boundary flips ``isFrozen`` exactly once. A missed sweep only
delays the transition to the next run. Every run leaves an audit entry in
``systemLogs``.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from simonkey.core.config import FreezeSettings, get_settings
from simonkey.domains.kpi.aggregation import round_half_up
from simonkey.infrastructure.documents import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ChunkedBatchWriter,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
)
from simonkey.utils.datetime import utc_now

logger = logging.getLogger(__name__)

NOTEBOOK_COLLECTIONS = ("notebooks", "schoolNotebooks")
SWEEP_LOG_TYPE = "scheduled_freeze_unfreeze"


@dataclass
class FreezeSweepResult:
    """Outcome of one sweep.

    Attributes:
        frozen: Paths of notebooks frozen in this run.
        unfrozen: Paths of notebooks unfrozen in this run.
    """

    frozen: list[str] = field(default_factory=list)
    unfrozen: list[str] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.frozen) + len(self.unfrozen)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "frozen": list(self.frozen),
            "unfrozen": list(self.unfrozen),
            "updatedCount": self.updated_count,
        }


class FreezeService:
    """Applies due notebook freeze and unfreeze schedules.

    Args:
        store: Document store.
        settings: Freeze settings. Defaults to the application settings.
        clock: Source of "now".
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: FreezeSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings().freeze
        self._clock = clock

    async def process_scheduled(self) -> FreezeSweepResult:
        """Run one sweep over every notebook collection.

        Returns:
            FreezeSweepResult listing the notebooks changed.

        Raises:
            Exception: Any failure reading notebooks or committing writes is
                logged to systemLogs and re-raised.
        """
        now = self._clock()
        result = FreezeSweepResult()
        writer = ChunkedBatchWriter(self._store, self._settings.batch_size)

        try:
            # All candidates are read before the first write: a notebook
            # frozen in this run must not match the unfreeze query
            to_freeze: list[DocumentSnapshot] = []
            to_unfreeze: list[DocumentSnapshot] = []
            for collection in NOTEBOOK_COLLECTIONS:
                to_freeze.extend(await self._due_to_freeze(collection, now))
                to_unfreeze.extend(await self._due_to_unfreeze(collection, now))

            for notebook in to_freeze:
                await self._freeze(notebook, now, writer, result)
            for notebook in to_unfreeze:
                await self._unfreeze(notebook, writer, result)
            await writer.flush()
        except Exception as e:
            logger.error("Freeze/unfreeze sweep failed: %s", e, exc_info=True)
            await self._record_run(now, writer.committed, "error", str(e))
            raise

        await self._record_run(now, result.updated_count, "success")
        logger.info(
            "Freeze/unfreeze sweep complete: frozen=%d, unfrozen=%d",
            len(result.frozen),
            len(result.unfrozen),
        )
        return result

    async def _due_to_freeze(self, collection: str, now: datetime) -> list[DocumentSnapshot]:
        # isFrozen is checked here rather than in the query: a "!=" filter
        # would skip notebooks that never had the field
        due = await self._store.query(collection, [FieldFilter("scheduledFreezeAt", "<=", now)])
        return [notebook for notebook in due if notebook.get("isFrozen") is not True]

    async def _due_to_unfreeze(self, collection: str, now: datetime) -> list[DocumentSnapshot]:
        return await self._store.query(
            collection,
            [
                FieldFilter("scheduledUnfreezeAt", "<=", now),
                FieldFilter("isFrozen", "==", True),
            ],
        )

    async def _freeze(
        self,
        notebook: DocumentSnapshot,
        now: datetime,
        writer: ChunkedBatchWriter,
        result: FreezeSweepResult,
    ) -> None:
        score = await self.frozen_score(notebook.id)
        await writer.update(
            notebook.path,
            {
                "isFrozen": True,
                "frozenAt": now,
                "frozenScore": score,
                "scheduledFreezeAt": DELETE_FIELD,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        result.frozen.append(notebook.path)
        logger.debug("Freezing %s with score %s", notebook.path, score)

    async def _unfreeze(
        self,
        notebook: DocumentSnapshot,
        writer: ChunkedBatchWriter,
        result: FreezeSweepResult,
    ) -> None:
        await writer.update(
            notebook.path,
            {
                "isFrozen": False,
                "frozenAt": DELETE_FIELD,
                "frozenScore": DELETE_FIELD,
                "scheduledUnfreezeAt": DELETE_FIELD,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        result.unfrozen.append(notebook.path)
        logger.debug("Unfreezing %s", notebook.path)

    async def frozen_score(self, notebook_id: str) -> float:
        """Average per-student easiness factor sum for a notebook.

        Each student's learning records for the notebook contribute the sum
        of their ``efactor`` values; the score is the mean of those sums.
        A missing, non-numeric or zero ``efactor`` counts as the default
        easiness factor.

        Args:
            notebook_id: Notebook identifier.

        Returns:
            The score, or 0 when there are no records or they cannot be read.
        """
        try:
            records = await self._store.query(
                "learningData", [FieldFilter("cuadernoId", "==", notebook_id)]
            )
        except Exception:
            logger.error("Failed to read learning data for notebook %s", notebook_id, exc_info=True)
            return 0.0

        per_student: dict[str, float] = {}
        for record in records:
            student_id = str(record.get("usuarioId") or "")
            efactor = record.get("efactor")
            if isinstance(efactor, bool) or not isinstance(efactor, (int, float)) or efactor == 0:
                efactor = self._settings.default_efactor
            per_student[student_id] = per_student.get(student_id, 0.0) + float(efactor)

        if not per_student:
            return 0.0
        return round_half_up(sum(per_student.values()) / len(per_student), 2)

    async def _record_run(
        self,
        now: datetime,
        updated_count: int,
        status: str,
        error: str | None = None,
    ) -> None:
        entry: dict[str, Any] = {
            "type": SWEEP_LOG_TYPE,
            "timestamp": now,
            "updatedCount": updated_count,
            "status": status,
        }
        if error is not None:
            entry["error"] = error
        try:
            await self._store.add("systemLogs", entry)
        except Exception:
            # A failed audit write never masks the sweep outcome
            logger.error("Failed to write sweep audit entry", exc_info=True)
