# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-process document store.

Used by the test suite and for local development without a database.
Documents are deep-copied on the way in and out so callers can never mutate
stored state by accident.
"""

import copy
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from simonkey.infrastructure.documents.base import (
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    WriteOperation,
    apply_set,
    apply_update,
    matches_all,
    parent_collection,
    sort_and_limit,
    split_path,
)
from simonkey.utils.datetime import utc_now


class MemoryDocumentStore(DocumentStore):
    """Dictionary-backed DocumentStore.

    Args:
        clock: Source of the value written for SERVER_TIMESTAMP.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._clock = clock
        self.committed_batches = 0

    def _snapshot(self, path: str) -> DocumentSnapshot:
        segments = split_path(path)
        data = self._documents.get("/".join(segments))
        return DocumentSnapshot(
            id=segments[-1],
            path="/".join(segments),
            data=copy.deepcopy(data) if data is not None else None,
        )

    async def get(self, path: str) -> DocumentSnapshot:
        return self._snapshot(path)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        collection = "/".join(split_path(collection))
        snapshots = [
            self._snapshot(path)
            for path, data in sorted(self._documents.items())
            if parent_collection(path) == collection and matches_all(data, filters)
        ]
        return sort_and_limit(snapshots, order_by, descending, limit)

    def _apply(self, operation: WriteOperation, now: datetime) -> None:
        path = "/".join(split_path(operation.path))
        existing = self._documents.get(path)
        if operation.kind == "delete":
            self._documents.pop(path, None)
        elif operation.kind == "set":
            self._documents[path] = apply_set(existing, operation.data, operation.merge, now)
        else:
            if existing is None:
                raise DocumentNotFoundError(path)
            self._documents[path] = apply_update(existing, operation.data, now)

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._apply(WriteOperation("set", path, data, merge), self._clock())

    async def update(self, path: str, data: dict[str, Any]) -> None:
        self._apply(WriteOperation("update", path, data), self._clock())

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        await self.set(f"{collection}/{doc_id}", data)
        return doc_id

    async def delete(self, path: str) -> None:
        self._apply(WriteOperation("delete", path), self._clock())

    async def commit_operations(self, operations: Sequence[WriteOperation]) -> None:
        # Batches are all-or-nothing
        now = self._clock()
        saved = copy.deepcopy(self._documents)
        try:
            for operation in operations:
                self._apply(operation, now)
        except Exception:
            self._documents = saved
            raise
        self.committed_batches += 1

    def seed(self, documents: dict[str, dict[str, Any]]) -> None:
        """Load documents keyed by path, replacing any existing ones."""
        for path, data in documents.items():
            self._documents["/".join(split_path(path))] = copy.deepcopy(data)

    def dump(self, prefix: str = "") -> dict[str, dict[str, Any]]:
        """Return a copy of the stored documents whose path starts with prefix."""
        return {
            path: copy.deepcopy(data)
            for path, data in sorted(self._documents.items())
            if path.startswith(prefix)
        }
