# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cloud Firestore backend.

Thin adapter from the DocumentStore contract onto the google-cloud-firestore
async client. Filters, ordering and limits are pushed down to Firestore;
sentinels are translated to Firestore's own transforms.
"""

import inspect
import logging
from collections.abc import Sequence
from typing import Any

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter as FirestoreFieldFilter

from simonkey.infrastructure.documents.base import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    DocumentStoreError,
    FieldFilter,
    WriteOperation,
    split_path,
)

logger = logging.getLogger(__name__)


def _to_firestore(value: Any) -> Any:
    """Replace store sentinels with Firestore transforms."""
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if value is DELETE_FIELD:
        return firestore.DELETE_FIELD
    if isinstance(value, dict):
        return {k: _to_firestore(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_firestore(v) for v in value]
    return value


def _snapshot(doc: Any) -> DocumentSnapshot:
    return DocumentSnapshot(
        id=doc.id,
        path=doc.reference.path,
        data=doc.to_dict() if doc.exists else None,
    )


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore backed by google.cloud.firestore.AsyncClient.

    Args:
        project: Google Cloud project id. Falls back to the environment.
        database: Firestore database id.
        client: Prebuilt client, mainly for tests.
    """

    def __init__(
        self,
        project: str | None = None,
        database: str = "(default)",
        client: firestore.AsyncClient | None = None,
    ) -> None:
        self._client = client or firestore.AsyncClient(project=project, database=database)

    async def get(self, path: str) -> DocumentSnapshot:
        try:
            doc = await self._client.document("/".join(split_path(path))).get()
        except GoogleAPICallError as e:
            raise DocumentStoreError(f"Failed to read {path}", e) from e
        return _snapshot(doc)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        query: Any = self._client.collection("/".join(split_path(collection)))
        for f in filters:
            query = query.where(filter=FirestoreFieldFilter(f.field, f.op, f.value))
        if order_by is not None:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)

        try:
            return [_snapshot(doc) async for doc in query.stream()]
        except GoogleAPICallError as e:
            raise DocumentStoreError(f"Failed to query {collection}", e) from e

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        try:
            await self._client.document(path).set(_to_firestore(data), merge=merge)
        except GoogleAPICallError as e:
            raise DocumentStoreError(f"Failed to write {path}", e) from e

    async def update(self, path: str, data: dict[str, Any]) -> None:
        try:
            await self._client.document(path).update(_to_firestore(data))
        except NotFound as e:
            raise DocumentNotFoundError(path) from e
        except GoogleAPICallError as e:
            raise DocumentStoreError(f"Failed to update {path}", e) from e

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        try:
            _, ref = await self._client.collection(collection).add(_to_firestore(data))
        except GoogleAPICallError as e:
            raise DocumentStoreError(f"Failed to add to {collection}", e) from e
        return ref.id

    async def delete(self, path: str) -> None:
        try:
            await self._client.document(path).delete()
        except GoogleAPICallError as e:
            raise DocumentStoreError(f"Failed to delete {path}", e) from e

    async def commit_operations(self, operations: Sequence[WriteOperation]) -> None:
        batch = self._client.batch()
        for op in operations:
            ref = self._client.document(op.path)
            if op.kind == "set":
                batch.set(ref, _to_firestore(op.data), merge=op.merge)
            elif op.kind == "update":
                batch.update(ref, _to_firestore(op.data))
            else:
                batch.delete(ref)
        try:
            await batch.commit()
        except NotFound as e:
            raise DocumentStoreError("Batch update targeted a missing document", e) from e
        except GoogleAPICallError as e:
            raise DocumentStoreError(f"Failed to commit batch of {len(operations)}", e) from e

    async def ping(self) -> bool:
        try:
            async for _ in self._client.collection("systemLogs").limit(1).stream():
                break
        except GoogleAPICallError:
            logger.warning("Firestore ping failed", exc_info=True)
            return False
        return True

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result
