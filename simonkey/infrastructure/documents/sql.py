# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Relational backend storing documents as JSON rows.

Uses SQLAlchemy 2.0 async API. Each document is one row keyed by its full
path, with its parent collection indexed so collection scans stay cheap.
Filters are evaluated in Python with the same semantics as the memory store,
which keeps every backend answering queries identically.

Datetimes are not JSON-native, so they are stored as ``{"__datetime__": iso}``
and restored on read.

Example:
    store = SqlDocumentStore("postgresql+asyncpg://user:pwd@db/simonkey")
    await store.initialize()
    await store.set("users/u1", {"subscription": "school"})
"""

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, MetaData, String, Table, delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from simonkey.infrastructure.documents.base import (
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    DocumentStoreError,
    FieldFilter,
    WriteOperation,
    apply_set,
    apply_update,
    matches_all,
    parent_collection,
    sort_and_limit,
    split_path,
)
from simonkey.utils.datetime import parse_iso, utc_now

logger = logging.getLogger(__name__)

_DATETIME_KEY = "__datetime__"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_KEY: value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_DATETIME_KEY}:
            return parse_iso(value[_DATETIME_KEY])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def build_documents_table(metadata: MetaData, name: str = "documents") -> Table:
    """Define the documents table."""
    return Table(
        name,
        metadata,
        Column("path", String(1024), primary_key=True),
        Column("collection", String(1024), nullable=False, index=True),
        Column("doc_id", String(255), nullable=False),
        Column("data", JSON, nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
    )


class SqlDocumentStore(DocumentStore):
    """DocumentStore backed by a single SQL table.

    Args:
        url: Async SQLAlchemy database URL.
        table_name: Name of the documents table.
        echo: Log every SQL statement.
        engine: Prebuilt engine, mainly for tests.
        clock: Source of the value written for SERVER_TIMESTAMP.
    """

    def __init__(
        self,
        url: str | None = None,
        table_name: str = "documents",
        echo: bool = False,
        engine: AsyncEngine | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if engine is None and url is None:
            raise ValueError("Either url or engine is required")
        try:
            self._engine = engine or create_async_engine(url, echo=echo, pool_pre_ping=True)
        except SQLAlchemyError as e:
            raise DocumentStoreError("Failed to create SQL engine", e) from e
        self._metadata = MetaData()
        self._table = build_documents_table(self._metadata, table_name)
        self._clock = clock

    async def initialize(self) -> None:
        """Create the documents table if it does not exist."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(self._metadata.create_all)
        except SQLAlchemyError as e:
            raise DocumentStoreError("Failed to create documents table", e) from e

    async def _read(self, conn: AsyncConnection, path: str) -> dict[str, Any] | None:
        result = await conn.execute(select(self._table.c.data).where(self._table.c.path == path))
        row = result.first()
        return _decode(row.data) if row is not None else None

    async def _write(
        self,
        conn: AsyncConnection,
        path: str,
        data: dict[str, Any],
        exists: bool,
        now: datetime,
    ) -> None:
        values = {"data": _encode(data), "updated_at": now}
        if exists:
            await conn.execute(
                self._table.update().where(self._table.c.path == path).values(**values)
            )
        else:
            segments = split_path(path)
            await conn.execute(
                self._table.insert().values(
                    path=path,
                    collection=parent_collection(path),
                    doc_id=segments[-1],
                    **values,
                )
            )

    async def _apply(self, conn: AsyncConnection, op: WriteOperation, now: datetime) -> None:
        path = "/".join(split_path(op.path))
        if op.kind == "delete":
            await conn.execute(delete(self._table).where(self._table.c.path == path))
            return

        existing = await self._read(conn, path)
        if op.kind == "set":
            data = apply_set(existing, op.data, op.merge, now)
        else:
            if existing is None:
                raise DocumentNotFoundError(path)
            data = apply_update(existing, op.data, now)
        await self._write(conn, path, data, existing is not None, now)

    async def commit_operations(self, operations: Sequence[WriteOperation]) -> None:
        now = self._clock()
        try:
            async with self._engine.begin() as conn:
                for op in operations:
                    await self._apply(conn, op, now)
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Failed to commit batch of {len(operations)}", e) from e

    async def get(self, path: str) -> DocumentSnapshot:
        path = "/".join(split_path(path))
        try:
            async with self._engine.connect() as conn:
                data = await self._read(conn, path)
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Failed to read {path}", e) from e
        return DocumentSnapshot(id=path.rsplit("/", 1)[-1], path=path, data=data)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        collection = "/".join(split_path(collection))
        stmt = (
            select(self._table.c.path, self._table.c.doc_id, self._table.c.data)
            .where(self._table.c.collection == collection)
            .order_by(self._table.c.path)
        )
        try:
            async with self._engine.connect() as conn:
                rows = (await conn.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Failed to query {collection}", e) from e

        snapshots = []
        for row in rows:
            data = _decode(row.data)
            if matches_all(data, filters):
                snapshots.append(DocumentSnapshot(id=row.doc_id, path=row.path, data=data))
        return sort_and_limit(snapshots, order_by, descending, limit)

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await self.commit_operations([WriteOperation("set", path, data, merge)])

    async def update(self, path: str, data: dict[str, Any]) -> None:
        await self.commit_operations([WriteOperation("update", path, data)])

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        await self.set(f"{collection}/{doc_id}", data)
        return doc_id

    async def delete(self, path: str) -> None:
        await self.commit_operations([WriteOperation("delete", path)])

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("SQL document store ping failed", exc_info=True)
            return False
        return True

    async def close(self) -> None:
        await self._engine.dispose()
