# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store abstraction.

The analytics services read and write a Firestore-shaped database: documents
live at slash-separated paths (``users/u1/kpis/dashboard``), belong to a
collection (``users/u1/kpis``) and hold a JSON-like mapping. This module
defines the contract every backend implements plus the pieces shared by the
backends that evaluate queries in Python (memory and SQL).

Example:
    store = get_document_store()
    user = await store.get("users/u1")
    sessions = await store.query(
        "studySessions",
        [FieldFilter("userId", "==", "u1")],
    )
    batch = store.batch()
    batch.update("notebooks/n1", {"isFrozen": True, "updatedAt": SERVER_TIMESTAMP})
    await batch.commit()
"""

import copy
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from simonkey.utils.datetime import to_datetime

MAX_BATCH_OPERATIONS = 500

FilterOp = Literal["==", "!=", "<", "<=", ">", ">=", "in", "array-contains"]
_SUPPORTED_OPS = frozenset({"==", "!=", "<", "<=", ">", ">=", "in", "array-contains"})


class _Sentinel:
    """Marker value interpreted by the store on write."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return self.name

    def __deepcopy__(self, memo: dict) -> "_Sentinel":
        return self


SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")
DELETE_FIELD = _Sentinel("DELETE_FIELD")

_MISSING = object()


class DocumentStoreError(Exception):
    """Base exception for document store operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying backend error, if any.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class DocumentNotFoundError(DocumentStoreError):
    """Raised when updating a document that does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Document not found: {path}")
        self.path = path


class BatchLimitError(DocumentStoreError):
    """Raised when a write batch exceeds the operation limit."""

    pass


class InvalidPathError(DocumentStoreError):
    """Raised for malformed collection or document paths."""

    pass


def split_path(path: str) -> list[str]:
    """Split a slash-separated path into segments.

    Raises:
        InvalidPathError: If the path is empty or has empty segments.
    """
    segments = path.strip("/").split("/")
    if not path.strip("/") or any(not s for s in segments):
        raise InvalidPathError(f"Invalid path: {path!r}")
    return segments


def document_path(*segments: str) -> str:
    """Join segments into a document path.

    Raises:
        InvalidPathError: If the segments do not name a document.
    """
    path = "/".join(segments)
    if len(split_path(path)) % 2 != 0:
        raise InvalidPathError(f"Not a document path: {path!r}")
    return path


def parent_collection(path: str) -> str:
    """Collection path containing a document path."""
    segments = split_path(path)
    if len(segments) % 2 != 0:
        raise InvalidPathError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1])


def get_field(data: dict[str, Any] | None, dotted: str, default: Any = None) -> Any:
    """Read a possibly nested field using a dotted path."""
    value = _lookup(data, dotted)
    return default if value is _MISSING else value


def _lookup(data: Any, dotted: str) -> Any:
    current = data
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _comparable(left: Any, right: Any) -> tuple[Any, Any] | None:
    """Coerce two values into an ordered pair, or None if incomparable."""
    if left is None or right is None:
        return None
    if isinstance(left, datetime) or isinstance(right, datetime):
        left_dt, right_dt = to_datetime(left), to_datetime(right)
        if left_dt is None or right_dt is None:
            return None
        return left_dt, right_dt
    if isinstance(left, bool) or isinstance(right, bool):
        return (left, right) if type(left) is type(right) else None
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left, right
    if type(left) is type(right):
        return left, right
    return None


@dataclass(frozen=True)
class FieldFilter:
    """A single ``where`` clause.

    Missing fields never match, including for ``!=``, mirroring Firestore.

    Attributes:
        field: Dotted field path.
        op: Comparison operator.
        value: Right-hand operand.
    """

    field: str
    op: FilterOp
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _SUPPORTED_OPS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, data: dict[str, Any] | None) -> bool:
        """Evaluate the filter against a document's data."""
        actual = _lookup(data, self.field)
        if actual is _MISSING:
            return False

        if self.op == "array-contains":
            return isinstance(actual, list) and self.value in actual
        if self.op == "in":
            return actual in list(self.value)
        if self.op in ("==", "!="):
            pair = _comparable(actual, self.value)
            equal = (
                pair[0] == pair[1]
                if pair is not None
                else type(actual) is type(self.value) and actual == self.value
            )
            return equal if self.op == "==" else not equal

        pair = _comparable(actual, self.value)
        if pair is None:
            return False
        left, right = pair
        if self.op == "<":
            return left < right
        if self.op == "<=":
            return left <= right
        if self.op == ">":
            return left > right
        return left >= right


def matches_all(data: dict[str, Any] | None, filters: Iterable[FieldFilter]) -> bool:
    """Check whether data satisfies every filter."""
    return all(f.matches(data) for f in filters)


def sort_and_limit(
    snapshots: list["DocumentSnapshot"],
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> list["DocumentSnapshot"]:
    """Apply ordering and limit to snapshots evaluated in Python.

    Documents lacking the order field are dropped, as Firestore does.
    """
    result = snapshots
    if order_by is not None:
        result = [s for s in result if _lookup(s.data, order_by) is not _MISSING]
        result.sort(key=lambda s: _sort_key(_lookup(s.data, order_by)), reverse=descending)
    if limit is not None:
        result = result[:limit]
    return result


def _sort_key(value: Any) -> tuple[int, Any]:
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, datetime):
        return (3, to_datetime(value))
    if isinstance(value, str):
        return (4, value)
    return (5, repr(value))


def _resolve_sentinels(value: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {k: _resolve_sentinels(v, now) for k, v in value.items() if v is not DELETE_FIELD}
    if isinstance(value, list):
        return [_resolve_sentinels(v, now) for v in value]
    return value


def _merge_into(target: dict[str, Any], updates: dict[str, Any], now: datetime) -> None:
    for key, value in updates.items():
        if value is DELETE_FIELD:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_into(target[key], value, now)
        else:
            target[key] = _resolve_sentinels(value, now)


def apply_set(
    existing: dict[str, Any] | None,
    data: dict[str, Any],
    merge: bool,
    now: datetime,
) -> dict[str, Any]:
    """Compute the stored data after a ``set`` write."""
    if not merge or existing is None:
        return _resolve_sentinels(copy.deepcopy(data), now)
    result = copy.deepcopy(existing)
    _merge_into(result, copy.deepcopy(data), now)
    return result


def apply_update(existing: dict[str, Any], data: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Compute the stored data after an ``update`` write.

    Keys may be dotted field paths addressing nested maps.
    """
    result = copy.deepcopy(existing)
    for key, value in data.items():
        *parents, leaf = key.split(".")
        target = result
        for part in parents:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        if value is DELETE_FIELD:
            target.pop(leaf, None)
        else:
            target[leaf] = _resolve_sentinels(copy.deepcopy(value), now)
    return result


@dataclass
class DocumentSnapshot:
    """A document read from the store.

    Attributes:
        id: Last path segment.
        path: Full document path.
        data: Stored mapping, or None when the document does not exist.
    """

    id: str
    path: str
    data: dict[str, Any] | None = None

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, dotted: str, default: Any = None) -> Any:
        """Read a possibly nested field."""
        return get_field(self.data, dotted, default)

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the data with the document id under ``id``."""
        result = dict(self.data or {})
        result["id"] = self.id
        return result


@dataclass
class WriteOperation:
    """A queued batch write."""

    kind: Literal["set", "update", "delete"]
    path: str
    data: dict[str, Any] = field(default_factory=dict)
    merge: bool = False


class WriteBatch:
    """Collects writes and commits them atomically.

    At most MAX_BATCH_OPERATIONS writes fit into one batch.
    """

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._operations: list[WriteOperation] = []

    def __len__(self) -> int:
        return len(self._operations)

    def _add(self, operation: WriteOperation) -> "WriteBatch":
        if len(self._operations) >= MAX_BATCH_OPERATIONS:
            raise BatchLimitError(
                f"Write batch is limited to {MAX_BATCH_OPERATIONS} operations"
            )
        split_path(operation.path)
        self._operations.append(operation)
        return self

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> "WriteBatch":
        return self._add(WriteOperation("set", path, data, merge))

    def update(self, path: str, data: dict[str, Any]) -> "WriteBatch":
        return self._add(WriteOperation("update", path, data))

    def delete(self, path: str) -> "WriteBatch":
        return self._add(WriteOperation("delete", path))

    async def commit(self) -> int:
        """Commit queued writes.

        Returns:
            Number of operations committed.
        """
        operations, self._operations = self._operations, []
        if operations:
            await self._store.commit_operations(operations)
        return len(operations)


class DocumentStore(ABC):
    """Async document database contract."""

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot:
        """Read one document. Missing documents yield ``exists == False``."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        """Read the documents of a collection matching every filter."""

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Create or overwrite a document (or merge into it)."""

    @abstractmethod
    async def update(self, path: str, data: dict[str, Any]) -> None:
        """Update fields of an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""

    @abstractmethod
    async def commit_operations(self, operations: Sequence[WriteOperation]) -> None:
        """Apply batch writes atomically."""

    async def ping(self) -> bool:
        """Check whether the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None

    def batch(self) -> WriteBatch:
        return WriteBatch(self)


class ChunkedBatchWriter:
    """Spreads many writes over consecutive batches.

    A batch is committed whenever it reaches ``batch_size`` operations;
    flush() commits the remainder. Atomicity holds per batch only.

    Args:
        store: Target store.
        batch_size: Operations per committed batch.
    """

    def __init__(self, store: DocumentStore, batch_size: int = 400) -> None:
        if not 0 < batch_size <= MAX_BATCH_OPERATIONS:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_OPERATIONS}")
        self._store = store
        self._batch_size = batch_size
        self._batch = store.batch()
        self.committed = 0

    async def _maybe_commit(self) -> None:
        if len(self._batch) >= self._batch_size:
            await self.flush()

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._batch.set(path, data, merge)
        await self._maybe_commit()

    async def update(self, path: str, data: dict[str, Any]) -> None:
        self._batch.update(path, data)
        await self._maybe_commit()

    async def delete(self, path: str) -> None:
        self._batch.delete(path)
        await self._maybe_commit()

    async def flush(self) -> int:
        """Commit pending writes and return how many were committed."""
        count = await self._batch.commit()
        self.committed += count
        return count
