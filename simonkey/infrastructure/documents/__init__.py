# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store package.

Backends:
- MemoryDocumentStore: in-process, for tests and local runs
- FirestoreDocumentStore: Cloud Firestore (simonkey.infrastructure.documents.firestore)
- SqlDocumentStore: JSON rows over SQLAlchemy (simonkey.infrastructure.documents.sql)
"""

from simonkey.infrastructure.documents.base import (
    DELETE_FIELD,
    MAX_BATCH_OPERATIONS,
    SERVER_TIMESTAMP,
    BatchLimitError,
    ChunkedBatchWriter,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    DocumentStoreError,
    FieldFilter,
    InvalidPathError,
    WriteBatch,
    document_path,
    get_field,
)
from simonkey.infrastructure.documents.factory import (
    build_document_store,
    close_document_store,
    get_document_store,
    init_document_store,
    set_document_store,
)
from simonkey.infrastructure.documents.memory import MemoryDocumentStore

__all__ = [
    # Contract
    "DocumentStore",
    "DocumentSnapshot",
    "FieldFilter",
    "WriteBatch",
    "ChunkedBatchWriter",
    "SERVER_TIMESTAMP",
    "DELETE_FIELD",
    "MAX_BATCH_OPERATIONS",
    "document_path",
    "get_field",
    # Errors
    "DocumentStoreError",
    "DocumentNotFoundError",
    "BatchLimitError",
    "InvalidPathError",
    # Backends
    "MemoryDocumentStore",
    # Lifecycle
    "build_document_store",
    "init_document_store",
    "set_document_store",
    "get_document_store",
    "close_document_store",
]
