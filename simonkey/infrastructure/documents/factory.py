# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Process-wide document store lifecycle.

Example:
    from simonkey.infrastructure.documents import (
        init_document_store,
        get_document_store,
    )

    # At application or worker startup
    await init_document_store(settings)

    # Anywhere afterwards
    store = get_document_store()
"""

import logging
from typing import TYPE_CHECKING

from simonkey.infrastructure.documents.base import DocumentStore, DocumentStoreError

if TYPE_CHECKING:
    from simonkey.core.config.settings import Settings

logger = logging.getLogger(__name__)

_store: DocumentStore | None = None


async def build_document_store(settings: "Settings") -> DocumentStore:
    """Create the backend selected by DOCUMENT_STORE_BACKEND.

    Backend modules are imported lazily so a deployment only needs the
    client library of the backend it uses.

    Args:
        settings: Application settings.

    Returns:
        A ready-to-use DocumentStore.
    """
    config = settings.document_store

    if config.backend == "firestore":
        from simonkey.infrastructure.documents.firestore import FirestoreDocumentStore

        return FirestoreDocumentStore(
            project=config.firestore_project,
            database=config.firestore_database,
        )

    if config.backend == "sql":
        from simonkey.infrastructure.documents.sql import SqlDocumentStore

        store = SqlDocumentStore(
            url=config.sql_url,
            table_name=config.sql_table,
            echo=config.sql_echo,
        )
        await store.initialize()
        return store

    from simonkey.infrastructure.documents.memory import MemoryDocumentStore

    return MemoryDocumentStore()


async def init_document_store(settings: "Settings") -> DocumentStore:
    """Initialize the process-wide document store.

    Calling it again returns the existing store.
    """
    global _store

    if _store is None:
        _store = await build_document_store(settings)
        logger.info("Document store initialized: backend=%s", settings.document_store.backend)
    return _store


def set_document_store(store: DocumentStore | None) -> None:
    """Install a specific store, e.g. a seeded MemoryDocumentStore in tests."""
    global _store
    _store = store


def get_document_store() -> DocumentStore:
    """Get the process-wide document store.

    Raises:
        DocumentStoreError: If the store has not been initialized.
    """
    if _store is None:
        raise DocumentStoreError(
            "Document store not initialized. Call init_document_store() first."
        )
    return _store


async def close_document_store() -> None:
    """Close and forget the process-wide document store."""
    global _store

    if _store is not None:
        await _store.close()
        _store = None
        logger.info("Document store closed")
