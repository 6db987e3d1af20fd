# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers process messages on several threads (--threads N).
    The async document store clients (Firestore AsyncClient, SQLAlchemy
    async engine) are bound to the event loop they were created on, so each
    worker thread keeps one persistent loop and one store built on it.

    When a thread's loop is replaced, its store is dropped and rebuilt on
    the new loop at the next task.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from simonkey.core.config import get_settings
from simonkey.infrastructure.documents import DocumentStore, build_document_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread-local storage for event loops and stores
_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the current thread.

    Returns:
        Event loop for current thread.
    """
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop
        # A store built on the previous loop cannot be reused
        _thread_local.store = None

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async coroutine in sync Dramatiq worker context.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.

    Example:
        @dramatiq.actor
        def my_task(user_id: str):
            async def _process():
                store = await get_worker_store()
                ...
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)


async def get_worker_store() -> DocumentStore:
    """Document store bound to the current worker thread's event loop.

    Returns:
        The thread's DocumentStore, built from settings on first use.
    """
    store = getattr(_thread_local, "store", None)
    if store is None:
        store = await build_document_store(get_settings())
        _thread_local.store = store
        logger.debug("Document store created for thread %s", threading.current_thread().name)
    return store
