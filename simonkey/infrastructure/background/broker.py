# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq broker configuration for the analytics workers.

Redis carries messages and task results in production. Setting
``DRAMATIQ_TEST_MODE=true`` swaps in an in-process StubBroker so actors can
be declared and enqueued without a Redis server.

Example:
    from simonkey.infrastructure.background.broker import setup_dramatiq, get_broker

    # Setup at application startup
    broker = setup_dramatiq()

    # Get broker for manual operations
    broker = get_broker()
"""

import logging
import os
from typing import Any

import dramatiq
import redis
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.results import Results
from dramatiq.results.backends.redis import RedisBackend

from simonkey.core.config import get_settings

logger = logging.getLogger(__name__)


class Queues:
    """Queue name constants for task routing."""

    KPIS = "kpis"
    RANKINGS = "rankings"
    MAINTENANCE = "maintenance"

    ALL = (KPIS, RANKINGS, MAINTENANCE)


class Priority:
    """Task priority levels (lower number = higher priority)."""

    HIGH = 1
    NORMAL = 3
    LOW = 5


def is_test_mode() -> bool:
    return os.getenv("DRAMATIQ_TEST_MODE", "false").lower() == "true"


class BrokerManager:
    """Manages Dramatiq broker lifecycle.

    Attributes:
        _broker: The Dramatiq broker instance.
        _results_backend: The results backend instance.
        _initialized: Whether the broker has been initialized.
    """

    def __init__(self) -> None:
        self._broker: dramatiq.Broker | None = None
        self._results_backend: RedisBackend | None = None
        self._initialized = False

    @property
    def broker(self) -> dramatiq.Broker:
        """Get the configured broker.

        Raises:
            RuntimeError: If broker not initialized.
        """
        if self._broker is None:
            raise RuntimeError("Broker not initialized. Call setup() first.")
        return self._broker

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def setup(self) -> dramatiq.Broker:
        """Setup and configure the Dramatiq broker.

        Returns:
            Configured broker instance.
        """
        if self._initialized:
            return self._broker  # type: ignore

        logger.info("Setting up Dramatiq broker...")

        if is_test_mode():
            self._broker = StubBroker()
            self._broker.emit_after("process_boot")
            logger.info("Using StubBroker for testing")
        else:
            redis_url = get_settings().redis.url
            self._results_backend = RedisBackend(url=redis_url)
            self._broker = RedisBroker(url=redis_url)
            self._broker.add_middleware(Results(backend=self._results_backend))
            logger.info("Redis broker initialized (url: %s)", redis_url.split("@")[-1])

        for queue in Queues.ALL:
            self._broker.declare_queue(queue)

        dramatiq.set_broker(self._broker)
        self._initialized = True
        return self._broker

    def shutdown(self) -> None:
        """Shutdown the broker."""
        if self._broker is not None:
            self._broker.close()
            self._broker = None
            self._initialized = False
            logger.info("Broker shutdown complete")

    def get_queue_stats(self) -> dict[str, Any]:
        """Get pending message counts per queue.

        Returns:
            Queue statistics dictionary.
        """
        if not self._initialized or self._broker is None:
            return {"status": "not_initialized"}

        if isinstance(self._broker, RedisBroker):
            stats: dict[str, Any] = {"broker_type": "redis"}
            try:
                client = redis.from_url(get_settings().redis.url)
                stats["queues"] = {queue: client.llen(f"dramatiq:{queue}") for queue in Queues.ALL}
                stats["status"] = "healthy"
            except redis.RedisError as e:
                stats["status"] = "error"
                stats["error"] = str(e)
            return stats

        return {
            "broker_type": "stub",
            "status": "healthy",
            "queues": {queue: self._broker.queues[queue].qsize() for queue in Queues.ALL},
        }


# Singleton instance
_broker_manager: BrokerManager | None = None


def get_broker_manager() -> BrokerManager:
    """Get the singleton broker manager."""
    global _broker_manager
    if _broker_manager is None:
        _broker_manager = BrokerManager()
    return _broker_manager


def setup_dramatiq() -> dramatiq.Broker:
    """Setup Dramatiq with configuration from settings.

    Safe to call more than once; the first call wins.

    Returns:
        Configured broker.
    """
    return get_broker_manager().setup()


def get_broker() -> dramatiq.Broker:
    """Get the current Dramatiq broker.

    Raises:
        RuntimeError: If broker not initialized.
    """
    return get_broker_manager().broker


def shutdown_dramatiq() -> None:
    """Shutdown the Dramatiq broker.

    Should be called at application shutdown.
    """
    global _broker_manager
    if _broker_manager is not None:
        _broker_manager.shutdown()
        _broker_manager = None
