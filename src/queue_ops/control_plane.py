"""Composition root for the control plane.

Builds every component once, wires the circuit breakers and the stats
invalidation contract, and owns the lifecycle of the bundled database.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .backends import LocalStorageBackend
from .backends.interfaces import ConfigStore, QueueBackend, StorageBackend, WorkerBackend
from .circuit_breaker import CircuitBreakerRegistry
from .config import Settings
from .database import QueueOpsDB, SqliteConfigStore, SqliteQueueBackend, SqliteWorkerBackend
from .housekeeping import HousekeepingEngine
from .remediation import QueueRemediationOps
from .stats import QueueStatsAggregator
from .workers import WorkerConfigRegistry, WorkerLifecycleController

logger = logging.getLogger(__name__)

# Breaker names, one per guarded backend
QUEUE_CIRCUIT = "queue"
WORKER_CIRCUIT = "worker"
CONFIG_CIRCUIT = "config"
STORAGE_CIRCUIT = "storage"


class ControlPlane:
    """All control plane components, built from explicit backends.

    Usage:
        async with ControlPlane.from_settings(settings) as plane:
            snapshot = await plane.stats.get_snapshot()
            await plane.lifecycle.start()

    Every mutating component calls ``stats.invalidate`` after it changes
    something, so the next snapshot read goes to the backends.
    """

    def __init__(
        self,
        queue_backend: QueueBackend,
        worker_backend: WorkerBackend,
        config_store: ConfigStore,
        storage: StorageBackend,
        settings: Settings | None = None,
        db: QueueOpsDB | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.db = db
        self.breakers = CircuitBreakerRegistry(self.settings.circuit_breaker)

        self.stats = QueueStatsAggregator(
            queue_backend,
            worker_backend,
            config_store,
            self.breakers.get(QUEUE_CIRCUIT),
            settings=self.settings.stats,
            storage_root=self.settings.storage_root,
        )
        self.lifecycle = WorkerLifecycleController(
            worker_backend,
            self.breakers.get(WORKER_CIRCUIT),
            settings=self.settings.workers,
            on_command=self.stats.invalidate,
        )
        self.config_registry = WorkerConfigRegistry(
            config_store,
            self.breakers.get(CONFIG_CIRCUIT),
            on_change=self.stats.invalidate,
        )
        self.remediation = QueueRemediationOps(
            queue_backend,
            self.breakers.get(QUEUE_CIRCUIT),
            on_change=self.stats.invalidate,
        )
        self.housekeeping = HousekeepingEngine(
            storage,
            self.breakers.get(STORAGE_CIRCUIT),
            defaults=self.settings.housekeeping,
            on_change=self.stats.invalidate,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ControlPlane:
        """Build a control plane over the bundled SQLite and filesystem backends."""
        db = QueueOpsDB(settings.db_path)
        return cls(
            queue_backend=SqliteQueueBackend(db),
            worker_backend=SqliteWorkerBackend(db, settings.workers.heartbeat_stale_seconds),
            config_store=SqliteConfigStore(db),
            storage=LocalStorageBackend(db, Path(settings.storage_root)),
            settings=settings,
            db=db,
        )

    async def start(self) -> None:
        """Connect the database, seed worker defaults and observe the pool.

        A failed initial heartbeat read is logged; the lifecycle controller
        retries the observation on its next command.
        """
        if self.db is not None:
            await self.db.connect()
        await self.config_registry.seed_defaults(self.settings.workers.defaults)
        try:
            await self.lifecycle.observe()
        except Exception as e:
            logger.warning("Initial worker observation failed: %s", e)
        logger.info("Control plane started")

    async def close(self) -> None:
        if self.db is not None:
            await self.db.close()
        logger.info("Control plane stopped")

    async def __aenter__(self) -> ControlPlane:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()
