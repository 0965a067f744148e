"""Per worker-type configuration registry.

Reads always go to the config store, so a toggle takes effect on the next
dispatch cycle. Writes to the same worker id are serialized by a per-id
lock; different ids never contend.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import fields, replace
from typing import Any

from ..backends.interfaces import ConfigStore
from ..circuit_breaker import BackendCircuitBreaker
from ..errors import WorkerNotFoundError
from ..models import WorkerConfiguration, utcnow

logger = logging.getLogger(__name__)

# Fields a caller may change through update()
UPDATABLE_FIELDS = frozenset(f.name for f in fields(WorkerConfiguration)) - {"updated_at"}


class WorkerConfigRegistry:
    """Reads and writes ``WorkerConfiguration`` per worker id.

    Usage:
        registry = WorkerConfigRegistry(config_store, breaker)
        await registry.seed_defaults(DEFAULT_WORKERS)
        await registry.set_enabled("send-email", True)
        if await registry.is_enabled("process-image"):
            ...

    Writes are last-write-wins; ``updated_at`` on the stored value records
    when the winning write happened.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        breaker: BackendCircuitBreaker,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            config_store: Persistent store of worker configurations.
            breaker: Circuit breaker guarding the config store.
            on_change: Called after every successful write.
        """
        self._store = config_store
        self._breaker = breaker
        self._on_change = on_change
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, worker_id: str) -> asyncio.Lock:
        lock = self._locks.get(worker_id)
        if lock is None:
            lock = self._locks[worker_id] = asyncio.Lock()
        return lock

    async def get_all(self) -> dict[str, WorkerConfiguration]:
        """Return every known worker configuration keyed by id."""
        return await self._breaker.execute(self._store.get_all)

    async def get(self, worker_id: str) -> WorkerConfiguration:
        """Return one worker's configuration.

        Raises:
            WorkerNotFoundError: If the id is unknown.
        """
        config = await self._breaker.execute(lambda: self._store.get(worker_id))
        if config is None:
            raise WorkerNotFoundError(worker_id)
        return config

    async def is_enabled(self, worker_id: str) -> bool:
        """Dispatch check: True only for a known, enabled worker type."""
        try:
            config = await self.get(worker_id)
        except WorkerNotFoundError:
            return False
        return config.enabled

    async def set_enabled(self, worker_id: str, enabled: bool) -> WorkerConfiguration:
        """Enable or disable one worker type.

        Raises:
            WorkerNotFoundError: If the id is unknown.
        """
        return await self.update(worker_id, enabled=enabled)

    async def update(self, worker_id: str, **partial: Any) -> WorkerConfiguration:
        """Apply a partial update to one worker type.

        Args:
            worker_id: Worker type to change.
            **partial: Any of ``enabled``, ``max_retries``, ``concurrency``.

        Returns:
            The stored configuration.

        Raises:
            WorkerNotFoundError: If the id is unknown.
            ValueError: On unknown fields or out-of-range values.
        """
        unknown = set(partial) - UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown worker config fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        if "enabled" in partial and not isinstance(partial["enabled"], bool):
            raise ValueError("enabled must be a boolean")
        for key in ("max_retries", "concurrency"):
            value = partial.get(key, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"{key} must be an integer"
                raise ValueError(msg)

        async with self._lock_for(worker_id):
            current = await self.get(worker_id)
            updated = replace(current, **partial, updated_at=utcnow())
            await self._breaker.execute(lambda: self._store.set(worker_id, updated))

        logger.info(
            "Worker %s config updated: %s",
            worker_id,
            ", ".join(f"{key}={value}" for key, value in sorted(partial.items())),
        )
        if self._on_change is not None:
            self._on_change()
        return updated

    async def seed_defaults(self, defaults: Mapping[str, WorkerConfiguration]) -> list[str]:
        """Store defaults for worker types the store does not know yet.

        Existing entries are left untouched.

        Returns:
            Ids that were added.
        """
        existing = await self.get_all()
        added: list[str] = []
        for worker_id, config in defaults.items():
            if worker_id in existing:
                continue
            async with self._lock_for(worker_id):
                seeded = replace(config, updated_at=utcnow())
                await self._breaker.execute(
                    lambda wid=worker_id, cfg=seeded: self._store.set(wid, cfg)
                )
            added.append(worker_id)
        if added:
            logger.info("Seeded worker configs: %s", ", ".join(added))
        return added
