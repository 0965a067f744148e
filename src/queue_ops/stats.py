"""Queue statistics aggregation.

Builds the dashboard snapshot: per-queue counts, the most recent jobs, the
worker pool status and a dependency health report. Backend reads go through
the circuit breaker; health checks are settled independently so a failing
check degrades the report instead of failing the snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path

import psutil

from .backends.interfaces import ConfigStore, QueueBackend, WorkerBackend
from .circuit_breaker import BackendCircuitBreaker, CircuitOpenError
from .circuit_breaker_config import CircuitState
from .config import StatsSettings
from .models import (
    CheckStatus,
    HealthCheck,
    HealthReport,
    HealthState,
    JobFilter,
    JobRecord,
    QueueSnapshot,
    StatsSnapshot,
    WorkerStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

HEALTH_CHECK_NAMES = ("database", "config_store", "disk", "memory")


def overall_health(checks: list[HealthCheck]) -> HealthState:
    """Reduce individual checks to one state.

    Any error makes the report unhealthy, otherwise any warning makes it
    degraded.
    """
    if any(check.status == CheckStatus.ERROR for check in checks):
        return HealthState.UNHEALTHY
    if any(check.status == CheckStatus.WARN for check in checks):
        return HealthState.DEGRADED
    return HealthState.HEALTHY


class QueueStatsAggregator:
    """Produces cached, immutable ``StatsSnapshot`` objects.

    Usage:
        aggregator = QueueStatsAggregator(queue_backend, worker_backend,
                                          config_store, breaker)
        snapshot = await aggregator.get_snapshot()
        aggregator.invalidate()  # after any mutating command

    Only the latest snapshot is kept. Concurrent callers that miss the cache
    share one in-flight refresh. A refresh that started before
    ``invalidate()`` is returned to its callers but never cached.
    """

    def __init__(
        self,
        queue_backend: QueueBackend,
        worker_backend: WorkerBackend,
        config_store: ConfigStore,
        breaker: BackendCircuitBreaker,
        settings: StatsSettings | None = None,
        storage_root: str | Path = "/",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._queue_backend = queue_backend
        self._worker_backend = worker_backend
        self._config_store = config_store
        self._breaker = breaker
        self._settings = settings or StatsSettings()
        self._storage_root = Path(storage_root)
        self._clock = clock

        self._snapshot: StatsSnapshot | None = None
        self._fetched_at = 0.0
        self._generation = 0
        self._inflight: asyncio.Task[StatsSnapshot] | None = None
        self._inflight_generation = -1

    @property
    def breaker(self) -> BackendCircuitBreaker:
        return self._breaker

    @property
    def should_poll(self) -> bool:
        """False while the breaker is OPEN; polling loops stop on it."""
        return self._breaker.state != CircuitState.OPEN

    @property
    def cached(self) -> StatsSnapshot | None:
        """The last snapshot, fresh or not."""
        return self._snapshot

    def invalidate(self) -> None:
        """Drop the cached snapshot so the next read refetches.

        A refresh already in flight keeps running for its current waiters,
        but later reads start a new one.
        """
        self._snapshot = None
        self._generation += 1
        logger.debug("Stats cache invalidated")

    async def get_snapshot(self, force_refresh: bool = False) -> StatsSnapshot:
        """Return a snapshot, from cache when younger than the TTL.

        Args:
            force_refresh: Skip the cache.

        Returns:
            The current StatsSnapshot.

        Raises:
            CircuitOpenError: If the breaker is open.
            BackendUnavailableError: If a backend read fails.
        """
        snapshot = self._snapshot
        if snapshot is not None and not force_refresh and self._is_fresh():
            return snapshot

        inflight = self._inflight
        if (
            inflight is None
            or inflight.done()
            or self._inflight_generation != self._generation
        ):
            self._inflight_generation = self._generation
            inflight = asyncio.ensure_future(self._refresh(self._generation))
            self._inflight = inflight
        return await asyncio.shield(inflight)

    async def poll(
        self,
        on_snapshot: Callable[[StatsSnapshot], None],
        interval: float | None = None,
    ) -> int:
        """Deliver fresh snapshots every ``interval`` seconds.

        Stops as soon as the breaker opens. Backend errors are logged and
        the loop continues, so repeated failures trip the breaker.

        Args:
            on_snapshot: Called with each snapshot.
            interval: Seconds between polls. Defaults to the configured
                ``poll_interval_seconds``.

        Returns:
            Number of snapshots delivered.
        """
        delay = self._settings.poll_interval_seconds if interval is None else interval
        delivered = 0
        while self.should_poll:
            try:
                snapshot = await self.get_snapshot(force_refresh=True)
            except CircuitOpenError:
                logger.warning("Stats polling stopped: circuit %s is open", self._breaker.name)
                break
            except Exception as e:
                logger.warning("Stats poll failed: %s", e)
            else:
                on_snapshot(snapshot)
                delivered += 1
            await asyncio.sleep(delay)
        return delivered

    def _is_fresh(self) -> bool:
        if self._snapshot is None:
            return False
        return self._clock() - self._fetched_at < self._settings.cache_ttl_seconds

    async def _refresh(self, generation: int) -> StatsSnapshot:
        queues, recent_jobs, worker_status = await self._breaker.execute(self._fetch)
        checks = await self.run_health_checks()
        snapshot = StatsSnapshot(
            queues=queues,
            recent_jobs=recent_jobs,
            worker_status=worker_status,
            health=HealthReport(status=overall_health(checks), checks=checks),
            last_updated=utcnow(),
        )
        if generation == self._generation:
            self._snapshot = snapshot
            self._fetched_at = self._clock()
        return snapshot

    async def _fetch(self) -> tuple[list[QueueSnapshot], list[JobRecord], WorkerStatus]:
        names = await self._queue_backend.list_queue_names()
        queues, (recent_jobs, _total), worker_status = await asyncio.gather(
            self._queue_backend.get_stats(names),
            self._queue_backend.list_jobs(JobFilter(), 0, self._settings.recent_jobs_limit),
            self._worker_backend.get_heartbeat(),
        )
        return queues, recent_jobs, worker_status

    # =========================================================================
    # Health checks
    # =========================================================================

    async def run_health_checks(self) -> list[HealthCheck]:
        """Run every check; a check that raises becomes an ``error`` entry."""
        outcomes = await asyncio.gather(
            self.check_database(),
            self._check_config_store(),
            self._check_disk(),
            self._check_memory(),
            return_exceptions=True,
        )
        checks: list[HealthCheck] = []
        for name, outcome in zip(HEALTH_CHECK_NAMES, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Health check %s failed: %s", name, outcome)
                checks.append(
                    HealthCheck(
                        name=name, status=CheckStatus.ERROR, details={"error": str(outcome)}
                    )
                )
            else:
                checks.append(outcome)
        return checks

    async def check_database(self) -> HealthCheck:
        """Ping the queue database and report its latency."""
        started = time.perf_counter()
        await self._queue_backend.ping()
        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        return HealthCheck(
            name="database", status=CheckStatus.OK, details={"latency_ms": latency_ms}
        )

    async def _check_config_store(self) -> HealthCheck:
        await self._config_store.ping()
        return HealthCheck(name="config_store", status=CheckStatus.OK)

    async def _check_disk(self) -> HealthCheck:
        path = self._storage_root if self._storage_root.exists() else Path("/")
        usage = await asyncio.to_thread(psutil.disk_usage, str(path))
        status = (
            CheckStatus.WARN if usage.percent > self._settings.disk_warn_percent else CheckStatus.OK
        )
        return HealthCheck(
            name="disk",
            status=status,
            details={"path": str(path), "percent": usage.percent, "free": usage.free},
        )

    async def _check_memory(self) -> HealthCheck:
        memory = await asyncio.to_thread(psutil.virtual_memory)
        status = (
            CheckStatus.WARN
            if memory.percent > self._settings.memory_warn_percent
            else CheckStatus.OK
        )
        return HealthCheck(
            name="memory",
            status=status,
            details={"percent": memory.percent, "total": memory.total},
        )
