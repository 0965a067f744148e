"""Housekeeping engine: orphan detection and cleanup.

A run walks the enabled detection types in order. For each type it asks
the storage backend for up to ``max_files`` candidates, classifies them
oldest first, and records a finding for every eligible file. A dry run
stops there; an executing run then deletes each finding. Failures on one
file are recorded and the batch continues.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from ..backends.interfaces import StorageBackend
from ..circuit_breaker import BackendCircuitBreaker
from ..models import (
    FileRef,
    FindingType,
    HousekeepingFinding,
    HousekeepingRunResult,
    HousekeepingTypeResult,
    utcnow,
)
from .config import HousekeepingConfig
from .detectors import classify

logger = logging.getLogger(__name__)


def _sort_key(ref: FileRef) -> tuple[bool, datetime | None, str]:
    # Candidates without a timestamp sort last
    when = ref.reference_time
    return (when is None, when, ref.path)


class HousekeepingEngine:
    """Detects and removes orphaned media files.

    Usage:
        engine = HousekeepingEngine(storage, breaker)
        preview = await engine.analyze()
        result = await engine.run(HousekeepingConfig(dry_run=False))

    ``analyze`` never mutates. ``run`` mutates unless ``config.dry_run``.
    For the same storage state, a dry run and an executing run report the
    same ``total_cleaned`` and ``total_size_freed`` when no deletion fails.
    """

    def __init__(
        self,
        storage: StorageBackend,
        breaker: BackendCircuitBreaker,
        defaults: HousekeepingConfig | None = None,
        on_change: Callable[[], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the engine.

        Args:
            storage: File store and media catalog.
            breaker: Circuit breaker guarding the storage backend.
            defaults: Configuration used when a call passes none.
            on_change: Called after an executing run removed anything.
            clock: Returns the current aware UTC time.
        """
        self._storage = storage
        self._breaker = breaker
        self._defaults = defaults or HousekeepingConfig()
        self._on_change = on_change
        self._clock = clock

    @property
    def defaults(self) -> HousekeepingConfig:
        return self._defaults

    async def analyze(self, config: HousekeepingConfig | None = None) -> HousekeepingRunResult:
        """Report what a run would clean, without touching anything."""
        config = replace(config or self._defaults, dry_run=True)
        return await self._process(config)

    async def run(self, config: HousekeepingConfig | None = None) -> HousekeepingRunResult:
        """Detect and, unless ``config.dry_run``, delete orphaned files."""
        return await self._process(config or self._defaults)

    async def _process(self, config: HousekeepingConfig) -> HousekeepingRunResult:
        started = time.perf_counter()
        now = self._clock()
        mode = "dry run" if config.dry_run else "execute"
        logger.info(
            "Housekeeping %s started: types=%s max_files=%d grace=%dh",
            mode,
            ",".join(t.value for t in config.ordered_types),
            config.max_files,
            config.grace_period_hours,
        )

        # A file matched by an earlier type is not offered to later ones
        claimed: set[str] = set()
        results: list[HousekeepingTypeResult] = []
        for finding_type in config.ordered_types:
            results.append(await self._process_type(finding_type, config, now, claimed))

        errors = [error for result in results for error in result.errors]
        result = HousekeepingRunResult(
            dry_run=config.dry_run,
            total_processed=sum(r.processed_count for r in results),
            total_cleaned=sum(r.cleaned_count for r in results),
            total_size_freed=sum(r.total_size_freed for r in results),
            results=results,
            errors=errors,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        logger.info(
            "Housekeeping %s finished: processed=%d cleaned=%d freed=%d bytes errors=%d",
            mode,
            result.total_processed,
            result.total_cleaned,
            result.total_size_freed,
            len(errors),
        )
        if not config.dry_run and result.total_cleaned and self._on_change is not None:
            self._on_change()
        return result

    async def _process_type(
        self,
        finding_type: FindingType,
        config: HousekeepingConfig,
        now: datetime,
        claimed: set[str],
    ) -> HousekeepingTypeResult:
        errors: list[str] = []
        try:
            candidates = await self._breaker.execute(
                lambda: self._storage.list_candidates(finding_type, config.max_files)
            )
        except Exception as e:
            logger.warning("Housekeeping %s: listing candidates failed: %s", finding_type.value, e)
            return HousekeepingTypeResult(
                type=finding_type,
                processed_count=0,
                cleaned_count=0,
                total_size_freed=0,
                details=[],
                errors=[f"{finding_type.value}: listing candidates failed: {e}"],
            )

        candidates = sorted(
            (ref for ref in candidates[: config.max_files] if ref.path not in claimed),
            key=_sort_key,
        )
        findings: list[HousekeepingFinding] = []
        for ref in candidates:
            try:
                finding = await self._classify(finding_type, ref, now, config)
            except Exception as e:
                errors.append(f"{ref.path}: classification failed: {e}")
                continue
            if finding is not None:
                claimed.add(ref.path)
                findings.append(finding)
                if config.log_details:
                    logger.debug(
                        "Housekeeping %s: %s (%d bytes) - %s",
                        finding_type.value,
                        finding.file_path,
                        finding.size_bytes,
                        finding.reason,
                    )

        cleaned = findings
        if not config.dry_run:
            cleaned = []
            for finding in findings:
                try:
                    await self._clean(finding, config)
                except Exception as e:
                    logger.warning("Housekeeping: failed to clean %s: %s", finding.file_path, e)
                    errors.append(f"{finding.file_path}: {e}")
                    continue
                cleaned.append(finding)

        return HousekeepingTypeResult(
            type=finding_type,
            processed_count=len(candidates),
            cleaned_count=len(cleaned),
            total_size_freed=sum(f.size_bytes for f in cleaned),
            details=findings,
            errors=errors,
        )

    async def _classify(
        self, finding_type: FindingType, ref: FileRef, now: datetime, config: HousekeepingConfig
    ) -> HousekeepingFinding | None:
        exists = await self._breaker.execute(lambda: self._storage.exists(ref.path))
        reason = classify(finding_type, ref, now, config, exists)
        if reason is None:
            return None
        size = 0
        if exists:
            size = await self._breaker.execute(lambda: self._storage.file_size(ref.path)) or 0
        return HousekeepingFinding(
            type=finding_type,
            file_name=ref.file_name,
            file_path=ref.path,
            reason=reason,
            size_bytes=size,
            record_id=ref.record_id,
        )

    async def _clean(self, finding: HousekeepingFinding, config: HousekeepingConfig) -> None:
        """Delete one finding's file and catalog record.

        With two-phase deletion the record is marked deleted before the file
        is removed, so an interrupted run leaves a record that
        ``deleted_status_files`` picks up next time.
        """
        record_id = finding.record_id
        if record_id is not None and config.two_phase_deletion:
            await self._breaker.execute(lambda: self._storage.mark_deleted(record_id))

        removed = await self._breaker.execute(lambda: self._storage.delete(finding.file_path))
        if removed and config.directory_cleanup:
            await self._breaker.execute(
                lambda: self._storage.remove_empty_parents(finding.file_path)
            )

        if record_id is not None:
            await self._breaker.execute(lambda: self._storage.purge_record(record_id))
