"""Control plane configuration.

Loads ``queue_ops.toml`` into frozen dataclasses. The file location comes
from the ``QUEUE_OPS_CONFIG`` environment variable, falling back to
``./queue_ops.toml``; a missing file yields the defaults. Selected values can
be overridden from the environment (database path, storage root, CORS
origins).
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .circuit_breaker_config import CircuitBreakerConfig
from .housekeeping.config import DEFAULT_DETECTION_TYPES, HousekeepingConfig
from .models import WorkerConfiguration

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "QUEUE_OPS_CONFIG"
DB_PATH_ENV_VAR = "QUEUE_OPS_DB_PATH"
STORAGE_ROOT_ENV_VAR = "QUEUE_OPS_STORAGE_ROOT"
CORS_ORIGINS_ENV_VAR = "QUEUE_OPS_CORS_ORIGINS"

DEFAULT_CONFIG_FILE = "queue_ops.toml"

# Worker types and their defaults, as shipped with the queue settings panel
DEFAULT_WORKERS: dict[str, WorkerConfiguration] = {
    "process-image": WorkerConfiguration(enabled=True, max_retries=3, concurrency=5),
    "process-video": WorkerConfiguration(enabled=False, max_retries=3, concurrency=1),
    "process-document": WorkerConfiguration(enabled=False, max_retries=3, concurrency=3),
    "delete-media": WorkerConfiguration(enabled=True, max_retries=3, concurrency=1),
    "cleanup-orphaned-media": WorkerConfiguration(enabled=True, max_retries=1, concurrency=1),
    "send-email": WorkerConfiguration(enabled=False, max_retries=3, concurrency=10),
    "housekeeping": WorkerConfiguration(enabled=True, max_retries=1, concurrency=1),
}

DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
)


@dataclass(frozen=True)
class StatsSettings:
    """Stats aggregator settings."""

    cache_ttl_seconds: float = 1.0
    recent_jobs_limit: int = 20
    memory_warn_percent: float = 90.0
    disk_warn_percent: float = 90.0
    poll_interval_seconds: float = 5.0


@dataclass(frozen=True)
class WorkerSettings:
    """Worker lifecycle settings."""

    confirm_timeout_seconds: float = 10.0
    confirm_poll_interval_seconds: float = 0.5
    heartbeat_stale_seconds: float = 60.0
    defaults: dict[str, WorkerConfiguration] = field(
        default_factory=lambda: dict(DEFAULT_WORKERS)
    )


@dataclass(frozen=True)
class ApiSettings:
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8420
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS


@dataclass(frozen=True)
class Settings:
    """Complete control plane configuration."""

    db_path: str = "queue_ops.db"
    storage_root: str = "storage"
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    stats: StatsSettings = field(default_factory=StatsSettings)
    workers: WorkerSettings = field(default_factory=WorkerSettings)
    housekeeping: HousekeepingConfig = field(default_factory=HousekeepingConfig)
    api: ApiSettings = field(default_factory=ApiSettings)


def load_settings(path: Path | None = None, env: dict[str, str] | None = None) -> Settings:
    """Load settings from TOML and apply environment overrides.

    Args:
        path: Config file. Defaults to $QUEUE_OPS_CONFIG or ./queue_ops.toml.
        env: Environment mapping. Defaults to ``os.environ``.

    Returns:
        Parsed Settings.

    Raises:
        FileNotFoundError: If an explicitly given config file is missing.
        ValueError: On invalid TOML or out-of-range values.
    """
    environ = os.environ if env is None else env
    explicit = path is not None or CONFIG_ENV_VAR in environ
    config_file = path or Path(environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE))

    data: dict[str, Any] = {}
    if config_file.exists():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid TOML in {config_file}: {exc}"
            raise ValueError(msg) from exc
        logger.info("Loaded configuration from %s", config_file)
    elif explicit:
        msg = f"Config file not found: {config_file}"
        raise FileNotFoundError(msg)

    settings = _parse_settings(data)
    return _apply_env_overrides(settings, environ)


def parse_cors_origins(raw: str | None) -> tuple[str, ...]:
    """Parse a CORS origins value.

    - None: default localhost origins
    - '*': wildcard access
    - comma-separated list: those origins, trimmed, empty entries dropped
    """
    if raw is None:
        return DEFAULT_CORS_ORIGINS
    if raw.strip() == "*":
        return ("*",)
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


def _table(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        msg = f"[{key}] section must be a table"
        raise ValueError(msg)
    return value


def _parse_settings(data: dict[str, Any]) -> Settings:
    """Parse raw TOML data into Settings.

    Unknown fields are silently ignored for forward compatibility.
    """
    database = _table(data, "database")
    storage = _table(data, "storage")
    breaker = _table(data, "circuit_breaker")
    stats = _table(data, "stats")
    workers = _table(data, "workers")
    housekeeping = _table(data, "housekeeping")
    api = _table(data, "api")

    worker_defaults = dict(DEFAULT_WORKERS)
    overrides = workers.get("defaults", {})
    if not isinstance(overrides, dict):
        msg = "[workers.defaults] section must be a table"
        raise ValueError(msg)
    for worker_id, values in overrides.items():
        if not isinstance(values, dict):
            msg = f"[workers.defaults.{worker_id}] must be a table"
            raise ValueError(msg)
        base = worker_defaults.get(worker_id, WorkerConfiguration())
        worker_defaults[worker_id] = WorkerConfiguration(
            enabled=bool(values.get("enabled", base.enabled)),
            max_retries=int(values.get("max_retries", base.max_retries)),
            concurrency=int(values.get("concurrency", base.concurrency)),
        )

    base_hk = HousekeepingConfig()
    cors = api.get("cors_origins")

    return Settings(
        db_path=str(database.get("path", "queue_ops.db")),
        storage_root=str(storage.get("root", "storage")),
        circuit_breaker=CircuitBreakerConfig(
            failure_threshold=int(breaker.get("failure_threshold", 3)),
            reset_timeout_seconds=float(breaker.get("reset_timeout_seconds", 30.0)),
        ),
        stats=StatsSettings(
            cache_ttl_seconds=float(stats.get("cache_ttl_seconds", 1.0)),
            recent_jobs_limit=int(stats.get("recent_jobs_limit", 20)),
            memory_warn_percent=float(stats.get("memory_warn_percent", 90.0)),
            disk_warn_percent=float(stats.get("disk_warn_percent", 90.0)),
            poll_interval_seconds=float(stats.get("poll_interval_seconds", 5.0)),
        ),
        workers=WorkerSettings(
            confirm_timeout_seconds=float(workers.get("confirm_timeout_seconds", 10.0)),
            confirm_poll_interval_seconds=float(
                workers.get("confirm_poll_interval_seconds", 0.5)
            ),
            heartbeat_stale_seconds=float(workers.get("heartbeat_stale_seconds", 60.0)),
            defaults=worker_defaults,
        ),
        housekeeping=HousekeepingConfig(
            dry_run=bool(housekeeping.get("dry_run", base_hk.dry_run)),
            max_files=int(housekeeping.get("max_files", base_hk.max_files)),
            grace_period_hours=int(
                housekeeping.get("grace_period_hours", base_hk.grace_period_hours)
            ),
            detection_types=frozenset(
                housekeeping.get(
                    "detection_types", [t.value for t in DEFAULT_DETECTION_TYPES]
                )
            ),
            log_details=bool(housekeeping.get("log_details", base_hk.log_details)),
            abandoned_upload_hours=int(
                housekeeping.get("abandoned_upload_hours", base_hk.abandoned_upload_hours)
            ),
            two_phase_deletion=bool(
                housekeeping.get("two_phase_deletion", base_hk.two_phase_deletion)
            ),
            directory_cleanup=bool(
                housekeeping.get("directory_cleanup", base_hk.directory_cleanup)
            ),
        ),
        api=ApiSettings(
            host=str(api.get("host", "127.0.0.1")),
            port=int(api.get("port", 8420)),
            cors_origins=(
                tuple(str(origin) for origin in cors)
                if isinstance(cors, list)
                else parse_cors_origins(cors if isinstance(cors, str) else None)
            ),
        ),
    )


def _apply_env_overrides(settings: Settings, environ: Any) -> Settings:
    if environ.get(DB_PATH_ENV_VAR):
        settings = replace(settings, db_path=environ[DB_PATH_ENV_VAR])
    if environ.get(STORAGE_ROOT_ENV_VAR):
        settings = replace(settings, storage_root=environ[STORAGE_ROOT_ENV_VAR])
    if CORS_ORIGINS_ENV_VAR in environ:
        origins = parse_cors_origins(environ[CORS_ORIGINS_ENV_VAR])
        settings = replace(settings, api=replace(settings.api, cors_origins=origins))
    return settings
