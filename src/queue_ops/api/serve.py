"""Server runner module for the control plane API.

Provides a run_server utility that configures and starts uvicorn
with appropriate defaults.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import uvicorn

from ..config import CONFIG_ENV_VAR, DB_PATH_ENV_VAR


@contextmanager
def _temporary_env_var(name: str, value: str | None) -> Iterator[None]:
    """Temporarily set an environment variable, restoring original state on exit."""
    if value is None:
        yield
        return
    old_value = os.environ.get(name)
    was_set = name in os.environ
    os.environ[name] = value
    try:
        yield
    finally:
        if was_set and old_value is not None:
            os.environ[name] = old_value
        elif not was_set:
            os.environ.pop(name, None)


def run_server(
    host: str = "127.0.0.1",
    port: int = 8420,
    log_level: str = "info",
    reload: bool = False,
    db_path: str | None = None,
    config_path: str | None = None,
    **kwargs: Any,
) -> None:
    """Run the control plane API server.

    The app is built by uvicorn through the ``create_app`` factory, so
    database and config paths are handed over via environment variables.

    Args:
        host: The host to bind to. Defaults to '127.0.0.1'.
        port: The port to bind to. Defaults to 8420.
        log_level: The log level for uvicorn. Defaults to 'info'.
        reload: Whether to enable auto-reload. Defaults to False.
        db_path: Optional database path (sets QUEUE_OPS_DB_PATH).
        config_path: Optional config file (sets QUEUE_OPS_CONFIG).
        **kwargs: Additional keyword arguments to forward to uvicorn.run.
    """
    with _temporary_env_var(DB_PATH_ENV_VAR, db_path), _temporary_env_var(
        CONFIG_ENV_VAR, config_path
    ):
        uvicorn.run(
            "queue_ops.api.app:create_app",
            factory=True,
            host=host,
            port=port,
            log_level=log_level,
            reload=reload,
            **kwargs,
        )
