"""Database connection management and schema initialization.

Provides the base ConnectionMixin with connection lifecycle, schema setup,
error translation and generic query helpers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..errors import BackendUnavailableError

logger = logging.getLogger(__name__)

# Schema ships inside the package next to this module
SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

DEFAULT_DB_PATH = Path.cwd() / "queue_ops.db"


def to_db_time(value: datetime | None) -> str | None:
    """Serialize an aware datetime for storage."""
    return value.isoformat() if value else None


def from_db_time(value: str | None) -> datetime | None:
    """Parse a stored timestamp."""
    return datetime.fromisoformat(value) if value else None


class ConnectionMixin:
    """Base mixin providing database connection management.

    Manages the aiosqlite connection lifecycle, schema initialization,
    and generic query/update helpers. Driver and filesystem errors are
    re-raised as ``BackendUnavailableError`` by ``_guard``.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. Use ":memory:" for testing.
                     Defaults to queue_ops.db in the current working directory.
        """
        if db_path is None:
            self.db_path: str | Path = DEFAULT_DB_PATH
        elif isinstance(db_path, str) and db_path != ":memory:":
            self.db_path = Path(db_path)
        else:
            self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False
        self._write_lock = asyncio.Lock()

    async def __aenter__(self) -> ConnectionMixin:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open database connection and initialize schema. No-op when connected."""
        if self._conn is not None:
            return
        db_path = str(self.db_path)
        if db_path != ":memory:":
            resolved_path = Path(db_path).resolve()
            logger.info("Database: %s (exists: %s)", resolved_path, resolved_path.exists())
        self._conn = await aiosqlite.connect(db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._initialize_schema()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    async def _ensure_connected(self) -> None:
        """Ensure database is connected."""
        if self._conn is None:
            await self.connect()

    async def _initialize_schema(self) -> None:
        """Initialize database schema from SQL file.

        Raises:
            RuntimeError: If the schema script fails.
        """
        if not self._conn:
            msg = "Database not connected"
            raise RuntimeError(msg)

        if self._initialized:
            return

        schema_sql = SCHEMA_PATH.read_text(encoding="utf-8")
        async with self._write_lock:
            try:
                await self._conn.executescript(schema_sql)
                await self._conn.commit()
                self._initialized = True
                logger.info("Database schema initialized")
            except aiosqlite.Error as e:
                msg = (
                    f"Schema initialization failed: {e}\n"
                    f"To fix: Delete {self.db_path} and run again."
                )
                raise RuntimeError(msg) from e

    @asynccontextmanager
    async def _guard(self, backend: str, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Yield the open connection, translating driver errors.

        Args:
            backend: Logical backend name used in the error ("queue", ...).
            operation: Operation name used in the error.

        Raises:
            BackendUnavailableError: On any aiosqlite or OS error.
        """
        try:
            await self._ensure_connected()
            if self._conn is None:
                raise BackendUnavailableError(backend, operation, "database not connected")
            yield self._conn
        except (aiosqlite.Error, OSError) as e:
            logger.error("%s backend %s failed: %s", backend, operation, e)
            raise BackendUnavailableError(backend, operation, str(e)) from e

    async def ping_database(self) -> None:
        """Run a trivial query to prove the database answers."""
        async with self._guard("database", "ping") as conn:
            async with conn.execute("SELECT 1") as cursor:
                await cursor.fetchone()

    # =========================================================================
    # Generic Query/Update Helpers (for testing)
    # =========================================================================

    async def execute_query(
        self,
        query: str,
        params: tuple[Any, ...] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a SELECT query and return results as list of dicts.

        Args:
            query: SQL SELECT query.
            params: Optional query parameters.

        Returns:
            List of result rows as dictionaries.
        """
        async with self._guard("database", "query") as conn:
            async with conn.execute(query, params or ()) as cursor:
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]

    async def execute_update(
        self,
        query: str,
        params: tuple[Any, ...] | None = None,
    ) -> int:
        """Execute an INSERT/UPDATE/DELETE query and return affected rows.

        Args:
            query: SQL INSERT/UPDATE/DELETE query.
            params: Optional query parameters.

        Returns:
            Number of rows affected.
        """
        async with self._guard("database", "update") as conn:
            async with self._write_lock:
                cursor = await conn.execute(query, params or ())
                await conn.commit()
                return cursor.rowcount
