"""
OrderLink DB Backend - SQLite adapter via aiosqlite.

Default backend for development and tests. All statements share a
single connection, so the engine serialises transactions against
other statements.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from .base import DatabaseAdapter, AdapterCapabilities

try:
    import aiosqlite
except ImportError:
    aiosqlite = None  # type: ignore[assignment]

logger = logging.getLogger("orderlink.db.backends.sqlite")

__all__ = ["SQLiteAdapter"]


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using aiosqlite.

    - WAL journal mode for file databases
    - Foreign key enforcement
    - Autocommit outside explicit transactions
    """

    capabilities = AdapterCapabilities(
        param_style="qmark",
        single_connection=True,
        name="sqlite",
    )

    def __init__(self):
        self._connection: Any = None
        self._connected = False
        self._lock = asyncio.Lock()
        self._in_transaction = False

    async def connect(self, url: str, **options) -> None:
        if self._connected:
            return
        if aiosqlite is None:
            raise ImportError(
                "aiosqlite is required for SQLite backend. "
                "Install: pip install aiosqlite"
            )
        async with self._lock:
            if self._connected:
                return
            db_path = self._parse_url(url)
            self._connection = await aiosqlite.connect(db_path, isolation_level=None)
            if db_path != ":memory:":
                await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.row_factory = aiosqlite.Row
            self._connected = True
            logger.info(f"SQLite connected: {db_path}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
            self._connected = False
            logger.info("SQLite disconnected")

    def _require_connection(self):
        if not self._connected:
            raise RuntimeError("Not connected")

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        self._require_connection()
        cursor = await self._connection.execute(sql, params or [])
        rowcount = cursor.rowcount
        await cursor.close()
        return rowcount

    async def execute_many(self, sql: str, params_list: Sequence[Sequence[Any]]) -> None:
        self._require_connection()
        await self._connection.executemany(sql, params_list)

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        self._require_connection()
        async with self._connection.execute(sql, params or []) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        self._require_connection()
        async with self._connection.execute(sql, params or []) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        await self._connection.execute("BEGIN")
        self._in_transaction = True

    async def commit(self) -> None:
        await self._connection.execute("COMMIT")
        self._in_transaction = False

    async def rollback(self) -> None:
        await self._connection.execute("ROLLBACK")
        self._in_transaction = False

    # ── Introspection ────────────────────────────────────────────────

    async def table_exists(self, table_name: str) -> bool:
        row = await self.fetch_one(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            [table_name],
        )
        return row is not None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @staticmethod
    def _parse_url(url: str) -> str:
        """Extract file path from sqlite URL."""
        for prefix in ("sqlite:///", "sqlite://"):
            if url.startswith(prefix):
                path = url[len(prefix):]
                return path or ":memory:"
        return url.replace("sqlite:", "").lstrip("/") or ":memory:"
