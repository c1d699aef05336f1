"""
OrderLink DB Backend - PostgreSQL adapter via asyncpg.

Connection pooling with one dedicated pool connection per open
transaction. The transaction connection is tracked in a context
variable, so statements issued by other tasks keep using the pool.

Requires asyncpg:
    pip install orderlink[postgres]
"""

from __future__ import annotations

import contextvars
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import DatabaseAdapter, AdapterCapabilities

logger = logging.getLogger("orderlink.db.backends.postgres")

__all__ = ["PostgresAdapter"]

try:
    import asyncpg
except ImportError:
    asyncpg = None  # type: ignore


class PostgresAdapter(DatabaseAdapter):
    """
    PostgreSQL adapter using asyncpg with connection pooling.

    ``?`` placeholders are rewritten to ``$N`` (string-literal safe).
    """

    capabilities = AdapterCapabilities(
        param_style="numeric",
        single_connection=False,
        name="postgresql",
    )

    def __init__(self):
        self._pool: Any = None
        self._connected = False
        # (connection, transaction) owned by the current task's transaction
        self._txn: contextvars.ContextVar[Optional[Tuple[Any, Any]]] = contextvars.ContextVar(
            f"orderlink_pg_txn_{id(self)}", default=None
        )

    async def connect(self, url: str, **options) -> None:
        if self._connected:
            return

        if asyncpg is None:
            raise ImportError(
                "asyncpg is required for PostgreSQL support.\n"
                "Install: pip install asyncpg"
            )

        min_size = options.pop("pool_min_size", 1)
        max_size = options.pop("pool_size", 10)
        self._pool = await asyncpg.create_pool(
            url, min_size=min_size, max_size=max_size, **options
        )
        self._connected = True
        logger.info(f"PostgreSQL connected via asyncpg: {_mask_url(url)}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        if self._pool:
            await self._pool.close()
            self._pool = None
        self._connected = False
        logger.info("PostgreSQL disconnected")

    def adapt_sql(self, sql: str) -> str:
        """Convert ``?`` placeholders to ``$1, $2, ...`` outside string literals."""
        result: list[str] = []
        param_idx = 0
        in_string = False
        i = 0
        while i < len(sql):
            ch = sql[i]
            if ch == "'":
                if in_string and i + 1 < len(sql) and sql[i + 1] == "'":
                    result.append("''")
                    i += 2
                    continue
                in_string = not in_string
                result.append(ch)
            elif ch == "?" and not in_string:
                param_idx += 1
                result.append(f"${param_idx}")
            else:
                result.append(ch)
            i += 1
        return "".join(result)

    def _require_connection(self):
        if not self._connected:
            raise RuntimeError("Not connected to PostgreSQL")

    async def _run(self, method: str, sql: str, *args) -> Any:
        self._require_connection()
        adapted_sql = self.adapt_sql(sql)
        txn = self._txn.get()
        if txn is not None:
            return await getattr(txn[0], method)(adapted_sql, *args)
        async with self._pool.acquire() as conn:
            return await getattr(conn, method)(adapted_sql, *args)

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        status = await self._run("execute", sql, *(params or []))
        # asyncpg returns a status tag such as "UPDATE 3"
        try:
            return int(str(status).rsplit(" ", 1)[-1])
        except ValueError:
            return 0

    async def execute_many(self, sql: str, params_list: Sequence[Sequence[Any]]) -> None:
        await self._run("executemany", sql, params_list)

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        rows = await self._run("fetch", sql, *(params or []))
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        row = await self._run("fetchrow", sql, *(params or []))
        if row is None:
            return None
        return dict(row)

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        """Acquire a dedicated connection and start a transaction."""
        self._require_connection()
        if self._txn.get() is not None:
            return
        conn = await self._pool.acquire()
        transaction = conn.transaction()
        await transaction.start()
        self._txn.set((conn, transaction))

    async def commit(self) -> None:
        await self._finish("commit")

    async def rollback(self) -> None:
        await self._finish("rollback")

    async def _finish(self, action: str) -> None:
        txn = self._txn.get()
        if txn is None:
            return
        conn, transaction = txn
        try:
            await getattr(transaction, action)()
        finally:
            self._txn.set(None)
            await self._pool.release(conn)

    async def table_exists(self, table_name: str) -> bool:
        row = await self.fetch_one(
            "SELECT 1 AS found FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = ?",
            [table_name],
        )
        return row is not None

    @property
    def is_connected(self) -> bool:
        return self._connected


def _mask_url(url: str) -> str:
    """Mask password in URL for logging."""
    if "@" in url:
        pre, post = url.split("@", 1)
        if pre.count(":") >= 2:
            scheme_user = pre.rsplit(":", 1)[0]
            return f"{scheme_user}:***@{post}"
    return url
