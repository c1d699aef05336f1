"""
OrderLink DB - table definitions.

Only the tables the chat/location core reads or writes. ``users``,
``admins`` and ``orders`` are owned by the wider platform and are
created here for development and tests.

Timestamps are stored as ISO-8601 UTC text on every backend.
"""

from __future__ import annotations

import logging
from typing import List

from orderlink.faults.domains import SchemaFault
from .engine import Database

logger = logging.getLogger("orderlink.db.schema")


def _serial(dialect: str) -> str:
    if dialect == "postgresql":
        return "BIGSERIAL PRIMARY KEY"
    return "INTEGER PRIMARY KEY AUTOINCREMENT"


def table_statements(dialect: str) -> List[tuple[str, str]]:
    """(table, CREATE statement) pairs in dependency order."""
    return [
        ("users", """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                first_name TEXT NOT NULL DEFAULT '',
                last_name TEXT NOT NULL DEFAULT '',
                display_image TEXT,
                status TEXT NOT NULL DEFAULT 'customer',
                blocked BOOLEAN NOT NULL DEFAULT FALSE,
                deactivated BOOLEAN NOT NULL DEFAULT FALSE
            )
        """),
        ("admins", """
            CREATE TABLE IF NOT EXISTS admins (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL DEFAULT '',
                admin_type TEXT NOT NULL,
                supermarket_id TEXT
            )
        """),
        ("orders", """
            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                customer_id TEXT NOT NULL REFERENCES users(id),
                agent_id TEXT REFERENCES users(id)
            )
        """),
        ("chat_messages", f"""
            CREATE TABLE IF NOT EXISTS chat_messages (
                seq {_serial(dialect)},
                id TEXT NOT NULL UNIQUE,
                order_id TEXT NOT NULL REFERENCES orders(id),
                sender_id TEXT NOT NULL,
                sender_type TEXT NOT NULL,
                body TEXT NOT NULL DEFAULT '',
                image_url TEXT,
                is_read BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """),
        ("notifications", """
            CREATE TABLE IF NOT EXISTS notifications (
                id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                recipient_user_id TEXT NOT NULL,
                actor_user_id TEXT,
                resource TEXT NOT NULL,
                heading TEXT NOT NULL,
                body TEXT NOT NULL,
                is_read BOOLEAN NOT NULL DEFAULT FALSE,
                metadata TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            )
        """),
        ("agent_locations", f"""
            CREATE TABLE IF NOT EXISTS agent_locations (
                seq {_serial(dialect)},
                agent_id TEXT NOT NULL REFERENCES users(id),
                latitude DOUBLE PRECISION NOT NULL,
                longitude DOUBLE PRECISION NOT NULL,
                order_id TEXT,
                region_id TEXT,
                recorded_at BIGINT NOT NULL
            )
        """),
    ]


INDEXES = [
    "CREATE INDEX IF NOT EXISTS ix_chat_messages_order ON chat_messages (order_id, created_at)",
    "CREATE INDEX IF NOT EXISTS ix_notifications_recipient ON notifications (recipient_user_id, kind, resource)",
    "CREATE INDEX IF NOT EXISTS ix_agent_locations_agent ON agent_locations (agent_id, recorded_at)",
]


async def create_schema(db: Database) -> List[str]:
    """Create every table and index. Returns the table names."""
    await db.ensure_connected()
    created = []
    for table, ddl in table_statements(db.dialect):
        try:
            await db.execute(ddl)
        except Exception as exc:
            raise SchemaFault(table=table, reason=str(exc)) from exc
        created.append(table)
    for ddl in INDEXES:
        await db.execute(ddl)
    logger.info(f"Schema ready ({db.dialect}): {', '.join(created)}")
    return created
