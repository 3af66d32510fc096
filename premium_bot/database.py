"""Lightweight database helpers built around :mod:`sqlite3`.

Every unit of work opens its own connection so that the polling loop, the
sweeper thread and the admin API can run side by side. Cross-request
atomicity comes from the schema (a partial unique index) and from
conditional ``UPDATE ... WHERE status = ?`` statements, not from locks held
in this process.
"""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

IN_PROGRESS_SQL = "('awaiting_subscriber_id', 'awaiting_proof', 'awaiting_amount', 'pending_review')"

CREATE_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        buyer_channel_id TEXT NOT NULL,
        buyer_display_name TEXT NOT NULL DEFAULT '',
        buyer_handle TEXT NOT NULL DEFAULT '',
        package_id TEXT NOT NULL,
        package_name TEXT NOT NULL,
        package_price_label TEXT NOT NULL,
        package_price_amount INTEGER NOT NULL,
        package_validity_days INTEGER NOT NULL,
        subscriber_key TEXT NOT NULL DEFAULT '',
        claimed_amount INTEGER,
        amount_accepted INTEGER NOT NULL DEFAULT 0,
        payment_proof_ref TEXT,
        status TEXT NOT NULL,
        decided_by TEXT,
        decided_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    f"""
    CREATE UNIQUE INDEX IF NOT EXISTS orders_one_in_progress_per_buyer
        ON orders (buyer_channel_id) WHERE status IN {IN_PROGRESS_SQL}
    """,
    """
    CREATE INDEX IF NOT EXISTS orders_status_created
        ON orders (status, created_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS subscribers (
        key TEXT PRIMARY KEY,
        display_name TEXT NOT NULL DEFAULT '',
        is_premium INTEGER NOT NULL DEFAULT 0,
        premium_until TEXT,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS subscriber_notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        subscriber_key TEXT NOT NULL REFERENCES subscribers(key) ON DELETE CASCADE,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        is_read INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS security_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        actor TEXT,
        event_type TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
]


def connect(db_path: str) -> sqlite3.Connection:
    """Open a SQLite connection with sensible defaults.

    The connection runs in autocommit mode; :func:`transaction` issues the
    ``BEGIN`` statements explicitly.
    """

    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize(conn: sqlite3.Connection) -> None:
    """Create tables if they do not exist."""

    for statement in CREATE_STATEMENTS:
        conn.execute(statement)


@contextmanager
def transaction(conn: sqlite3.Connection, *, immediate: bool = False) -> Iterator[sqlite3.Cursor]:
    """Context manager that wraps a transaction.

    ``immediate`` takes the write lock up front, which serializes competing
    writers that read before they write.
    """

    cursor = conn.cursor()
    cursor.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    try:
        yield cursor
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()
    finally:
        cursor.close()


class Database:
    """Connection factory bound to one database file."""

    def __init__(self, db_path: str) -> None:
        self.path = db_path
        conn = connect(db_path)
        try:
            initialize(conn)
        finally:
            conn.close()

    @contextmanager
    def transaction(self, *, immediate: bool = False) -> Iterator[sqlite3.Cursor]:
        conn = connect(self.path)
        try:
            with transaction(conn, immediate=immediate) as cursor:
                yield cursor
        finally:
            conn.close()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime as ISO-8601 in UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp. Naive values are treated as UTC."""

    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def fetch_one(cursor: sqlite3.Cursor) -> Optional[Dict[str, Any]]:
    """Convert a single row into a dictionary."""

    row = cursor.fetchone()
    return dict(row) if row else None


def fetch_all(cursor: sqlite3.Cursor) -> List[Dict[str, Any]]:
    """Convert rows into a list of dictionaries."""

    rows = cursor.fetchall()
    return [dict(row) for row in rows]
