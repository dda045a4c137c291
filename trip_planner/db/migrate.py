"""Database migration utilities.

Handles schema evolution by applying idempotent migrations keyed by an integer
`schema_version` stored in the metadata table. Fresh databases are created at
the latest DDL by ``init_db`` and only get their version stamped; older files
are upgraded in place while preserving data.
"""

from __future__ import annotations
from pathlib import Path
import logging
import sqlite3
from typing import Optional

from . import schema as schema_def
from .schema import init_db

CURRENT_SCHEMA_VERSION = 2
SCHEMA_VERSION_KEY = "schema_version"

logger = logging.getLogger("trip_planner.db")


def _get_schema_version(conn: sqlite3.Connection) -> Optional[int]:
    try:
        cur = conn.cursor()
        cur.execute("SELECT value FROM metadata WHERE key=?", (SCHEMA_VERSION_KEY,))
        row = cur.fetchone()
        if row:
            return int(row[0])
    except sqlite3.OperationalError:
        # metadata table may not exist yet (first run before init_db)
        return None
    return None


def get_schema_version(db_path: Path) -> Optional[int]:
    conn = sqlite3.connect(db_path)
    try:
        return _get_schema_version(conn)
    finally:
        conn.close()


def apply_migrations(db_path: Path) -> int:
    """Apply required migrations and return resulting schema version."""
    init_db(db_path)
    conn = sqlite3.connect(db_path)
    try:
        version = _get_schema_version(conn) or 1
        if version < 2:
            _migrate_to_v2(conn)
            version = 2
        _set_schema_version(conn, version)
        conn.commit()
        logger.debug("database at schema version %s", version)
        return version
    finally:
        conn.close()


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO metadata (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
        f"updated_at=({schema_def.BASIC_UTC_NOW})",
        (SCHEMA_VERSION_KEY, str(version)),
    )


def _migrate_to_v2(conn: sqlite3.Connection) -> None:
    """Upgrade schema to version 2 (settlement timestamps, editable messages)."""
    cur = conn.cursor()
    try:
        if not _column_exists(cur, "expense_shares", "settled_at"):
            cur.execute("ALTER TABLE expense_shares ADD COLUMN settled_at TEXT")
        if not _column_exists(cur, "messages", "updated_at"):
            cur.execute("ALTER TABLE messages ADD COLUMN updated_at TEXT")
            cur.execute("UPDATE messages SET updated_at = created_at WHERE updated_at IS NULL")
        # Payers never owe themselves; v1 stored their share as unsettled.
        cur.execute(
            """
            UPDATE expense_shares SET settled = 1
            WHERE settled = 0
              AND user_id = (SELECT paid_by FROM expenses WHERE expenses.id = expense_shares.expense_id)
            """
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _column_exists(cur: sqlite3.Cursor, table: str, column: str) -> bool:
    cur.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cur.fetchall())
