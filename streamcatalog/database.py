"""SQLite database: schema and connection helpers.

Usage
-----
Synchronous (startup, schema creation):
    conn = db_connect(db_path)
    try:
        conn.execute(...)
        conn.commit()
    finally:
        conn.close()

Async (key/value store hot path):
    async with aiosqlite.connect(db_path) as conn:
        await pragma_setup_async(conn)
        await conn.execute(...)
        await conn.commit()
"""
from __future__ import annotations

import logging
import os
import sqlite3

logger = logging.getLogger(__name__)

DB_NAME = "catalog.db"


def db_connect(db_path: str) -> sqlite3.Connection:
    """Return a synchronous :class:`sqlite3.Connection` tuned for performance.

    Callers close it in a ``try/finally`` block.
    """
    conn = sqlite3.connect(db_path, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA cache_size=-32768")   # 32 MB page cache
    return conn


async def pragma_setup_async(conn) -> None:
    """Apply the same PRAGMAs for async aiosqlite connections."""
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA synchronous=NORMAL")
    await conn.execute("PRAGMA cache_size=-32768")


# ---------------------------------------------------------------------------
# Schema - CREATE TABLE IF NOT EXISTS
# ---------------------------------------------------------------------------

_SCHEMA = """
-- One row per cache key. 'value' is the serialized payload (usually JSON).
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_kv_store_updated
    ON kv_store (updated_at);
"""


def init_db(db_path: str) -> None:
    """Create all tables and indexes. Safe to call on every startup (idempotent)."""
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = db_connect(db_path)
    try:
        conn.executescript(_SCHEMA)
        conn.commit()
        logger.info(f"Database initialised at {db_path}")
    finally:
        conn.close()
