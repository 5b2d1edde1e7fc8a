"""Schema creation for the SQLite backend.

The schema layer is isolated from ingestion and query code so schema changes
are reviewable without wading through repository logic. Every statement is
idempotent; ``init_database`` runs at every process start.
"""

from __future__ import annotations

import logging

from antsol_indexer.db.connection import connection_scope
from antsol_indexer.db.errors import raise_write_error

logger = logging.getLogger(__name__)

# Query-path indexes:
# 1. search and list order packages by downloads and by creation time.
# 2. package detail loads versions by package id.
# 3. event feeds filter by package name and order by slot.
HOT_PATH_INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_packages_total_downloads ON packages(total_downloads)",
    "CREATE INDEX IF NOT EXISTS idx_packages_created_at ON packages(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_versions_package_id ON versions(package_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_package_name ON events(package_name)",
    "CREATE INDEX IF NOT EXISTS idx_events_slot ON events(slot)",
    "CREATE INDEX IF NOT EXISTS idx_events_event_type ON events(event_type)",
)

TABLE_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS packages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        author TEXT NOT NULL DEFAULT 'unknown',
        description TEXT,
        repository TEXT,
        homepage TEXT,
        total_downloads INTEGER NOT NULL DEFAULT 0 CHECK (total_downloads >= 0),
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS versions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        package_id INTEGER NOT NULL REFERENCES packages(id),
        version TEXT NOT NULL,
        content_address TEXT NOT NULL,
        downloads INTEGER NOT NULL DEFAULT 0 CHECK (downloads >= 0),
        published_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (package_id, version)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_type TEXT NOT NULL,
        package_name TEXT NOT NULL,
        version TEXT,
        transaction_signature TEXT NOT NULL UNIQUE,
        slot INTEGER NOT NULL,
        block_time TIMESTAMP,
        raw_data TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS indexer_state (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        last_processed_slot INTEGER NOT NULL DEFAULT 0,
        last_processed_block_time TIMESTAMP,
        status TEXT NOT NULL DEFAULT 'idle',
        error_count INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS failed_slots (
        slot INTEGER PRIMARY KEY,
        attempts INTEGER NOT NULL DEFAULT 1,
        last_error TEXT,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
)


def init_database() -> None:
    """Create tables, indexes and the singleton cursor row if missing."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.cursor()
            for statement in TABLE_STATEMENTS:
                cursor.execute(statement)
            for statement in HOT_PATH_INDEX_STATEMENTS:
                cursor.execute(statement)
            cursor.execute("""
                INSERT OR IGNORE INTO indexer_state (id, last_processed_slot, status)
                VALUES (1, 0, 'idle')
                """)
    except Exception as exc:
        raise_write_error("schema.init_database", exc)
    logger.debug("Database schema ensured")
