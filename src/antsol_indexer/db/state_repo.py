"""Scan cursor, indexer diagnostics and failed-slot bookkeeping.

``indexer_state`` is a singleton row (``id = 1``) created by
``schema.init_database``. ``failed_slots`` holds positions whose processing
raised so the scan loop can retry them without holding the cursor back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from antsol_indexer.db.connection import connection_scope
from antsol_indexer.db.errors import raise_read_error, raise_write_error

STATUS_IDLE = "idle"
STATUS_RUNNING = "running"
STATUS_STOPPED = "stopped"


def get_indexer_state() -> dict[str, Any] | None:
    """Return the singleton state row, or None before ``init_database``."""
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT last_processed_slot, last_processed_block_time, status,
                       error_count, last_error, updated_at
                FROM indexer_state
                WHERE id = 1
                """)
            row = cursor.fetchone()
            if row is None:
                return None
            cursor.execute("SELECT COUNT(*) FROM failed_slots")
            failed_count = int(cursor.fetchone()[0])
            return {
                "last_processed_slot": row[0],
                "last_processed_block_time": row[1],
                "status": row[2],
                "error_count": row[3],
                "last_error": row[4],
                "updated_at": row[5],
                "failed_slots": failed_count,
            }
    except Exception as exc:
        raise_read_error("state.get_indexer_state", exc)


def get_last_processed_slot() -> int:
    """Return the persisted cursor; 0 means nothing has been processed."""
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT last_processed_slot FROM indexer_state WHERE id = 1")
            row = cursor.fetchone()
            return int(row[0]) if row else 0
    except Exception as exc:
        raise_read_error("state.get_last_processed_slot", exc)


def update_last_processed_slot(slot: int, block_time: datetime | None = None) -> None:
    """Persist the cursor. The stored value never moves backwards."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE indexer_state
                SET last_processed_slot = MAX(last_processed_slot, ?),
                    last_processed_block_time = COALESCE(?, last_processed_block_time),
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = 1
                """,
                (slot, block_time.isoformat() if block_time else None),
            )
    except Exception as exc:
        raise_write_error("state.update_last_processed_slot", exc, details=f"slot={slot}")


def record_indexer_error(message: str) -> None:
    """Bump ``error_count`` and remember the latest error message."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE indexer_state
                SET error_count = error_count + 1,
                    last_error = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = 1
                """,
                (message,),
            )
    except Exception as exc:
        raise_write_error("state.record_indexer_error", exc)


def set_status(status: str) -> None:
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE indexer_state
                SET status = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = 1
                """,
                (status,),
            )
    except Exception as exc:
        raise_write_error("state.set_status", exc, details=f"status={status!r}")


def add_failed_slot(slot: int, error: str) -> None:
    """Record a failed slot, bumping ``attempts`` if it is already known."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO failed_slots (slot, attempts, last_error)
                VALUES (?, 1, ?)
                ON CONFLICT(slot) DO UPDATE SET
                    attempts = attempts + 1,
                    last_error = excluded.last_error,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (slot, error),
            )
    except Exception as exc:
        raise_write_error("state.add_failed_slot", exc, details=f"slot={slot}")


def list_retryable_slots(max_attempts: int) -> list[int]:
    """Return failed slots below the attempt ceiling, oldest position first."""
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT slot FROM failed_slots WHERE attempts < ? ORDER BY slot",
                (max_attempts,),
            )
            return [int(row[0]) for row in cursor.fetchall()]
    except Exception as exc:
        raise_read_error("state.list_retryable_slots", exc)


def clear_failed_slot(slot: int) -> None:
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM failed_slots WHERE slot = ?", (slot,))
    except Exception as exc:
        raise_write_error("state.clear_failed_slot", exc, details=f"slot={slot}")
