"""Event log repository operations.

The ``events`` table is the audit trail of every recognised registry event.
``transaction_signature`` is unique, which makes recording idempotent.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from antsol_indexer.db.connection import connection_scope
from antsol_indexer.db.errors import raise_read_error, raise_write_error

_EVENT_COLUMNS = """
    id, event_type, package_name, version, transaction_signature,
    slot, block_time, raw_data, created_at
"""


def _event_row_to_dict(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": row[0],
        "event_type": row[1],
        "package_name": row[2],
        "version": row[3],
        "transaction_signature": row[4],
        "slot": row[5],
        "block_time": row[6],
        "raw_data": row[7],
        "created_at": row[8],
    }


def record_event(
    *,
    event_type: str,
    package_name: str,
    version: str | None,
    transaction_signature: str,
    slot: int,
    block_time: datetime | None,
    raw_data: str | None,
) -> bool:
    """Insert an event unless its signature is already recorded.

    Returns:
        True if a new row was written, False for a duplicate signature.
    """
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR IGNORE INTO events
                    (event_type, package_name, version, transaction_signature,
                     slot, block_time, raw_data)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event_type,
                    package_name,
                    version,
                    transaction_signature,
                    slot,
                    block_time.isoformat() if block_time else None,
                    raw_data,
                ),
            )
            return cursor.rowcount == 1
    except Exception as exc:
        raise_write_error(
            "events.record_event",
            exc,
            details=f"signature={transaction_signature!r}",
        )


def list_recent_events(*, limit: int) -> list[dict[str, Any]]:
    """Return the most recent events by ledger position."""
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_EVENT_COLUMNS}
                FROM events
                ORDER BY slot DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            )
            return [_event_row_to_dict(row) for row in cursor.fetchall()]
    except Exception as exc:
        raise_read_error("events.list_recent_events", exc)


def list_package_events(package_name: str, *, limit: int, offset: int = 0) -> list[dict[str, Any]]:
    """Return events for one package, newest first."""
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_EVENT_COLUMNS}
                FROM events
                WHERE package_name = ?
                ORDER BY slot DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (package_name, limit, offset),
            )
            return [_event_row_to_dict(row) for row in cursor.fetchall()]
    except Exception as exc:
        raise_read_error(
            "events.list_package_events",
            exc,
            details=f"package={package_name!r}",
        )
