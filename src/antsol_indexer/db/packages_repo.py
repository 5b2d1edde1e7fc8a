"""Package and version repository operations.

Writes that touch more than one table run inside a single explicit SQLite
transaction: a package upsert together with its version upsert, and the
paired download counter increment on ``versions`` and ``packages``.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from antsol_indexer.db.connection import connection_scope
from antsol_indexer.db.errors import raise_read_error, raise_write_error

PLACEHOLDER_AUTHOR = "unknown"

_PACKAGE_COLUMNS = """
    id, name, author, description, repository, homepage,
    total_downloads, created_at, updated_at
"""


def _package_row_to_dict(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": row[0],
        "name": row[1],
        "author": row[2],
        "description": row[3],
        "repository": row[4],
        "homepage": row[5],
        "total_downloads": row[6],
        "created_at": row[7],
        "updated_at": row[8],
    }


def _version_row_to_dict(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": row[0],
        "package_id": row[1],
        "version": row[2],
        "content_address": row[3],
        "downloads": row[4],
        "published_at": row[5],
    }


def _upsert_package_row(cursor: sqlite3.Cursor, name: str) -> int:
    """Create the package with a placeholder author, or touch ``updated_at``.

    An existing author is never overwritten.
    """
    cursor.execute(
        """
        INSERT INTO packages (name, author)
        VALUES (?, ?)
        ON CONFLICT(name) DO UPDATE SET updated_at = CURRENT_TIMESTAMP
        """,
        (name, PLACEHOLDER_AUTHOR),
    )
    cursor.execute("SELECT id FROM packages WHERE name = ?", (name,))
    row = cursor.fetchone()
    if row is None:
        raise ValueError(f"Package '{name}' missing after upsert.")
    return int(row[0])


def _resolve_version_ids(
    cursor: sqlite3.Cursor, package_name: str, version: str
) -> tuple[int, int] | None:
    cursor.execute(
        """
        SELECT p.id, v.id
        FROM packages p
        JOIN versions v ON v.package_id = p.id
        WHERE p.name = ? AND v.version = ?
        LIMIT 1
        """,
        (package_name, version),
    )
    row = cursor.fetchone()
    if row is None:
        return None
    return int(row[0]), int(row[1])


def upsert_package_version(
    name: str,
    *,
    version: str | None = None,
    content_address: str | None = None,
) -> int:
    """Upsert a package and, when both are given, its version atomically.

    A version that already exists has its content address replaced.

    Returns:
        The package id.
    """
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                package_id = _upsert_package_row(cursor, name)
                if version and content_address:
                    cursor.execute(
                        """
                        INSERT INTO versions (package_id, version, content_address)
                        VALUES (?, ?, ?)
                        ON CONFLICT(package_id, version)
                        DO UPDATE SET content_address = excluded.content_address
                        """,
                        (package_id, version, content_address),
                    )
                conn.commit()
                return package_id
            except Exception:
                conn.rollback()
                raise
    except Exception as exc:
        raise_write_error(
            "packages.upsert_package_version",
            exc,
            details=f"name={name!r} version={version!r}",
        )


def increment_downloads(package_name: str, version: str) -> bool:
    """Increment version and package download counters together.

    Returns:
        False when the package or the version is unknown; nothing is written.
    """
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                ids = _resolve_version_ids(cursor, package_name, version)
                if ids is None:
                    conn.rollback()
                    return False
                package_id, version_id = ids
                cursor.execute(
                    "UPDATE versions SET downloads = downloads + 1 WHERE id = ?",
                    (version_id,),
                )
                cursor.execute(
                    """
                    UPDATE packages
                    SET total_downloads = total_downloads + 1,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ?
                    """,
                    (package_id,),
                )
                conn.commit()
                return True
            except Exception:
                conn.rollback()
                raise
    except Exception as exc:
        raise_write_error(
            "packages.increment_downloads",
            exc,
            details=f"package={package_name!r} version={version!r}",
        )


def get_package_with_versions(name: str) -> dict[str, Any] | None:
    """Return one package with its versions, newest first, or None."""
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_PACKAGE_COLUMNS} FROM packages WHERE name = ?",
                (name,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            package = _package_row_to_dict(row)
            cursor.execute(
                """
                SELECT id, package_id, version, content_address, downloads, published_at
                FROM versions
                WHERE package_id = ?
                ORDER BY published_at DESC, id DESC
                """,
                (package["id"],),
            )
            package["versions"] = [_version_row_to_dict(r) for r in cursor.fetchall()]
            return package
    except Exception as exc:
        raise_read_error("packages.get_package_with_versions", exc, details=f"name={name!r}")


def search_packages(query: str, *, limit: int, offset: int = 0) -> list[dict[str, Any]]:
    """Substring search over name and description, most downloaded first."""
    pattern = f"%{query}%"
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_PACKAGE_COLUMNS}
                FROM packages
                WHERE name LIKE ? OR description LIKE ?
                ORDER BY total_downloads DESC, name ASC
                LIMIT ? OFFSET ?
                """,
                (pattern, pattern, limit, offset),
            )
            return [_package_row_to_dict(row) for row in cursor.fetchall()]
    except Exception as exc:
        raise_read_error("packages.search_packages", exc, details=f"query={query!r}")


def list_packages(*, limit: int, offset: int = 0) -> list[dict[str, Any]]:
    """List packages, most recently created first."""
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_PACKAGE_COLUMNS}
                FROM packages
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            )
            return [_package_row_to_dict(row) for row in cursor.fetchall()]
    except Exception as exc:
        raise_read_error("packages.list_packages", exc)


def get_stats() -> dict[str, int]:
    """Return aggregate registry counters."""
    try:
        with connection_scope() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT
                    (SELECT COUNT(*) FROM packages),
                    (SELECT COUNT(*) FROM versions),
                    (SELECT COALESCE(SUM(total_downloads), 0) FROM packages),
                    (SELECT COUNT(*) FROM events)
                """)
            row = cursor.fetchone()
            return {
                "total_packages": int(row[0]),
                "total_versions": int(row[1]),
                "total_downloads": int(row[2]),
                "total_events": int(row[3]),
            }
    except Exception as exc:
        raise_read_error("packages.get_stats", exc)
