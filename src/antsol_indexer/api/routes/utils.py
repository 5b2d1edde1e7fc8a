"""Shared helpers for API route modules."""

from typing import Any

from fastapi.responses import JSONResponse

from antsol_indexer.config import config


def clamp_limit(limit: int | None) -> int:
    """
    Resolve a page size from a query parameter.

    Missing values fall back to ``api.default_limit``; everything else is
    clamped to ``[1, api.max_limit]``.
    """
    if limit is None:
        limit = config.api.default_limit
    return max(1, min(limit, config.api.max_limit))


def clamp_offset(offset: int | None) -> int:
    """Negative or missing offsets start at the first row."""
    return max(0, offset or 0)


def error_response(status_code: int, message: str) -> JSONResponse:
    """Build an error envelope with the given HTTP status."""
    body: dict[str, Any] = {"success": False, "data": None, "error": message}
    return JSONResponse(status_code=status_code, content=body)
