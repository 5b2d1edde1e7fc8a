"""Event feed endpoints."""

from fastapi import APIRouter

from antsol_indexer.api.models import ApiResponse, EventInfo
from antsol_indexer.api.routes.utils import clamp_limit, clamp_offset
from antsol_indexer.db import events_repo

router = APIRouter(prefix="/api/events")


# Registered before the ``{package}`` route so "recent" is not taken as a name.
@router.get("/recent", response_model=ApiResponse[list[EventInfo]])
def recent_events(limit: int | None = None):
    rows = events_repo.list_recent_events(limit=clamp_limit(limit))
    return ApiResponse(data=[EventInfo(**row) for row in rows])


@router.get("/{package:path}", response_model=ApiResponse[list[EventInfo]])
def package_events(package: str, limit: int | None = None, offset: int | None = None):
    """Events recorded for one package, newest ledger position first."""
    rows = events_repo.list_package_events(
        package, limit=clamp_limit(limit), offset=clamp_offset(offset)
    )
    return ApiResponse(data=[EventInfo(**row) for row in rows])
