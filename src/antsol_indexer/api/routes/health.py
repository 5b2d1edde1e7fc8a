"""Health, identity and indexer status endpoints.

``/`` reports the API name and version. ``/health`` is the liveness check and
includes a snapshot of the scan cursor; it still answers ``200`` when the
store cannot be read, reporting ``degraded`` instead of ``ok``.
"""

import logging

from fastapi import APIRouter

from antsol_indexer import __version__
from antsol_indexer.api.models import ApiResponse, HealthInfo, IndexerStatus
from antsol_indexer.api.routes.utils import error_response
from antsol_indexer.db import state_repo
from antsol_indexer.db.errors import DatabaseError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint showing API identity and current version."""
    return ApiResponse(data={"message": "AntSol Indexer API", "version": __version__})


@router.get("/health", response_model=ApiResponse[HealthInfo])
def health_check():
    """Health check endpoint."""
    try:
        state = state_repo.get_indexer_state()
    except DatabaseError as exc:
        logger.error("Health check could not read indexer state: %s", exc)
        return ApiResponse(data=HealthInfo(status="degraded", version=__version__))
    indexer = IndexerStatus(**state) if state else None
    return ApiResponse(data=HealthInfo(status="ok", version=__version__, indexer=indexer))


@router.get("/api/indexer/status", response_model=ApiResponse[IndexerStatus])
def indexer_status():
    """Cursor, status, error counters and number of failed slots."""
    state = state_repo.get_indexer_state()
    if state is None:
        return error_response(503, "Indexer state not initialised")
    return ApiResponse(data=IndexerStatus(**state))
