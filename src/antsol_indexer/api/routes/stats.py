"""Registry-wide counters."""

from fastapi import APIRouter

from antsol_indexer.api.models import ApiResponse, StatsInfo
from antsol_indexer.db import packages_repo

router = APIRouter(prefix="/api")


@router.get("/stats", response_model=ApiResponse[StatsInfo])
def stats():
    return ApiResponse(data=StatsInfo(**packages_repo.get_stats()))
