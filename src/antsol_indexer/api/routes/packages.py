"""Package search, listing and detail endpoints."""

from fastapi import APIRouter

from antsol_indexer.api.models import ApiResponse, PackageDetail, PackageInfo
from antsol_indexer.api.routes.utils import clamp_limit, clamp_offset, error_response
from antsol_indexer.db import packages_repo

router = APIRouter(prefix="/api")


@router.get("/search", response_model=ApiResponse[list[PackageInfo]])
def search_packages(q: str = "", limit: int | None = None, offset: int | None = None):
    """
    Substring search over package name and description.

    Results are ordered by total downloads, then name.
    """
    rows = packages_repo.search_packages(
        q.strip(), limit=clamp_limit(limit), offset=clamp_offset(offset)
    )
    return ApiResponse(data=[PackageInfo(**row) for row in rows])


@router.get("/packages", response_model=ApiResponse[list[PackageInfo]])
def list_packages(limit: int | None = None, offset: int | None = None):
    """List packages, newest first."""
    rows = packages_repo.list_packages(limit=clamp_limit(limit), offset=clamp_offset(offset))
    return ApiResponse(data=[PackageInfo(**row) for row in rows])


@router.get("/packages/{name:path}", response_model=ApiResponse[PackageDetail])
def get_package(name: str):
    """Package detail with all versions, newest first."""
    package = packages_repo.get_package_with_versions(name)
    if package is None:
        return error_response(404, f"Package '{name}' not found")
    return ApiResponse(data=PackageDetail(**package))
