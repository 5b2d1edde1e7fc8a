"""
Route registration entry point for the FastAPI application.

Each concern lives in its own router module; this module only wires them
onto an app.
"""

from fastapi import FastAPI

from antsol_indexer.api.routes import events, health, ingest, packages, stats


def register_routes(app: FastAPI) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router)
    app.include_router(packages.router)
    app.include_router(stats.router)
    app.include_router(events.router)
    app.include_router(ingest.router)
