"""
FastAPI application for the indexer query surface.

This module builds the FastAPI application that serves indexed registry
state and the manual ingestion endpoint. It sets up:
- CORS middleware (origins from ``api.cors_origins``)
- Gzip compression for responses larger than ``GZIP_MINIMUM_SIZE`` bytes
- Exception handlers that turn storage failures into HTTP 500 envelopes
- All API route endpoints

The API process shares nothing with the scan loop process except the SQLite
file.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from antsol_indexer import __version__
from antsol_indexer.api.routes.register import register_routes
from antsol_indexer.api.routes.utils import error_response
from antsol_indexer.config import config
from antsol_indexer.db.errors import DatabaseError
from antsol_indexer.indexer.ingestion import IngestError

logger = logging.getLogger(__name__)

GZIP_MINIMUM_SIZE = 500


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def _database_error_handler(request: Request, exc: DatabaseError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return error_response(500, "Internal storage error")


async def _ingest_error_handler(request: Request, exc: IngestError):
    logger.error("Ingestion failure on %s: %s", request.url.path, exc)
    return error_response(500, "Failed to ingest event")


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request")
    return error_response(422, f"{location}: {message}" if location else message)


# ============================================================================
# APPLICATION FACTORY
# ============================================================================


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routes."""
    app = FastAPI(title="AntSol Indexer", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)

    app.add_exception_handler(DatabaseError, _database_error_handler)
    app.add_exception_handler(IngestError, _ingest_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    register_routes(app)
    return app


def start_server(host: str | None = None, port: int | None = None) -> None:
    """
    Run the API with uvicorn, blocking until shutdown.

    Args:
        host: Bind address (default ``server.host``).
        port: Bind port (default ``server.port``).
    """
    import uvicorn

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    logger.info("Starting API on %s:%d", bind_host, bind_port)
    uvicorn.run(create_app(), host=bind_host, port=bind_port, log_config=None)
