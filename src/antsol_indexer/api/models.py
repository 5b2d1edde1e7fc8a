"""
Pydantic models for API requests and responses.

Every endpoint answers with the same envelope, :class:`ApiResponse`:

    {"success": true,  "data": <payload>, "error": null}
    {"success": false, "data": null,      "error": "<message>"}

Timestamps are passed through as stored (SQLite ``CURRENT_TIMESTAMP`` text
or ISO-8601 for ledger block times).
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

# ============================================================================
# ENVELOPE
# ============================================================================


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T | None = None
    error: str | None = None


# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class IngestRequest(BaseModel):
    """
    Manual ingestion of a single program log line.

    Attributes:
        log: The raw log line, exactly as the ledger would report it.
        signature: Transaction signature used as the idempotency key
            (default ``manual_sig``).
        slot: Ledger position to attribute the event to (default 0).
        block_time: Block time in unix seconds, if known.
    """

    log: str = Field(min_length=1)
    signature: str | None = None
    slot: int | None = Field(default=None, ge=0)
    block_time: int | None = None


# ============================================================================
# RESPONSE PAYLOADS (Server → Client)
# ============================================================================


class VersionInfo(BaseModel):
    id: int
    package_id: int
    version: str
    content_address: str
    downloads: int
    published_at: str


class PackageInfo(BaseModel):
    id: int
    name: str
    author: str
    description: str | None = None
    repository: str | None = None
    homepage: str | None = None
    total_downloads: int
    created_at: str
    updated_at: str


class PackageDetail(PackageInfo):
    versions: list[VersionInfo] = Field(default_factory=list)


class EventInfo(BaseModel):
    id: int
    event_type: str
    package_name: str
    version: str | None = None
    transaction_signature: str
    slot: int
    block_time: str | None = None
    raw_data: str | None = None
    created_at: str


class StatsInfo(BaseModel):
    total_packages: int
    total_versions: int
    total_downloads: int
    total_events: int


class ParsedEvent(BaseModel):
    """A recognised event as returned by manual ingestion (not yet a stored row)."""

    event_type: str
    package_name: str
    version: str | None = None
    transaction_signature: str
    slot: int
    block_time: str | None = None


class IngestResult(BaseModel):
    """
    Manual ingestion outcome.

    Attributes:
        event: The recognised event, or None when no marker matched.
        content_address: Content address found in the log, if any.
        message: Human-readable outcome.
        status: ``applied``, ``duplicate``, ``skipped``, ``audited`` or
            ``unrecognized``.
    """

    event: ParsedEvent | None = None
    content_address: str | None = None
    message: str
    status: str


class IndexerStatus(BaseModel):
    last_processed_slot: int
    last_processed_block_time: str | None = None
    status: str
    error_count: int
    last_error: str | None = None
    updated_at: str | None = None
    failed_slots: int = 0


class HealthInfo(BaseModel):
    status: str
    version: str
    indexer: IndexerStatus | None = None
