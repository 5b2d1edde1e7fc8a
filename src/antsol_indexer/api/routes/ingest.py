"""Manual ingestion endpoint.

``POST /api/ingest`` runs a single log line through the same parser and the
same :func:`~antsol_indexer.indexer.ingestion.record_and_ingest` path the scan
loop uses. It is meant for operators replaying a known log or backfilling an
event the scan loop missed; it does one bounded unit of work per request.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter

from antsol_indexer.api.models import ApiResponse, IngestRequest, IngestResult, ParsedEvent
from antsol_indexer.indexer.ingestion import STATUS_DUPLICATE, record_and_ingest
from antsol_indexer.indexer.parser import extract_content_address, parse_log_line
from antsol_indexer.indexer.types import DomainEvent

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE = "manual_sig"
DEFAULT_SLOT = 0
STATUS_UNRECOGNIZED = "unrecognized"

router = APIRouter(prefix="/api")


def _parsed_event(event: DomainEvent) -> ParsedEvent:
    return ParsedEvent(
        event_type=event.event_type,
        package_name=event.package_name,
        version=event.version,
        transaction_signature=event.transaction_signature,
        slot=event.slot,
        block_time=event.block_time.isoformat() if event.block_time else None,
    )


def ingest_log_line(
    log: str,
    *,
    signature: str | None = None,
    slot: int | None = None,
    block_time: int | None = None,
) -> IngestResult:
    """
    Parse and ingest one log line.

    Shared by the HTTP endpoint and the ``ingest`` CLI command.

    Raises:
        IngestError: if the store rejects a write.
    """
    when = datetime.fromtimestamp(block_time, UTC) if block_time is not None else None
    event = parse_log_line(
        log,
        signature or DEFAULT_SIGNATURE,
        DEFAULT_SLOT if slot is None else slot,
        when,
    )
    if event is None:
        logger.debug("Manual ingestion: no recognizable event in %r", log[:120])
        return IngestResult(
            content_address=extract_content_address(log),
            message="No recognizable event in log",
            status=STATUS_UNRECOGNIZED,
        )

    outcome = record_and_ingest(event, log)
    logger.info(
        "Manual ingestion of %s for %s: %s",
        event.event_type,
        event.package_name,
        outcome.status,
    )
    return IngestResult(
        event=_parsed_event(event),
        content_address=outcome.content_address,
        message=(
            outcome.message
            if outcome.status == STATUS_DUPLICATE
            else f"Event parsed and ingested: {outcome.message}"
        ),
        status=outcome.status,
    )


@router.post("/ingest", response_model=ApiResponse[IngestResult])
def ingest(request: IngestRequest):
    """Parse a raw program log line and ingest it if it is a registry event."""
    result = ingest_log_line(
        request.log,
        signature=request.signature,
        slot=request.slot,
        block_time=request.block_time,
    )
    return ApiResponse(data=result)
