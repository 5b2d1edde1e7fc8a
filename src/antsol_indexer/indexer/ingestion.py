"""Materialise recognised events into package and version state.

:func:`record_and_ingest` is the one write path shared by the scan loop, the
HTTP manual ingestion endpoint and the ``ingest`` CLI command. It records the
event row first (idempotent on the transaction signature) and applies the
projection only when the row is new, so replaying a slot or re-submitting a
log never double counts.

The event row is not rolled back when the projection fails: the event log is
authoritative and the package/version tables can be re-derived from it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from antsol_indexer.db import events_repo, packages_repo
from antsol_indexer.db.errors import DatabaseError
from antsol_indexer.indexer.parser import extract_content_address
from antsol_indexer.indexer.types import (
    PACKAGE_DOWNLOADED,
    PACKAGE_PUBLISHED,
    PACKAGE_UPDATED,
    DomainEvent,
)

logger = logging.getLogger(__name__)

STATUS_APPLIED = "applied"
STATUS_DUPLICATE = "duplicate"
STATUS_SKIPPED = "skipped"
STATUS_AUDITED = "audited"


class IngestError(Exception):
    """A storage failure while recording or materialising an event."""

    def __init__(self, event: DomainEvent, cause: DatabaseError) -> None:
        super().__init__(
            f"Failed to ingest {event.event_type} for {event.package_name} "
            f"({event.transaction_signature}): {cause}"
        )
        self.event = event
        self.cause = cause


@dataclass(frozen=True, slots=True)
class IngestOutcome:
    """What happened to one event.

    Attributes:
        status: ``applied``, ``duplicate``, ``skipped`` or ``audited``.
        message: Human-readable summary for logs and API responses.
        content_address: Content address recovered from the raw log, if any.
    """

    status: str
    message: str
    content_address: str | None = None


def _upsert(event: DomainEvent, content_address: str | None) -> IngestOutcome:
    packages_repo.upsert_package_version(
        event.package_name,
        version=event.version,
        content_address=content_address,
    )
    if event.version is None:
        logger.warning(
            "%s event for %s carries no version; package recorded without version",
            event.event_type,
            event.package_name,
        )
        return IngestOutcome(
            STATUS_APPLIED, f"Package {event.package_name} recorded without version"
        )
    if content_address is None:
        logger.debug(
            "No content address for %s@%s; version not stored",
            event.package_name,
            event.version,
        )
        return IngestOutcome(
            STATUS_APPLIED,
            f"Package {event.package_name} recorded; no content address for {event.version}",
        )
    logger.info(
        "Stored %s@%s (content=%s)",
        event.package_name,
        event.version,
        content_address[:8],
    )
    return IngestOutcome(
        STATUS_APPLIED,
        f"Stored {event.package_name}@{event.version}",
        content_address,
    )


def _download(event: DomainEvent) -> IngestOutcome:
    if event.version is None:
        logger.debug("Download event for %s has no version; dropped", event.package_name)
        return IngestOutcome(STATUS_SKIPPED, f"Download of {event.package_name} has no version")

    if not packages_repo.increment_downloads(event.package_name, event.version):
        logger.debug(
            "Download for unknown %s@%s; counters unchanged",
            event.package_name,
            event.version,
        )
        return IngestOutcome(
            STATUS_SKIPPED,
            f"Unknown package version {event.package_name}@{event.version}",
        )
    return IngestOutcome(
        STATUS_APPLIED, f"Download counted for {event.package_name}@{event.version}"
    )


def ingest_event(event: DomainEvent, raw_log: str) -> IngestOutcome:
    """Apply one newly recorded event to the package/version projection.

    Raises:
        IngestError: if the store rejects a write.
    """
    content_address = extract_content_address(raw_log)
    try:
        if event.event_type in (PACKAGE_PUBLISHED, PACKAGE_UPDATED):
            return _upsert(event, content_address)
        if event.event_type == PACKAGE_DOWNLOADED:
            outcome = _download(event)
        else:
            logger.debug("Audit-only event %s for %s", event.event_type, event.package_name)
            outcome = IngestOutcome(
                STATUS_AUDITED, f"{event.event_type} recorded for audit only"
            )
    except DatabaseError as exc:
        logger.error(
            "Ingestion failed for %s (%s): %s",
            event.transaction_signature,
            event.event_type,
            exc,
        )
        raise IngestError(event, exc) from exc

    if content_address is None:
        return outcome
    return IngestOutcome(outcome.status, outcome.message, content_address)


def record_and_ingest(event: DomainEvent, raw_log: str) -> IngestOutcome:
    """Record the event row and materialise it if it was not seen before.

    Raises:
        IngestError: if recording or materialising fails.
    """
    try:
        inserted = events_repo.record_event(
            event_type=event.event_type,
            package_name=event.package_name,
            version=event.version,
            transaction_signature=event.transaction_signature,
            slot=event.slot,
            block_time=event.block_time,
            raw_data=raw_log,
        )
    except DatabaseError as exc:
        logger.error("Failed to record event %s: %s", event.transaction_signature, exc)
        raise IngestError(event, exc) from exc

    if not inserted:
        return IngestOutcome(
            STATUS_DUPLICATE,
            f"Event {event.transaction_signature} already recorded",
            extract_content_address(raw_log),
        )
    return ingest_event(event, raw_log)
