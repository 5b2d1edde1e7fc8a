"""Value types shared by the parser, ledger client, scanner and ingestion engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

PACKAGE_PUBLISHED = "PackagePublished"
PACKAGE_UPDATED = "PackageUpdated"
PACKAGE_DOWNLOADED = "PackageDownloaded"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """A registry event recovered from one program log line.

    ``event_type`` is one of the three known types or any generic type named
    by an ``event`` field. ``transaction_signature`` is the identity key.
    """

    event_type: str
    package_name: str
    version: str | None
    transaction_signature: str
    slot: int
    block_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class LedgerTransaction:
    signature: str
    succeeded: bool
    logs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Block:
    """A confirmed ledger block with the transactions the scanner needs."""

    slot: int
    block_time: datetime | None
    transactions: tuple[LedgerTransaction, ...] = field(default_factory=tuple)
