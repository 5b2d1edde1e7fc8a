"""Select registry events out of a fetched block."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from antsol_indexer.indexer.parser import parse_log_line
from antsol_indexer.indexer.types import Block, DomainEvent, LedgerTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScannedEvent:
    event: DomainEvent
    raw_log: str


def involves_program(transaction: LedgerTransaction, program_id: str) -> bool:
    """True when any log line of the transaction mentions the program id."""
    return any(program_id in line for line in transaction.logs)


def scan_block(block: Block, program_id: str) -> Iterator[ScannedEvent]:
    """Yield at most one event per successful transaction that touches the program.

    Lines are offered to the parser in log order and the first recognised
    line wins; later lines of the same transaction are not inspected.
    """
    for transaction in block.transactions:
        if not transaction.succeeded:
            continue
        if not involves_program(transaction, program_id):
            continue

        for line in transaction.logs:
            event = parse_log_line(line, transaction.signature, block.slot, block.block_time)
            if event is not None:
                yield ScannedEvent(event=event, raw_log=line)
                break
        else:
            logger.debug(
                "No recognizable event in transaction %s at slot %d",
                transaction.signature,
                block.slot,
            )
