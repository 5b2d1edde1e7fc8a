"""Ledger scanning and event ingestion.

Typical usage::

    from antsol_indexer.indexer import ScanController, SolanaRpcClient

    ledger = SolanaRpcClient(config.ledger.rpc_url, timeout=config.ledger.timeout_seconds)
    ScanController(ledger, config.ledger.program_id, config.indexer).run_forever()
"""

from antsol_indexer.indexer.controller import ScanController, ScanState
from antsol_indexer.indexer.ingestion import IngestError, IngestOutcome, record_and_ingest
from antsol_indexer.indexer.ledger_client import (
    LedgerClient,
    LedgerTransportError,
    SolanaRpcClient,
)
from antsol_indexer.indexer.parser import extract_content_address, parse_log_line
from antsol_indexer.indexer.types import Block, DomainEvent, LedgerTransaction

__all__ = [
    "Block",
    "DomainEvent",
    "IngestError",
    "IngestOutcome",
    "LedgerClient",
    "LedgerTransaction",
    "LedgerTransportError",
    "ScanController",
    "ScanState",
    "SolanaRpcClient",
    "extract_content_address",
    "parse_log_line",
    "record_and_ingest",
]
