"""In-memory ledger and block builders for scan loop tests."""

from antsol_indexer.indexer.ledger_client import LedgerTransportError
from antsol_indexer.indexer.types import Block, LedgerTransaction
from tests.constants import PROGRAM_ID


class FakeLedger:
    """
    In-memory ledger implementing the ``LedgerClient`` protocol.

    Attributes:
        tip: Value returned by ``get_tip`` (unless a tip failure is queued).
        blocks: slot -> Block; missing slots behave as skipped.
        tip_failures: number of upcoming ``get_tip`` calls that should fail.
        failing_slots: slot -> number of upcoming ``get_block`` calls that fail.
        requested_slots: every slot passed to ``get_block``, in call order.
    """

    def __init__(self, tip: int = 0) -> None:
        self.tip = tip
        self.blocks: dict[int, Block] = {}
        self.tip_failures = 0
        self.failing_slots: dict[int, int] = {}
        self.requested_slots: list[int] = []

    def add_block(self, block: Block) -> None:
        self.blocks[block.slot] = block
        self.tip = max(self.tip, block.slot)

    def get_tip(self) -> int:
        if self.tip_failures > 0:
            self.tip_failures -= 1
            raise LedgerTransportError("connection refused")
        return self.tip

    def get_block(self, slot: int) -> Block | None:
        self.requested_slots.append(slot)
        remaining = self.failing_slots.get(slot, 0)
        if remaining > 0:
            self.failing_slots[slot] = remaining - 1
            raise LedgerTransportError(f"timeout fetching slot {slot}")
        return self.blocks.get(slot)


def make_tx(
    signature: str, *logs: str, succeeded: bool = True, program_id: str = PROGRAM_ID
) -> LedgerTransaction:
    """Build a transaction whose logs start with the program invocation line."""
    invoke = f"Program {program_id} invoke [1]"
    return LedgerTransaction(signature=signature, succeeded=succeeded, logs=(invoke, *logs))


def make_block(slot: int, *transactions: LedgerTransaction, block_time=None) -> Block:
    return Block(slot=slot, block_time=block_time, transactions=tuple(transactions))
