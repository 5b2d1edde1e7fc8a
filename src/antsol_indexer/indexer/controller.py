"""The scan loop: follow the ledger tip and ingest every slot in order.

Phases
------
``starting``
    Pick the initial cursor: the persisted slot if one exists, else the
    configured start slot, else the current tip (no backfill).
``polling``
    Fetch the tip. When it has not moved past the cursor, sleep the poll
    interval.
``processing``
    Walk ``cursor + 1 .. tip`` strictly in order. Skipped slots are no-ops.
    A slot that fails is recorded in ``failed_slots`` and the loop moves on.
    The cursor is persisted every ``checkpoint_interval`` slots and at the
    end of the range.
``backoff``
    Tip retrieval failed. Below ``max_retries`` consecutive failures the loop
    sleeps ``retry_delay_seconds``; at the ceiling it doubles the backoff
    (capped at ``backoff_max_seconds``), sleeps that, and starts counting
    again. A successful tip fetch resets both.
``stopped``
    The stop event was set. The in-flight slot is finished and the cursor
    checkpointed before the loop returns.

Failed slots are retried at the start of each cycle until they succeed or
reach ``max_slot_attempts``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from antsol_indexer.config import ScanSettings
from antsol_indexer.db import state_repo
from antsol_indexer.db.errors import DatabaseError
from antsol_indexer.indexer.ingestion import STATUS_DUPLICATE, IngestError, record_and_ingest
from antsol_indexer.indexer.ledger_client import LedgerClient, LedgerTransportError
from antsol_indexer.indexer.scanner import scan_block
from antsol_indexer.indexer.types import Block

logger = logging.getLogger(__name__)

PHASE_STARTING = "starting"
PHASE_POLLING = "polling"
PHASE_PROCESSING = "processing"
PHASE_BACKOFF = "backoff"
PHASE_STOPPED = "stopped"

SlotFailure = (LedgerTransportError, IngestError, DatabaseError)


@dataclass
class ScanState:
    """Mutable loop state owned by one :class:`ScanController`."""

    phase: str = PHASE_STARTING
    cursor: int | None = None
    retry_count: int = 0
    backoff_seconds: float = 0.0
    checkpointed: int | None = None
    block_time: datetime | None = None


class ScanController:
    """Drive the ledger scan loop.

    Args:
        ledger: Source of tips and blocks.
        program_id: Registry program whose transactions are indexed.
        settings: Pacing, checkpoint and backoff settings.
        sleep: Called with a duration in seconds whenever the loop waits.
            Defaults to waiting on ``stop_event`` so a stop request cuts the
            wait short.
        stop_event: Cooperative stop signal, created if omitted.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        program_id: str,
        settings: ScanSettings | None = None,
        *,
        sleep: Callable[[float], None] | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.ledger = ledger
        self.program_id = program_id
        self.settings = settings or ScanSettings()
        self.stop_event = stop_event or threading.Event()
        self._sleep = sleep or self._wait
        self.state = ScanState(backoff_seconds=self.settings.backoff_base_seconds)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Ask the loop to exit after the in-flight slot."""
        self.stop_event.set()

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()

    def run_forever(self) -> None:
        """Run cycles until :meth:`stop` is called."""
        logger.info("Starting indexer for program: %s", self.program_id)
        self._set_status(state_repo.STATUS_RUNNING)
        try:
            while not self.stopping:
                self.run_once()
        finally:
            self._checkpoint()
            self.state.phase = PHASE_STOPPED
            self._set_status(state_repo.STATUS_STOPPED)
            logger.info("Indexer stopped at slot %s", self.state.cursor)

    def run_once(self) -> None:
        """Run a single cycle: initialise if needed, poll, process any new slots."""
        if self.state.cursor is None and not self._initialise_cursor():
            return

        self.state.phase = PHASE_POLLING
        try:
            tip = self.ledger.get_tip()
        except LedgerTransportError as exc:
            self._handle_tip_failure(exc)
            return
        self._reset_backoff()

        self._retry_failed_slots()

        cursor = self.state.cursor
        if tip <= cursor:
            self._sleep(self.settings.poll_interval_seconds)
            return
        self._process_range(cursor + 1, tip)

    def process_slot(self, slot: int, *, track_block_time: bool = True) -> int:
        """Fetch one slot and ingest its events.

        Replays of older slots pass ``track_block_time=False`` so the block
        time checkpointed next to the cursor stays that of the newest slot.

        Returns:
            The number of events that were new.

        Raises:
            LedgerTransportError: the block could not be fetched.
            IngestError: an event could not be stored.
        """
        block = self.ledger.get_block(slot)
        if block is None:
            logger.debug("Slot %d skipped or not available", slot)
            return 0
        if track_block_time and block.block_time is not None:
            self.state.block_time = block.block_time
        return self._ingest_block(block)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _initialise_cursor(self) -> bool:
        self.state.phase = PHASE_STARTING
        try:
            persisted = state_repo.get_last_processed_slot()
        except DatabaseError as exc:
            logger.error("Failed to read last processed slot: %s", exc)
            self._record_error(f"Storage error: {exc}")
            self._sleep(self.settings.retry_delay_seconds)
            return False
        if persisted > 0:
            logger.info("Resuming from last processed slot: %d", persisted)
            self.state.cursor = persisted
        elif self.settings.start_slot is not None:
            logger.info(
                "Indexer state empty; backfilling from start slot %d",
                self.settings.start_slot,
            )
            self.state.cursor = self.settings.start_slot
        else:
            try:
                tip = self.ledger.get_tip()
            except LedgerTransportError as exc:
                self._handle_tip_failure(exc)
                return False
            self._reset_backoff()
            logger.info("Indexer state empty; starting from current slot %d", tip)
            self.state.cursor = tip
        self.state.checkpointed = self.state.cursor
        return True

    def _process_range(self, first: int, last: int) -> None:
        self.state.phase = PHASE_PROCESSING
        interval = max(1, self.settings.checkpoint_interval)
        count = last - first + 1
        if count > 100:
            logger.info("Processing %d slots (%d to %d)", count, first, last)
        else:
            logger.debug("Processing slots %d to %d", first, last)

        for slot in range(first, last + 1):
            try:
                self.process_slot(slot)
            except SlotFailure as exc:
                self._handle_slot_failure(slot, exc)
            self.state.cursor = slot

            if self.stopping:
                logger.info("Stop requested; leaving range at slot %d", slot)
                break
            if slot % interval == 0:
                self._checkpoint()
        self._checkpoint()

    def _handle_tip_failure(self, exc: Exception) -> None:
        self.state.phase = PHASE_BACKOFF
        self.state.retry_count += 1
        logger.error(
            "Failed to get current slot (attempt %d/%d): %s",
            self.state.retry_count,
            self.settings.max_retries,
            exc,
        )
        self._record_error(f"RPC error: {exc}")

        if self.state.retry_count >= self.settings.max_retries:
            self.state.backoff_seconds = min(
                self.state.backoff_seconds * 2, self.settings.backoff_max_seconds
            )
            logger.warning(
                "Max retries reached; waiting %.1fs before retry",
                self.state.backoff_seconds,
            )
            self._sleep(self.state.backoff_seconds)
            self.state.retry_count = 0
        else:
            self._sleep(self.settings.retry_delay_seconds)

    def _retry_failed_slots(self) -> None:
        try:
            slots = state_repo.list_retryable_slots(self.settings.max_slot_attempts)
        except DatabaseError as exc:
            logger.error("Could not load failed slots: %s", exc)
            return

        for slot in slots:
            if self.stopping:
                return
            try:
                self.process_slot(slot, track_block_time=False)
            except SlotFailure as exc:
                logger.warning("Retry of slot %d failed: %s", slot, exc)
                self._remember_failed_slot(slot, exc)
                continue
            logger.info("Recovered previously failed slot %d", slot)
            try:
                state_repo.clear_failed_slot(slot)
            except DatabaseError as exc:
                logger.error("Could not clear failed slot %d: %s", slot, exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ingest_block(self, block: Block) -> int:
        new_events = 0
        for scanned in scan_block(block, self.program_id):
            outcome = record_and_ingest(scanned.event, scanned.raw_log)
            logger.debug(
                "%s %s: %s",
                scanned.event.event_type,
                scanned.event.transaction_signature,
                outcome.message,
            )
            if outcome.status != STATUS_DUPLICATE:
                new_events += 1
        if new_events:
            logger.info("Slot %d: %d new event(s)", block.slot, new_events)
        return new_events

    def _handle_slot_failure(self, slot: int, exc: Exception) -> None:
        logger.warning("Error processing slot %d: %s", slot, exc)
        self._record_error(f"Slot {slot}: {exc}")
        self._remember_failed_slot(slot, exc)

    def _remember_failed_slot(self, slot: int, exc: Exception) -> None:
        try:
            state_repo.add_failed_slot(slot, str(exc))
        except DatabaseError as db_exc:
            logger.error("Failed to record failed slot %d: %s", slot, db_exc)

    def _record_error(self, message: str) -> None:
        try:
            state_repo.record_indexer_error(message)
        except DatabaseError as exc:
            logger.error("Failed to log error to database: %s", exc)

    def _set_status(self, status: str) -> None:
        try:
            state_repo.set_status(status)
        except DatabaseError as exc:
            logger.error("Failed to set indexer status to %s: %s", status, exc)

    def _checkpoint(self) -> None:
        cursor = self.state.cursor
        if cursor is None or cursor == self.state.checkpointed:
            return
        try:
            state_repo.update_last_processed_slot(cursor, self.state.block_time)
        except DatabaseError as exc:
            logger.warning("Failed to update last processed slot: %s", exc)
            return
        self.state.checkpointed = cursor

    def _reset_backoff(self) -> None:
        self.state.retry_count = 0
        self.state.backoff_seconds = self.settings.backoff_base_seconds

    def _wait(self, seconds: float) -> None:
        self.stop_event.wait(seconds)
