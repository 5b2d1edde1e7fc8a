"""Scan loop behaviour: cursor selection, checkpoints, backoff and failed slots."""

from dataclasses import replace
from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from antsol_indexer.db import packages_repo, state_repo
from antsol_indexer.db.errors import (
    DatabaseOperationContext,
    DatabaseReadError,
    DatabaseWriteError,
)
from antsol_indexer.indexer import controller as controller_module
from antsol_indexer.indexer.controller import (
    PHASE_BACKOFF,
    PHASE_POLLING,
    PHASE_STARTING,
    PHASE_STOPPED,
    ScanController,
)
from antsol_indexer.indexer.ingestion import IngestError
from antsol_indexer.indexer.parser import parse_log_line
from tests.ledger_fakes import make_block, make_tx
from tests.constants import DOWNLOAD_LOG, PROGRAM_ID, PUBLISH_LOG


def _controller(ledger, settings, sleeps):
    return ScanController(ledger, PROGRAM_ID, settings, sleep=sleeps.append)


def _publish_block(slot: int, signature: str, name: str = "awesome-math-utils"):
    log = PUBLISH_LOG.replace("awesome-math-utils", name)
    return make_block(slot, make_tx(signature, log))


def _downloads(name: str = "awesome-math-utils") -> int:
    return packages_repo.get_package_with_versions(name)["total_downloads"]


# ============================================================================
# STARTING POSITION
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
class TestStartingPosition:
    def test_empty_state_starts_at_tip_without_backfill(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        fake_ledger.tip = 50
        controller = _controller(fake_ledger, scan_settings, sleeps)

        controller.run_once()

        assert controller.state.cursor == 50
        assert controller.state.phase == PHASE_POLLING
        assert fake_ledger.requested_slots == []
        assert sleeps == [scan_settings.poll_interval_seconds]

    def test_start_slot_override_backfills(self, test_db, fake_ledger, scan_settings, sleeps):
        fake_ledger.add_block(_publish_block(12, "sig-12"))
        settings = replace(scan_settings, start_slot=10)
        controller = _controller(fake_ledger, settings, sleeps)

        controller.run_once()

        assert fake_ledger.requested_slots == [11, 12]
        assert packages_repo.get_package_with_versions("awesome-math-utils") is not None
        assert state_repo.get_last_processed_slot() == 12

    def test_persisted_cursor_wins_over_start_slot(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        state_repo.update_last_processed_slot(20)
        fake_ledger.tip = 22
        settings = replace(scan_settings, start_slot=5)
        controller = _controller(fake_ledger, settings, sleeps)

        controller.run_once()

        assert fake_ledger.requested_slots == [21, 22]
        assert state_repo.get_last_processed_slot() == 22

    def test_tip_failure_during_start_goes_through_backoff(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        fake_ledger.tip = 7
        fake_ledger.tip_failures = 1
        controller = _controller(fake_ledger, scan_settings, sleeps)

        controller.run_once()

        assert controller.state.cursor is None
        assert controller.state.phase == PHASE_BACKOFF
        assert sleeps == [scan_settings.retry_delay_seconds]

        controller.run_once()

        assert controller.state.cursor == 7

    def test_storage_error_during_start_backs_off(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        fake_ledger.tip = 40
        controller = _controller(fake_ledger, scan_settings, sleeps)
        failure = DatabaseReadError(
            context=DatabaseOperationContext(operation="state.get_last_processed_slot")
        )

        with patch.object(state_repo, "get_last_processed_slot", side_effect=failure):
            controller.run_once()

        assert controller.state.cursor is None
        assert controller.state.phase == PHASE_STARTING
        assert sleeps == [scan_settings.retry_delay_seconds]
        state = state_repo.get_indexer_state()
        assert state["error_count"] == 1
        assert state["last_error"].startswith("Storage error:")

        controller.run_once()

        assert controller.state.cursor == 40


# ============================================================================
# PROCESSING
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
class TestProcessing:
    def test_skipped_slots_advance_cursor(self, test_db, fake_ledger, scan_settings, sleeps):
        state_repo.update_last_processed_slot(100)
        fake_ledger.tip = 105
        controller = _controller(fake_ledger, scan_settings, sleeps)

        controller.run_once()

        assert fake_ledger.requested_slots == [101, 102, 103, 104, 105]
        assert controller.state.cursor == 105
        assert state_repo.get_indexer_state()["error_count"] == 0

    def test_checkpoints_on_interval_and_range_end(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        fake_ledger.tip = 25
        settings = replace(scan_settings, start_slot=5)
        controller = _controller(fake_ledger, settings, sleeps)

        with patch.object(
            state_repo,
            "update_last_processed_slot",
            wraps=state_repo.update_last_processed_slot,
        ) as checkpoint:
            controller.run_once()

        assert [c.args[0] for c in checkpoint.call_args_list] == [10, 20, 25]

    def test_events_ingested_in_slot_order(self, test_db, fake_ledger, scan_settings, sleeps):
        state_repo.update_last_processed_slot(10)
        fake_ledger.add_block(_publish_block(11, "sig-pub"))
        fake_ledger.add_block(make_block(13, make_tx("sig-dl", DOWNLOAD_LOG)))
        controller = _controller(fake_ledger, scan_settings, sleeps)

        controller.run_once()

        assert _downloads() == 1
        assert state_repo.get_last_processed_slot() == 13

    def test_block_time_is_checkpointed(self, test_db, fake_ledger, scan_settings, sleeps):
        block_time = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
        state_repo.update_last_processed_slot(10)
        fake_ledger.add_block(make_block(11, block_time=block_time))
        controller = _controller(fake_ledger, scan_settings, sleeps)

        controller.run_once()

        state = state_repo.get_indexer_state()
        assert state["last_processed_block_time"] == block_time.isoformat()

    def test_failed_slot_replay_keeps_newest_block_time(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        older = datetime(2024, 1, 1, tzinfo=UTC)
        newer = datetime(2024, 1, 2, tzinfo=UTC)
        state_repo.update_last_processed_slot(10)
        fake_ledger.add_block(make_block(11, block_time=older))
        fake_ledger.add_block(make_block(12, block_time=newer))
        fake_ledger.failing_slots[11] = 1
        controller = _controller(fake_ledger, scan_settings, sleeps)

        controller.run_once()
        fake_ledger.add_block(make_block(13))
        controller.run_once()

        state = state_repo.get_indexer_state()
        assert state["last_processed_slot"] == 13
        assert state["failed_slots"] == 0
        assert state["last_processed_block_time"] == newer.isoformat()

    def test_replay_after_crash_does_not_double_count(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        state_repo.update_last_processed_slot(10)
        fake_ledger.add_block(_publish_block(11, "sig-pub"))
        fake_ledger.add_block(make_block(12, make_tx("sig-dl", DOWNLOAD_LOG)))

        # Slots applied but the cursor never persisted.
        first = _controller(fake_ledger, scan_settings, sleeps)
        assert first.process_slot(11) == 1
        assert first.process_slot(12) == 1
        assert state_repo.get_last_processed_slot() == 10

        second = _controller(fake_ledger, scan_settings, sleeps)
        second.run_once()

        assert fake_ledger.requested_slots[-2:] == [11, 12]
        assert _downloads() == 1
        assert state_repo.get_last_processed_slot() == 12

    def test_process_slot_counts_only_new_events(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        fake_ledger.add_block(_publish_block(3, "sig-pub"))
        controller = _controller(fake_ledger, scan_settings, sleeps)

        assert controller.process_slot(3) == 1
        assert controller.process_slot(3) == 0
        assert controller.process_slot(4) == 0


# ============================================================================
# FAILURES AND RETRY
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
class TestFailures:
    def test_backoff_sequence(self, test_db, fake_ledger, scan_settings, sleeps):
        state_repo.update_last_processed_slot(100)
        fake_ledger.tip = 100
        fake_ledger.tip_failures = 9
        controller = _controller(fake_ledger, scan_settings, sleeps)

        for _ in range(9):
            controller.run_once()

        assert sleeps == [0.5, 0.5, 4.0, 0.5, 0.5, 8.0, 0.5, 0.5, 10.0]
        state = state_repo.get_indexer_state()
        assert state["error_count"] == 9
        assert state["last_error"] == "RPC error: connection refused"

    def test_successful_tip_resets_backoff(self, test_db, fake_ledger, scan_settings, sleeps):
        state_repo.update_last_processed_slot(100)
        fake_ledger.tip = 100
        fake_ledger.tip_failures = 4
        controller = _controller(fake_ledger, scan_settings, sleeps)

        for _ in range(5):
            controller.run_once()

        assert sleeps == [0.5, 0.5, 4.0, 0.5, scan_settings.poll_interval_seconds]
        assert controller.state.retry_count == 0
        assert controller.state.backoff_seconds == scan_settings.backoff_base_seconds

    def test_failed_slot_is_recorded_and_loop_continues(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        state_repo.update_last_processed_slot(10)
        fake_ledger.add_block(_publish_block(11, "sig-a", name="pkg-a"))
        fake_ledger.add_block(_publish_block(12, "sig-b", name="pkg-b"))
        fake_ledger.failing_slots[11] = 1
        controller = _controller(fake_ledger, scan_settings, sleeps)

        controller.run_once()

        state = state_repo.get_indexer_state()
        assert state["last_processed_slot"] == 12
        assert state["failed_slots"] == 1
        assert state["error_count"] == 1
        assert state["last_error"].startswith("Slot 11:")
        assert packages_repo.get_package_with_versions("pkg-a") is None
        assert packages_repo.get_package_with_versions("pkg-b") is not None

        controller.run_once()

        assert packages_repo.get_package_with_versions("pkg-a") is not None
        assert state_repo.get_indexer_state()["failed_slots"] == 0

    def test_failed_slot_retry_stops_at_attempt_ceiling(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        state_repo.update_last_processed_slot(10)
        fake_ledger.add_block(_publish_block(11, "sig-a"))
        fake_ledger.failing_slots[11] = 10
        controller = _controller(fake_ledger, scan_settings, sleeps)

        for _ in range(5):
            controller.run_once()

        assert fake_ledger.requested_slots.count(11) == scan_settings.max_slot_attempts
        assert state_repo.list_retryable_slots(scan_settings.max_slot_attempts) == []
        assert state_repo.get_indexer_state()["failed_slots"] == 1

    def test_ingest_failure_is_recorded_as_failed_slot(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        state_repo.update_last_processed_slot(10)
        fake_ledger.add_block(_publish_block(11, "sig-a"))
        event = parse_log_line(PUBLISH_LOG, "sig-a", 11)
        failure = IngestError(
            event,
            DatabaseWriteError(context=DatabaseOperationContext(operation="events.record_event")),
        )
        controller = _controller(fake_ledger, scan_settings, sleeps)

        with patch.object(controller_module, "record_and_ingest", side_effect=failure):
            controller.run_once()

        assert state_repo.get_indexer_state()["failed_slots"] == 1
        assert state_repo.get_last_processed_slot() == 11

        controller.run_once()

        assert packages_repo.get_package_with_versions("awesome-math-utils") is not None
        assert state_repo.get_indexer_state()["failed_slots"] == 0


# ============================================================================
# LIFECYCLE
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
class TestLifecycle:
    def test_stop_finishes_in_flight_slot_and_checkpoints(
        self, test_db, fake_ledger, scan_settings, sleeps
    ):
        fake_ledger.tip = 30
        settings = replace(scan_settings, start_slot=5)
        controller = _controller(fake_ledger, settings, sleeps)
        original_get_block = fake_ledger.get_block

        def get_block(slot):
            if slot == 8:
                controller.stop()
            return original_get_block(slot)

        fake_ledger.get_block = get_block

        controller.run_forever()

        assert fake_ledger.requested_slots == [6, 7, 8]
        assert controller.state.phase == PHASE_STOPPED
        state = state_repo.get_indexer_state()
        assert state["last_processed_slot"] == 8
        assert state["status"] == state_repo.STATUS_STOPPED

    def test_run_forever_marks_running(self, test_db, fake_ledger, scan_settings):
        fake_ledger.tip = 3
        statuses = []

        def sleep(_seconds):
            statuses.append(state_repo.get_indexer_state()["status"])
            controller.stop()

        controller = ScanController(fake_ledger, PROGRAM_ID, scan_settings, sleep=sleep)
        controller.run_forever()

        assert statuses == [state_repo.STATUS_RUNNING]
        assert state_repo.get_indexer_state()["status"] == state_repo.STATUS_STOPPED

    def test_default_sleep_returns_immediately_when_stopped(self, test_db, fake_ledger):
        fake_ledger.tip = 3
        controller = ScanController(fake_ledger, PROGRAM_ID)
        controller.stop()

        controller.run_once()

        assert controller.stopping
        assert controller.state.cursor == 3

    def test_checkpoint_failure_is_logged_not_raised(
        self, test_db, fake_ledger, scan_settings, sleeps, caplog
    ):
        state_repo.update_last_processed_slot(10)
        fake_ledger.tip = 12
        controller = _controller(fake_ledger, scan_settings, sleeps)
        failure = DatabaseWriteError(
            context=DatabaseOperationContext(operation="state.update_last_processed_slot")
        )

        with patch.object(state_repo, "update_last_processed_slot", side_effect=failure):
            controller.run_once()

        assert controller.state.cursor == 12
        assert "Failed to update last processed slot" in caplog.text

    def test_status_failure_does_not_stop_loop(
        self, test_db, fake_ledger, scan_settings, caplog
    ):
        fake_ledger.tip = 3
        failure = DatabaseWriteError(context=DatabaseOperationContext(operation="state.set_status"))

        def sleep(_seconds):
            controller.stop()

        controller = ScanController(fake_ledger, PROGRAM_ID, scan_settings, sleep=sleep)
        with patch.object(state_repo, "set_status", side_effect=failure):
            controller.run_forever()

        assert controller.state.cursor == 3
        assert controller.state.phase == PHASE_STOPPED
        assert "Failed to set indexer status" in caplog.text
