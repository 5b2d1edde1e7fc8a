"""Tests for the event log repository."""

from datetime import UTC, datetime

import pytest

from antsol_indexer.db import events_repo


def _record(signature: str, *, package: str = "alpha", slot: int = 1, **overrides) -> bool:
    fields = {
        "event_type": "PackagePublished",
        "package_name": package,
        "version": "1.0.0",
        "transaction_signature": signature,
        "slot": slot,
        "block_time": None,
        "raw_data": f"Program log: {signature}",
    }
    fields.update(overrides)
    return events_repo.record_event(**fields)


@pytest.mark.unit
@pytest.mark.db
def test_record_event_is_idempotent_on_signature(test_db):
    assert _record("sig-1") is True
    assert _record("sig-1", package="other", slot=99) is False

    events = events_repo.list_recent_events(limit=10)
    assert len(events) == 1
    assert events[0]["package_name"] == "alpha"
    assert events[0]["slot"] == 1


@pytest.mark.unit
@pytest.mark.db
def test_record_event_stores_block_time_as_iso_utc(test_db):
    block_time = datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
    _record("sig-1", block_time=block_time)

    event = events_repo.list_recent_events(limit=1)[0]

    assert event["block_time"] == "2023-11-14T22:13:20+00:00"
    assert event["raw_data"] == "Program log: sig-1"
    assert event["created_at"]


@pytest.mark.unit
@pytest.mark.db
def test_record_event_without_version(test_db):
    _record("sig-1", version=None, event_type="PackageDeprecated")

    event = events_repo.list_recent_events(limit=1)[0]
    assert event["version"] is None
    assert event["event_type"] == "PackageDeprecated"


@pytest.mark.unit
@pytest.mark.db
def test_recent_events_ordered_by_slot_descending(test_db):
    _record("sig-a", slot=5)
    _record("sig-b", slot=9)
    _record("sig-c", slot=7)
    _record("sig-d", slot=9)

    signatures = [e["transaction_signature"] for e in events_repo.list_recent_events(limit=3)]

    assert signatures == ["sig-d", "sig-b", "sig-c"]


@pytest.mark.unit
@pytest.mark.db
def test_package_events_filter_and_paginate(test_db):
    for slot in range(1, 6):
        _record(f"alpha-{slot}", slot=slot)
    _record("beta-1", package="beta", slot=10)

    page = events_repo.list_package_events("alpha", limit=2, offset=1)

    assert [e["transaction_signature"] for e in page] == ["alpha-4", "alpha-3"]
    assert events_repo.list_package_events("missing", limit=5) == []
