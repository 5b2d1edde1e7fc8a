"""
Shared pytest fixtures for the indexer test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary SQLite databases wired through ``use_test_database``
- A FastAPI TestClient built from the real route registration
- An in-memory ledger implementing the ``LedgerClient`` protocol

Fixtures are function scoped so every test starts from an empty store.
"""

import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from antsol_indexer.api.server import create_app
from antsol_indexer.config import ScanSettings, use_test_database
from antsol_indexer.db.schema import init_database
from tests.ledger_fakes import FakeLedger

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """
    Create a temporary database file for testing.

    Each test gets its own directory and database file. The config singleton
    points at it for the duration of the test.

    Yields:
        Path to temporary database file
    """
    temp_dir = tempfile.mkdtemp()
    temp_db = Path(temp_dir) / "test_indexer.db"

    with use_test_database(temp_db):
        yield temp_db

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def test_db(temp_db_path: Path) -> Generator[Path, None, None]:
    """
    Initialize a test database with the production schema and no data.

    Yields:
        Path to the initialised database
    """
    init_database()
    yield temp_db_path


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest.fixture
def test_client(test_db: Path) -> Generator[TestClient, None, None]:
    """TestClient over the real app with an initialised temporary database."""
    with TestClient(create_app()) as client:
        yield client


# ============================================================================
# LEDGER FIXTURES
# ============================================================================


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def scan_settings() -> ScanSettings:
    """Fast settings: short intervals, checkpoint every 10 slots."""
    return ScanSettings(
        poll_interval_seconds=0.01,
        checkpoint_interval=10,
        max_retries=3,
        retry_delay_seconds=0.5,
        backoff_base_seconds=2.0,
        backoff_max_seconds=10.0,
        max_slot_attempts=3,
    )


@pytest.fixture
def sleeps() -> list[float]:
    """Collects durations passed to the controller's sleep hook."""
    return []
