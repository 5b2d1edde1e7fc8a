"""Tests for antsol_indexer.config defaults, INI loading and environment overrides."""

import configparser

import pytest

from antsol_indexer.config import (
    CONFIG_EXAMPLE,
    IndexerConfig,
    _load_from_ini,
    _parse_list,
    _parse_optional_int,
    get_config_status,
    load_config,
    print_config_summary,
    use_test_database,
)
from tests.constants import PROGRAM_ID


@pytest.mark.unit
def test_defaults():
    cfg = IndexerConfig()

    assert cfg.server.port == 8080
    assert cfg.ledger.rpc_url == "https://api.devnet.solana.com"
    assert cfg.ledger.commitment == "confirmed"
    assert cfg.indexer.start_slot is None
    assert cfg.indexer.poll_interval_seconds == 2.0
    assert cfg.indexer.checkpoint_interval == 10
    assert cfg.indexer.max_retries == 5
    assert cfg.indexer.retry_delay_seconds == 5.0
    assert cfg.indexer.backoff_base_seconds == 2.0
    assert cfg.indexer.backoff_max_seconds == 300.0
    assert cfg.indexer.max_slot_attempts == 3
    assert cfg.api.default_limit == 20
    assert cfg.api.max_limit == 100
    assert cfg.program_configured is False


@pytest.mark.unit
def test_example_config_matches_defaults():
    parser = configparser.ConfigParser()
    parser.read(CONFIG_EXAMPLE)

    cfg = IndexerConfig()
    _load_from_ini(parser, cfg)

    assert cfg == IndexerConfig()


@pytest.mark.unit
def test_ledger_and_indexer_ini_overrides():
    parser = configparser.ConfigParser()
    parser.read_dict(
        {
            "ledger": {
                "rpc_url": "http://localhost:8899",
                "program_id": f"  {'A' * 44}  ",
                "commitment": "Finalized",
                "timeout_seconds": "12.5",
            },
            "indexer": {
                "enabled": "no",
                "start_slot": "1000",
                "poll_interval_seconds": "0.5",
                "checkpoint_interval": "50",
                "max_retries": "2",
                "backoff_max_seconds": "60",
                "max_slot_attempts": "5",
            },
        }
    )

    cfg = IndexerConfig()
    _load_from_ini(parser, cfg)

    assert cfg.ledger.rpc_url == "http://localhost:8899"
    assert cfg.ledger.program_id == "A" * 44
    assert cfg.ledger.commitment == "finalized"
    assert cfg.ledger.timeout_seconds == 12.5
    assert cfg.program_configured is True
    assert cfg.indexer.enabled is False
    assert cfg.indexer.start_slot == 1000
    assert cfg.indexer.poll_interval_seconds == 0.5
    assert cfg.indexer.checkpoint_interval == 50
    assert cfg.indexer.max_retries == 2
    assert cfg.indexer.backoff_max_seconds == 60.0
    assert cfg.indexer.max_slot_attempts == 5


@pytest.mark.unit
def test_invalid_enumerations_are_ignored():
    parser = configparser.ConfigParser()
    parser.read_dict({"ledger": {"commitment": "eventually"}, "logging": {"format": "xml"}})

    cfg = IndexerConfig()
    _load_from_ini(parser, cfg)

    assert cfg.ledger.commitment == "confirmed"
    assert cfg.logging.format == "detailed"


@pytest.mark.unit
def test_api_ini_overrides():
    parser = configparser.ConfigParser()
    parser.read_dict(
        {
            "api": {
                "default_limit": "10",
                "max_limit": "50",
                "cors_origins": "https://a.example, https://b.example",
            }
        }
    )

    cfg = IndexerConfig()
    _load_from_ini(parser, cfg)

    assert cfg.api.default_limit == 10
    assert cfg.api.max_limit == 50
    assert cfg.api.cors_origins == ["https://a.example", "https://b.example"]


@pytest.mark.unit
def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SOLANA_RPC_URL", "http://rpc.example:8899")
    monkeypatch.setenv("ANTSOL_PROGRAM_ID", PROGRAM_ID)
    monkeypatch.setenv("INDEXER_START_SLOT", "250000")
    monkeypatch.setenv("INDEXER_POLL_INTERVAL_SECS", "7")
    monkeypatch.setenv("ANTSOL_PORT", "9090")
    monkeypatch.setenv("ANTSOL_DB_PATH", "/tmp/antsol.db")
    monkeypatch.setenv("ANTSOL_RPC_TIMEOUT_SECONDS", "4")
    monkeypatch.setenv("ANTSOL_LOG_LEVEL", "debug")
    monkeypatch.setenv("ANTSOL_LOG_FORMAT", "JSON")

    cfg = load_config()

    assert cfg.ledger.rpc_url == "http://rpc.example:8899"
    assert cfg.ledger.program_id == PROGRAM_ID
    assert cfg.indexer.start_slot == 250000
    assert cfg.indexer.poll_interval_seconds == 7.0
    assert cfg.server.port == 9090
    assert str(cfg.database.absolute_path) == "/tmp/antsol.db"
    assert cfg.ledger.timeout_seconds == 4.0
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "json"


@pytest.mark.unit
def test_relative_database_path_is_under_project_root():
    cfg = IndexerConfig()
    assert cfg.database.absolute_path.is_absolute()
    assert cfg.database.absolute_path.parts[-2:] == ("data", "indexer.db")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [("", None), ("   ", None), ("42", 42), (" 7 ", 7)],
)
def test_parse_optional_int(raw, expected):
    assert _parse_optional_int(raw) == expected


@pytest.mark.unit
def test_parse_list():
    assert _parse_list("") == []
    assert _parse_list("*") == ["*"]
    assert _parse_list("a, ,b") == ["a", "b"]


@pytest.mark.unit
def test_config_status_keys():
    status = get_config_status()

    assert set(status) == {
        "config_file_exists",
        "config_file_path",
        "using_example",
        "rpc_url",
        "program_configured",
        "indexer_enabled",
    }


@pytest.mark.unit
def test_print_config_summary(capsys):
    print_config_summary()
    output = capsys.readouterr().out
    assert "INDEXER CONFIGURATION" in output
    assert "RPC:" in output
    assert "Program:" in output
    assert "Start slot:" in output


@pytest.mark.unit
def test_use_test_database_reaches_every_importer(tmp_path):
    from antsol_indexer import config as config_module
    from antsol_indexer.api.routes import utils as route_utils
    from antsol_indexer.db import connection as db_connection

    original = db_connection.get_db_path()
    target = tmp_path / "scratch.db"

    with use_test_database(target):
        assert route_utils.config is config_module.config
        assert db_connection.get_db_path() == target

    assert db_connection.get_db_path() == original
