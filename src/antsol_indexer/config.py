"""
Indexer configuration management.

This module handles loading and accessing configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/indexer.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The
IndexerConfig dataclass provides typed access to all settings.

Usage:
    from antsol_indexer.config import config

    print(config.ledger.rpc_url)
    print(config.indexer.poll_interval_seconds)

Environment Variable Mapping:
    ANTSOL_HOST                 -> server.host
    ANTSOL_PORT                 -> server.port
    ANTSOL_DB_PATH              -> database.path
    SOLANA_RPC_URL              -> ledger.rpc_url
    ANTSOL_PROGRAM_ID           -> ledger.program_id
    ANTSOL_RPC_TIMEOUT_SECONDS  -> ledger.timeout_seconds
    INDEXER_START_SLOT          -> indexer.start_slot
    INDEXER_POLL_INTERVAL_SECS  -> indexer.poll_interval_seconds
    ANTSOL_LOG_LEVEL            -> logging.level
    ANTSOL_LOG_FORMAT           -> logging.format
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "indexer.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "indexer.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """HTTP query API binding."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8080


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/indexer.db"

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class LedgerSettings:
    """Upstream ledger RPC endpoint and the registry program to follow."""

    rpc_url: str = "https://api.devnet.solana.com"
    program_id: str = ""
    commitment: Literal["processed", "confirmed", "finalized"] = "confirmed"
    timeout_seconds: float = 30.0


@dataclass
class ScanSettings:
    """Scan loop pacing, checkpointing and backoff.

    ``start_slot`` only applies when no cursor has been persisted yet; it
    requests a historical backfill from that slot instead of starting at tip.
    """

    enabled: bool = True
    start_slot: int | None = None
    poll_interval_seconds: float = 2.0
    checkpoint_interval: int = 10
    max_retries: int = 5
    retry_delay_seconds: float = 5.0
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 300.0
    max_slot_attempts: int = 3


@dataclass
class ApiSettings:
    """Query surface limits and CORS."""

    default_limit: int = 20
    max_limit: int = 100
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class IndexerConfig:
    """
    Complete indexer configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    indexer: ScanSettings = field(default_factory=ScanSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def program_configured(self) -> bool:
        """True when a registry program id is available to filter on."""
        return bool(self.ledger.program_id.strip())


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_optional_int(value: str) -> int | None:
    """Parse an integer, treating blank values as unset."""
    value = value.strip()
    if not value:
        return None
    return int(value)


def _load_from_ini(parser: configparser.ConfigParser, cfg: IndexerConfig) -> None:
    """Load configuration from parsed INI file into IndexerConfig."""
    # Server section
    if parser.has_section("server"):
        if parser.has_option("server", "host"):
            cfg.server.host = parser.get("server", "host")
        if parser.has_option("server", "port"):
            cfg.server.port = parser.getint("server", "port")

    # Database section
    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")

    # Ledger section
    if parser.has_section("ledger"):
        if parser.has_option("ledger", "rpc_url"):
            cfg.ledger.rpc_url = parser.get("ledger", "rpc_url")
        if parser.has_option("ledger", "program_id"):
            cfg.ledger.program_id = parser.get("ledger", "program_id").strip()
        if parser.has_option("ledger", "commitment"):
            val = parser.get("ledger", "commitment").lower()
            if val in ("processed", "confirmed", "finalized"):
                cfg.ledger.commitment = val  # type: ignore[assignment]
        if parser.has_option("ledger", "timeout_seconds"):
            cfg.ledger.timeout_seconds = parser.getfloat("ledger", "timeout_seconds")

    # Indexer section
    if parser.has_section("indexer"):
        section = "indexer"
        if parser.has_option(section, "enabled"):
            cfg.indexer.enabled = _parse_bool(parser.get(section, "enabled"))
        if parser.has_option(section, "start_slot"):
            cfg.indexer.start_slot = _parse_optional_int(parser.get(section, "start_slot"))
        if parser.has_option(section, "poll_interval_seconds"):
            cfg.indexer.poll_interval_seconds = parser.getfloat(section, "poll_interval_seconds")
        if parser.has_option(section, "checkpoint_interval"):
            cfg.indexer.checkpoint_interval = parser.getint(section, "checkpoint_interval")
        if parser.has_option(section, "max_retries"):
            cfg.indexer.max_retries = parser.getint(section, "max_retries")
        if parser.has_option(section, "retry_delay_seconds"):
            cfg.indexer.retry_delay_seconds = parser.getfloat(section, "retry_delay_seconds")
        if parser.has_option(section, "backoff_base_seconds"):
            cfg.indexer.backoff_base_seconds = parser.getfloat(section, "backoff_base_seconds")
        if parser.has_option(section, "backoff_max_seconds"):
            cfg.indexer.backoff_max_seconds = parser.getfloat(section, "backoff_max_seconds")
        if parser.has_option(section, "max_slot_attempts"):
            cfg.indexer.max_slot_attempts = parser.getint(section, "max_slot_attempts")

    # API section
    if parser.has_section("api"):
        if parser.has_option("api", "default_limit"):
            cfg.api.default_limit = parser.getint("api", "default_limit")
        if parser.has_option("api", "max_limit"):
            cfg.api.max_limit = parser.getint("api", "max_limit")
        if parser.has_option("api", "cors_origins"):
            cfg.api.cors_origins = _parse_list(parser.get("api", "cors_origins"))

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: IndexerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Server settings
    if env_host := os.getenv("ANTSOL_HOST"):
        cfg.server.host = env_host
    if env_port := os.getenv("ANTSOL_PORT"):
        cfg.server.port = int(env_port)

    # Database settings
    if env_db := os.getenv("ANTSOL_DB_PATH"):
        cfg.database.path = env_db

    # Ledger settings
    if env_rpc := os.getenv("SOLANA_RPC_URL"):
        cfg.ledger.rpc_url = env_rpc
    if env_program := os.getenv("ANTSOL_PROGRAM_ID"):
        cfg.ledger.program_id = env_program.strip()
    if env_timeout := os.getenv("ANTSOL_RPC_TIMEOUT_SECONDS"):
        cfg.ledger.timeout_seconds = float(env_timeout)

    # Scan settings
    if env_start := os.getenv("INDEXER_START_SLOT"):
        cfg.indexer.start_slot = _parse_optional_int(env_start)
    if env_poll := os.getenv("INDEXER_POLL_INTERVAL_SECS"):
        cfg.indexer.poll_interval_seconds = float(env_poll)

    # Logging settings
    if env_log := os.getenv("ANTSOL_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_log_format := os.getenv("ANTSOL_LOG_FORMAT"):
        if env_log_format.lower() in ("simple", "detailed", "json"):
            cfg.logging.format = env_log_format.lower()  # type: ignore[assignment]


def load_config() -> IndexerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/indexer.ini
        3. config/indexer.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        IndexerConfig: Fully populated configuration object.
    """
    cfg = IndexerConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information, used by the
    ``status`` CLI command.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "rpc_url": config.ledger.rpc_url,
        "program_configured": config.program_configured,
        "indexer_enabled": config.indexer.enabled,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("INDEXER CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to indexer.ini for production)")
    print("-" * 60)
    print(f"API:         {config.server.host}:{config.server.port}")
    print(f"RPC:         {config.ledger.rpc_url} ({config.ledger.commitment})")
    print(f"Program:     {config.ledger.program_id or '<not set>'}")
    start = config.indexer.start_slot
    print(f"Start slot:  {start if start is not None else 'tip'}")
    print(f"Database:    {config.database.absolute_path}")
    print(f"Log level:   {config.logging.level}")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    Usage:
        from antsol_indexer.config import use_test_database

        def test_something(tmp_path):
            with use_test_database(tmp_path / "test.db"):
                schema.init_database()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Point the config singleton at the test database."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None
