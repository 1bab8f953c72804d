"""
Server configuration management.

This module handles loading and accessing server configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/server.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The ServerConfig
dataclass provides typed access to all settings.

Usage:
    from progression_server.config import config

    # Access settings
    print(config.server.host)
    print(config.history.max_block_bytes)

Environment Variable Mapping:
    PROG_HOST                      -> server.host
    PROG_PORT                      -> server.port
    PROG_PRODUCTION                -> security.production
    PROG_CORS_ORIGINS              -> security.cors_origins
    PROG_DB_PATH                   -> database.path
    PROG_HISTORY_MAX_BLOCK_BYTES   -> history.max_block_bytes
    PROG_HISTORY_MAX_BLOCK_RECORDS -> history.max_block_records
    PROG_HISTORY_REVERT_WORKERS    -> history.revert_max_workers
    PROG_LOG_LEVEL                 -> logging.level
    PROG_LOG_FORMAT                -> logging.format
"""

import configparser
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "server.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "server.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """Network server configuration."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8000


@dataclass
class SecuritySettings:
    """Security-related configuration."""

    production: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    cors_allow_credentials: bool = True
    docs_enabled: Literal["auto", "enabled", "disabled"] = "auto"


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/progression.db"

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class HistorySettings:
    """History ledger storage configuration.

    Attributes:
        table_name: SQLite table holding one row per history block.
        max_block_bytes: Serialized size ceiling for a single block, below a
            400 KB per-item limit.
        max_block_records: Maximum number of records in one block.
        revert_max_workers: Thread pool size for concurrent inverse writes.
    """

    table_name: str = "history_blocks"
    max_block_bytes: int = 380_000
    max_block_records: int = 1000
    revert_max_workers: int = 4


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class FeatureSettings:
    """Feature flags."""

    verbose_errors: bool = False


@dataclass
class ServerConfig:
    """
    Complete server configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    history: HistorySettings = field(default_factory=HistorySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    features: FeatureSettings = field(default_factory=FeatureSettings)

    @property
    def is_production(self) -> bool:
        """Convenience property for production mode check."""
        return self.security.production

    @property
    def docs_should_be_enabled(self) -> bool:
        """Determine if API docs should be enabled based on settings."""
        if self.security.docs_enabled == "enabled":
            return True
        if self.security.docs_enabled == "disabled":
            return False
        # "auto" - follow production setting
        return not self.is_production


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _choice(*allowed: str) -> Callable[[str], str | None]:
    """Lower-case parser that yields ``None`` (keep current value) for unknown choices."""

    def parse(value: str) -> str | None:
        value = value.lower()
        return value if value in allowed else None

    return parse


# (section, option, environment variable, parser). The section and option
# names match both the INI file and the dataclass attributes.
_OPTIONS: tuple[tuple[str, str, str | None, Callable[[str], Any]], ...] = (
    ("server", "host", "PROG_HOST", str),
    ("server", "port", "PROG_PORT", int),
    ("security", "production", "PROG_PRODUCTION", _parse_bool),
    ("security", "cors_origins", "PROG_CORS_ORIGINS", _parse_list),
    ("security", "cors_allow_credentials", None, _parse_bool),
    ("security", "docs_enabled", None, _choice("auto", "enabled", "disabled")),
    ("database", "path", "PROG_DB_PATH", str),
    ("history", "table_name", None, str),
    ("history", "max_block_bytes", "PROG_HISTORY_MAX_BLOCK_BYTES", int),
    ("history", "max_block_records", "PROG_HISTORY_MAX_BLOCK_RECORDS", int),
    ("history", "revert_max_workers", "PROG_HISTORY_REVERT_WORKERS", int),
    ("logging", "level", "PROG_LOG_LEVEL", str.upper),
    ("logging", "format", "PROG_LOG_FORMAT", _choice("simple", "detailed", "json")),
    ("features", "verbose_errors", None, _parse_bool),
)


def _set_option(cfg: ServerConfig, section: str, option: str, raw: str, parse: Callable) -> None:
    value = parse(raw)
    if value is not None:
        setattr(getattr(cfg, section), option, value)


def _load_from_ini(parser: configparser.ConfigParser, cfg: ServerConfig) -> None:
    """Load configuration from parsed INI file into ServerConfig."""
    for section, option, _env, parse in _OPTIONS:
        if parser.has_option(section, option):
            _set_option(cfg, section, option, parser.get(section, option), parse)


def _apply_env_overrides(cfg: ServerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    for section, option, env, parse in _OPTIONS:
        if env and (raw := os.getenv(env)):
            _set_option(cfg, section, option, raw, parse)


def load_config() -> ServerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/server.ini
        3. config/server.example.ini (fallback for development)
        4. Built-in defaults
    """
    cfg = ServerConfig()

    config_file = CONFIG_FILE if CONFIG_FILE.exists() else CONFIG_EXAMPLE
    if config_file.exists():
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

    Returns a dictionary with configuration source information,
    useful for debugging and the ``config`` CLI command.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "production_mode": config.is_production,
        "docs_enabled": config.docs_should_be_enabled,
        "max_block_bytes": config.history.max_block_bytes,
        "max_block_records": config.history.max_block_records,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    rows = [
        ("Config file", f"{status['config_file_path']} (exists: {status['config_file_exists']})"),
        ("Server", f"{config.server.host}:{config.server.port}"),
        ("Production", config.is_production),
        ("Docs enabled", status["docs_enabled"]),
        ("Database", config.database.absolute_path),
        ("History", f"table {config.history.table_name}"),
        ("  block cap:", f"{status['max_block_bytes']} bytes"),
        ("  records:", f"{status['max_block_records']} per block"),
        ("Log level", f"{config.logging.level} ({config.logging.format})"),
    ]
    print("\n" + "=" * 60)
    print("PROGRESSION SERVER CONFIGURATION")
    print("=" * 60)
    if status["using_example"]:
        print("WARNING: Using example config (copy to server.ini for production)")
    for label, value in rows:
        if not label.endswith(":"):
            label += ":"
        print(f"{label:<14}{value}")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


@contextmanager
def use_test_database(db_path: Path | str) -> Iterator[Path]:
    """Point ``config.database.path`` at ``db_path`` for the duration of the block.

    Usage:
        with use_test_database(tmp_path / "test.db"):
            schema.init_database()
    """
    path = Path(db_path)
    original_path = config.database.path
    config.database.path = str(path)
    try:
        yield path
    finally:
        config.database.path = original_path
