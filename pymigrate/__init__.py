"""
pymigrate - Ordered, versioned schema migrations for DB-API databases

Applies schema changes at application startup. The current schema version is
kept in a single-row table; every registered step whose minimum version is
above the stored version runs, in registration order, inside one transaction
that also records the new version.

Quick Start:
    >>> import sqlite3
    >>> from pymigrate import Schema
    >>>
    >>> schema = Schema()
    >>>
    >>> @schema.step(1)
    >>> def create_users(version, tx):
    >>>     tx.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)")
    >>>
    >>> @schema.step(2)
    >>> def add_email(version, tx):
    >>>     tx.execute("ALTER TABLE users ADD COLUMN email TEXT")
    >>>
    >>> # Run on startup
    >>> schema.install(sqlite3.connect("app.db"), 2)
"""

__version__ = "0.1.0"

# Configuration
from pymigrate.config import PyMigrateConfig, configure, get_config, reset_config

# Core types
from pymigrate.core.schema import MigrationStep, Schema

# Install engine
from pymigrate.engine.installer import InstallResult, install
from pymigrate.engine.transaction import Transaction

# Version storage
from pymigrate.storage.dialects import (
    Dialect,
    MySQLDialect,
    PostgresDialect,
    SQLiteDialect,
    detect_dialect,
)
from pymigrate.storage.version import VersionStore

# Exceptions
from pymigrate.core.exceptions import (
    ConfigurationError,
    PyMigrateError,
    TransactionClosedError,
    VersionRowError,
)

# Logging
from pymigrate.observability.logging import configure_logging, configure_logging_from_env

__all__ = [
    # Version
    "__version__",
    # Configuration
    "PyMigrateConfig",
    "configure",
    "get_config",
    "reset_config",
    # Core
    "MigrationStep",
    "Schema",
    "InstallResult",
    "Transaction",
    "install",
    # Storage
    "VersionStore",
    "Dialect",
    "SQLiteDialect",
    "PostgresDialect",
    "MySQLDialect",
    "detect_dialect",
    # Exceptions
    "PyMigrateError",
    "ConfigurationError",
    "TransactionClosedError",
    "VersionRowError",
    # Logging
    "configure_logging",
    "configure_logging_from_env",
]
