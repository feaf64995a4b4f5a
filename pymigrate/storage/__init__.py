"""
Version storage and database dialects for pymigrate.
"""

from pymigrate.storage.dialects import (
    Dialect,
    MySQLDialect,
    PostgresDialect,
    SQLiteDialect,
    detect_dialect,
)
from pymigrate.storage.version import VersionStore

__all__ = [
    "VersionStore",
    "Dialect",
    "SQLiteDialect",
    "PostgresDialect",
    "MySQLDialect",
    "detect_dialect",
]
