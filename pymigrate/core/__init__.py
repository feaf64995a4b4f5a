"""
Core types: migration steps, the Schema builder and exceptions.
"""

from pymigrate.core.exceptions import (
    ConfigurationError,
    PyMigrateError,
    TransactionClosedError,
    VersionRowError,
)
from pymigrate.core.schema import MigrationStep, Schema

__all__ = [
    "MigrationStep",
    "Schema",
    "PyMigrateError",
    "ConfigurationError",
    "TransactionClosedError",
    "VersionRowError",
]
