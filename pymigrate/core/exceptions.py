"""
Exception classes for pymigrate.

Failures raised by the database driver or by a migration step are never
wrapped: ``install()`` re-raises them unchanged. The classes below cover the
errors pymigrate itself detects.
"""


class PyMigrateError(Exception):
    """Base exception for all pymigrate errors."""

    pass


class ConfigurationError(PyMigrateError):
    """Invalid configuration, e.g. an unsafe version table name."""

    pass


class VersionRowError(PyMigrateError):
    """
    The version update did not touch exactly one row.

    Raised when the version table was emptied or duplicated behind pymigrate's
    back, which would otherwise turn the update into a silent no-op.

    Attributes:
        table: Name of the version table.
        expected: Number of rows the update should have affected (always 1).
        affected: Number of rows the driver reported.
    """

    def __init__(self, table: str, affected: int, expected: int = 1) -> None:
        super().__init__(
            f"Updating {table!r} affected {affected} row(s), expected {expected}. "
            f"The version table must hold exactly one row."
        )
        self.table = table
        self.expected = expected
        self.affected = affected


class TransactionClosedError(PyMigrateError):
    """A statement was issued through a transaction that already ended."""

    pass
