"""
Schema version bookkeeping.

The version lives in a single-row, single-column table (``version`` by
default). A database without the table, or with an empty table, is at
version 0 and is initialized on first read.
"""

from typing import TYPE_CHECKING, Any

from loguru import logger

from pymigrate.config import get_config, validate_table_name
from pymigrate.core.exceptions import VersionRowError
from pymigrate.storage.dialects import Dialect, detect_dialect

if TYPE_CHECKING:
    from pymigrate.engine.transaction import Transaction


class VersionStore:
    """
    Reads, initializes and updates the stored schema version.

    Settings left as None are taken from the global configuration when the
    store is created.

    Args:
        table: Version table name
        dialect: Dialect to use (None = detect from the connection)
        strict_missing_table: Only initialize when the table does not exist
        verify_version_row: Require the version update to affect exactly one row
    """

    def __init__(
        self,
        table: str | None = None,
        dialect: Dialect | None = None,
        strict_missing_table: bool | None = None,
        verify_version_row: bool | None = None,
    ) -> None:
        config = get_config()
        self.table = validate_table_name(table if table is not None else config.version_table)
        self.dialect = dialect
        self.strict_missing_table = (
            config.strict_missing_table if strict_missing_table is None else strict_missing_table
        )
        self.verify_version_row = (
            config.verify_version_row if verify_version_row is None else verify_version_row
        )

    def _dialect_for(self, connection: Any) -> Dialect:
        return self.dialect if self.dialect is not None else detect_dialect(connection)

    def get_version(self, connection: Any) -> int:
        """
        Read the stored schema version, initializing the table if needed.

        Initialization runs outside any install transaction and is committed
        immediately.

        Args:
            connection: DB-API connection

        Returns:
            Current schema version (0 for a fresh database)

        Raises:
            Exception: Read errors other than a missing table (unless
                strict_missing_table is off), and any initialization error
        """
        dialect = self._dialect_for(connection)

        try:
            cursor = dialect.execute(connection, f"SELECT version FROM {self.table}")
            row = cursor.fetchone()
            cursor.close()
        except Exception as e:
            if self.strict_missing_table and not dialect.is_missing_table(e):
                raise
            logger.info(f"Version table {self.table!r} not readable ({e}), creating it")
            # Some engines abort the implicit transaction on a failed statement
            connection.rollback()
            self._initialize(connection, dialect, create_table=True)
            return 0

        if row is None:
            logger.info(f"Version table {self.table!r} is empty, initializing at version 0")
            self._initialize(connection, dialect, create_table=False)
            return 0

        version = int(row[0])
        logger.debug(f"Stored schema version is {version}")
        return version

    def _initialize(self, connection: Any, dialect: Dialect, create_table: bool) -> None:
        try:
            if create_table:
                dialect.execute(connection, f"CREATE TABLE {self.table} (version INT)").close()
            dialect.execute(connection, f"INSERT INTO {self.table} (version) VALUES (0)").close()
            connection.commit()
        except Exception as e:
            logger.error(f"Initializing version table {self.table!r} failed: {e}")
            try:
                connection.rollback()
            except Exception as rollback_exc:
                logger.opt(exception=rollback_exc).error(f"Rollback failed: {rollback_exc}")
                e.add_note(f"Rollback also failed: {type(rollback_exc).__name__}: {rollback_exc}")
            raise

    def set_version(self, transaction: "Transaction", version: int) -> None:
        """
        Write a new schema version inside the install transaction.

        Args:
            transaction: Open install transaction
            version: Version to store

        Raises:
            VersionRowError: If verification is on and the driver reports a
                row count other than 1
        """
        placeholder = transaction.placeholder("version")
        cursor = transaction.execute(
            f"UPDATE {self.table} SET version = {placeholder}",
            transaction.params(version, "version"),
        )
        affected = cursor.rowcount
        cursor.close()

        # -1 means the driver cannot tell
        if self.verify_version_row and affected is not None and affected >= 0 and affected != 1:
            raise VersionRowError(self.table, affected)

        logger.debug(f"Schema version set to {version}")
