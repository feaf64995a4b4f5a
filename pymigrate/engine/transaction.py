"""
Transaction handle passed to migration steps.

Wraps the caller's DB-API connection for the duration of one install run.
Steps issue their DDL/DML through it; install() alone decides whether the
transaction commits or rolls back. The handle has no public commit or
rollback, and steps must not call them on the raw connection either: that
would persist part of the run ahead of the version write.
"""

from typing import Any, Iterable

from loguru import logger

from pymigrate.core.exceptions import TransactionClosedError
from pymigrate.storage.dialects import Dialect


class Transaction:
    """
    An open install transaction.

    Attributes:
        connection: The caller's DB-API connection
        dialect: Dialect used to begin/commit/roll back and format parameters
        active: False once install() has committed or rolled back

    Example:
        def add_users(version: int, tx: Transaction) -> None:
            tx.execute("CREATE TABLE users (id INTEGER PRIMARY KEY)")
            tx.execute(f"INSERT INTO users (id) VALUES ({tx.placeholder('id')})", tx.params(1, "id"))
    """

    def __init__(self, connection: Any, dialect: Dialect) -> None:
        self.connection = connection
        self.dialect = dialect
        self._active = False

    @classmethod
    def begin(cls, connection: Any, dialect: Dialect) -> "Transaction":
        """Open a transaction on the connection."""
        transaction = cls(connection, dialect)
        dialect.begin(connection)
        transaction._active = True
        logger.debug(f"Transaction started ({dialect.name})")
        return transaction

    @property
    def active(self) -> bool:
        return self._active

    def _check_active(self) -> None:
        if not self._active:
            raise TransactionClosedError("Transaction has already been committed or rolled back")

    def cursor(self) -> Any:
        """Return a new cursor on the underlying connection."""
        self._check_active()
        return self.connection.cursor()

    def execute(self, sql: str, params: Any = None) -> Any:
        """
        Execute a statement inside the transaction.

        Args:
            sql: Statement, using the driver's placeholder style
            params: Optional bind parameters

        Returns:
            The cursor the statement ran on (rowcount, fetch* available)
        """
        self._check_active()
        return self.dialect.execute(self.connection, sql, params)

    def executemany(self, sql: str, seq_of_params: Iterable[Any]) -> Any:
        self._check_active()
        cursor = self.connection.cursor()
        cursor.executemany(sql, seq_of_params)
        return cursor

    def placeholder(self, name: str = "value") -> str:
        """Bind placeholder for the connection's driver."""
        return self.dialect.placeholder(name)

    def params(self, value: Any, name: str = "value") -> Any:
        """Bind parameters matching placeholder(name)."""
        return self.dialect.params(value, name)

    # Ending the transaction belongs to install(), not to steps

    def _commit(self) -> None:
        self._check_active()
        # A failed commit still closes the handle; install() then calls _rollback()
        self._active = False
        self.dialect.commit(self.connection)
        logger.debug("Transaction committed")

    def _rollback(self) -> None:
        # Allowed on a closed handle: a failed commit can leave the driver's transaction open
        self._active = False
        self.dialect.rollback(self.connection)
        logger.debug("Transaction rolled back")

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"<Transaction {self.dialect.name} {state}>"
