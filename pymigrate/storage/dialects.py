"""
Database dialects.

A dialect holds the per-engine knowledge pymigrate needs on top of a plain
DB-API 2.0 connection:

- Parameter placeholder style for the version update
- How to open, commit and roll back the install transaction
- How to recognize a "table does not exist" error
- An optional installer lock for concurrent deployments

Use detect_dialect() to pick one from a connection object.
"""

import re
import sqlite3
import sys
from typing import Any

from loguru import logger

# Wording of the common engines; "column ... does not exist" must not match
_MISSING_TABLE = re.compile(
    r"no such table"
    r"|\b(?:relation|table) \S+ (?:does not|doesn't) exist"
    r"|undefined table"
    r"|invalid object name",
    re.IGNORECASE,
)


def _is_autocommit(connection: Any) -> bool:
    # sqlite3 reports LEGACY_TRANSACTION_CONTROL (-1) here, which is not True
    return getattr(connection, "autocommit", False) is True


class Dialect:
    """
    Generic DB-API 2.0 dialect.

    Transactions are implicit: the driver opens one with the first statement
    and commit()/rollback() close it. Connections in autocommit mode get
    explicit BEGIN/COMMIT/ROLLBACK statements instead.

    Attributes:
        name: Dialect name used in logs
        paramstyle: PEP 249 paramstyle of the driver
        transactional_ddl: Whether DDL can be rolled back on this engine
    """

    name = "generic"
    paramstyle = "qmark"
    transactional_ddl = True

    def __init__(self, paramstyle: str | None = None) -> None:
        if paramstyle is not None:
            self.paramstyle = paramstyle

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} paramstyle={self.paramstyle}>"

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def placeholder(self, name: str = "version") -> str:
        """Return the bind placeholder for a single parameter."""
        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle == "format":
            return "%s"
        if self.paramstyle == "pyformat":
            return f"%({name})s"
        if self.paramstyle == "numeric":
            return ":1"
        if self.paramstyle == "named":
            return f":{name}"
        raise ValueError(f"Unsupported paramstyle: {self.paramstyle}")

    def params(self, value: Any, name: str = "version") -> tuple[Any, ...] | dict[str, Any]:
        """Return bind parameters matching placeholder()."""
        if self.paramstyle in ("pyformat", "named"):
            return {name: value}
        return (value,)

    def execute(self, connection: Any, sql: str, params: Any = None) -> Any:
        """Execute a statement on a fresh cursor and return the cursor."""
        cursor = connection.cursor()
        if params is None:
            cursor.execute(sql)
        else:
            cursor.execute(sql, params)
        return cursor

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def begin(self, connection: Any) -> None:
        if _is_autocommit(connection):
            self.execute(connection, "BEGIN").close()

    def commit(self, connection: Any) -> None:
        if _is_autocommit(connection):
            self.execute(connection, "COMMIT").close()
        else:
            connection.commit()

    def rollback(self, connection: Any) -> None:
        if _is_autocommit(connection):
            self.execute(connection, "ROLLBACK").close()
        else:
            connection.rollback()

    # -------------------------------------------------------------------------
    # Errors
    # -------------------------------------------------------------------------

    def is_missing_table(self, exc: BaseException) -> bool:
        """Return True if exc means the queried table does not exist."""
        return _MISSING_TABLE.search(str(exc)) is not None

    # -------------------------------------------------------------------------
    # Installer lock
    # -------------------------------------------------------------------------

    def acquire_lock(self, connection: Any, key: int) -> bool:
        """
        Block until the installer lock is held.

        Returns:
            True if a lock was taken, False if the dialect has none
        """
        logger.warning(
            f"Dialect {self.name!r} has no installer lock, continuing without one"
        )
        return False

    def release_lock(self, connection: Any, key: int) -> None:
        pass


class SQLiteDialect(Dialect):
    """
    Dialect for the standard library sqlite3 driver.

    The sqlite3 module only opens implicit transactions before DML, so DDL run
    by migration steps would escape the transaction. The install transaction is
    therefore always opened with an explicit BEGIN.
    """

    name = "sqlite"
    paramstyle = "qmark"

    def begin(self, connection: Any) -> None:
        # autocommit=False connections (Python 3.12+) are always in a transaction
        if not connection.in_transaction:
            connection.execute("BEGIN")

    def is_missing_table(self, exc: BaseException) -> bool:
        return isinstance(exc, sqlite3.OperationalError) and "no such table" in str(exc)

    def acquire_lock(self, connection: Any, key: int) -> bool:
        # SQLite serializes writers on the database file; the version read
        # happens before BEGIN so it cannot be covered by that lock.
        logger.warning(
            "SQLite has no installer lock; concurrent installers are serialized "
            "only by the database file lock"
        )
        return False


class PostgresDialect(Dialect):
    """
    Dialect for PostgreSQL drivers (psycopg, psycopg2, pg8000).

    DDL is transactional, so a failed run leaves no trace. The installer lock
    is a session-level advisory lock, which survives the rollback of the
    install transaction and is released explicitly afterwards.
    """

    name = "postgresql"
    paramstyle = "format"

    UNDEFINED_TABLE = "42P01"

    def is_missing_table(self, exc: BaseException) -> bool:
        code = getattr(exc, "pgcode", None) or getattr(exc, "sqlstate", None)
        if code is None and exc.args and isinstance(exc.args[0], dict):
            # pg8000 passes the server's error fields as a dict
            code = exc.args[0].get("C")
        if code is not None:
            return code == self.UNDEFINED_TABLE
        return super().is_missing_table(exc)

    def acquire_lock(self, connection: Any, key: int) -> bool:
        logger.debug(f"Waiting for advisory lock {key}")
        self.execute(connection, "SELECT pg_advisory_lock(%s)", (key,)).close()
        logger.debug(f"Advisory lock {key} acquired")
        return True

    def release_lock(self, connection: Any, key: int) -> None:
        self.execute(connection, "SELECT pg_advisory_unlock(%s)", (key,)).close()
        if not _is_autocommit(connection):
            connection.commit()
        logger.debug(f"Advisory lock {key} released")


class MySQLDialect(Dialect):
    """
    Dialect for MySQL/MariaDB drivers (PyMySQL, mysqlclient, mysql-connector).

    MySQL commits DDL implicitly, so a failed run can leave earlier steps'
    schema changes behind. This is a known limitation of the engine.
    """

    name = "mysql"
    paramstyle = "format"
    transactional_ddl = False

    NO_SUCH_TABLE = 1146

    def is_missing_table(self, exc: BaseException) -> bool:
        errno = getattr(exc, "errno", None)
        if errno is None and exc.args and isinstance(exc.args[0], int):
            errno = exc.args[0]
        if errno is not None:
            return errno == self.NO_SUCH_TABLE
        return super().is_missing_table(exc)

    def acquire_lock(self, connection: Any, key: int) -> bool:
        logger.debug(f"Waiting for named lock pymigrate_{key}")
        self.execute(connection, "SELECT GET_LOCK(%s, -1)", (f"pymigrate_{key}",)).close()
        return True

    def release_lock(self, connection: Any, key: int) -> None:
        self.execute(connection, "SELECT RELEASE_LOCK(%s)", (f"pymigrate_{key}",)).close()


_DRIVER_DIALECTS: dict[str, type[Dialect]] = {
    "sqlite3": SQLiteDialect,
    "psycopg": PostgresDialect,
    "psycopg2": PostgresDialect,
    "pg8000": PostgresDialect,
    "pymysql": MySQLDialect,
    "MySQLdb": MySQLDialect,
    "mysql": MySQLDialect,
}


def detect_dialect(connection: Any) -> Dialect:
    """
    Pick a dialect from the module that defines the connection's class.

    Unknown drivers get the generic dialect with the driver's declared
    paramstyle.

    Example:
        >>> import sqlite3
        >>> detect_dialect(sqlite3.connect(":memory:"))
        <SQLiteDialect paramstyle=qmark>
    """
    driver = type(connection).__module__.split(".")[0]
    dialect_class = _DRIVER_DIALECTS.get(driver)
    if dialect_class is not None:
        return dialect_class()

    driver_module = sys.modules.get(driver)
    paramstyle = getattr(driver_module, "paramstyle", None)
    logger.debug(f"No dialect for driver {driver!r}, using generic ({paramstyle or 'qmark'})")
    return Dialect(paramstyle=paramstyle)
