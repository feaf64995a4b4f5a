"""
Install engine.

install() is the whole migration algorithm:

1. Optionally take the installer lock
2. Read the stored version (initializing the version table on first use)
3. Begin one transaction
4. Run, in registration order, every step with min_version > stored version
5. Write the target version in the same transaction
6. Commit, or roll back and re-raise the original error (a refused commit
   is rolled back too)

Atomicity holds as far as the engine supports transactional DDL.
"""

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from pymigrate.config import get_config
from pymigrate.core.schema import MigrationStep, Schema
from pymigrate.engine.transaction import Transaction
from pymigrate.observability.logging import install_logging_context, step_logging_context
from pymigrate.observability.tracing import add_span_event, trace_install, trace_step
from pymigrate.storage.dialects import Dialect, detect_dialect
from pymigrate.storage.version import VersionStore


@dataclass
class InstallResult:
    """
    Outcome of a successful install run.

    Attributes:
        previous_version: Stored version when the run started
        target_version: Version written at the end of the run
        applied: Steps that ran, in order
    """

    previous_version: int
    target_version: int
    applied: list[MigrationStep] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied)


def install(
    schema: Schema,
    connection: Any,
    target_version: int,
    *,
    store: VersionStore | None = None,
    dialect: Dialect | None = None,
    lock: bool | None = None,
) -> InstallResult:
    """
    Apply pending migration steps and record `target_version`.

    The target version is written as given; it is not derived from the steps.
    Errors from the driver or from a step are re-raised unchanged. If rolling
    back after a failure also fails, the rollback error is logged and attached
    to the original exception (as a note and as ``rollback_error``).

    Args:
        schema: Steps to apply
        connection: DB-API connection owned by the caller
        target_version: Version to store after the steps ran
        store: Version store (None = VersionStore() with global config)
        dialect: Dialect (None = store's dialect, else detected from connection)
        lock: Take the installer lock (None = use config.lock)

    Returns:
        InstallResult describing the run

    Raises:
        ValueError: If target_version is not a non-negative integer

    Example:
        >>> schema = Schema()
        >>> schema.register(1, create_tables)
        >>> result = install(schema, sqlite3.connect("app.db"), 1)
        >>> result.applied_count
        1
    """
    if not isinstance(target_version, int) or isinstance(target_version, bool) or target_version < 0:
        raise ValueError(f"target_version must be a non-negative integer, got {target_version!r}")

    config = get_config()
    if dialect is None and store is not None:
        dialect = store.dialect
    if dialect is None:
        dialect = detect_dialect(connection)
    if store is None:
        store = VersionStore(dialect=dialect)
    use_lock = config.lock if lock is None else lock

    locked = dialect.acquire_lock(connection, config.lock_key) if use_lock else False

    try:
        with trace_install(target_version, steps=len(schema), dialect=dialect.name):
            result = _run(schema, connection, target_version, store, dialect)
    except BaseException as exc:
        if locked:
            _release_lock_after_failure(dialect, connection, config.lock_key, exc)
        raise

    if locked:
        dialect.release_lock(connection, config.lock_key)
    return result


def _run(
    schema: Schema,
    connection: Any,
    target_version: int,
    store: VersionStore,
    dialect: Dialect,
) -> InstallResult:
    current_version = store.get_version(connection)

    with install_logging_context(target_version, current_version=current_version):
        pending = schema.pending(current_version)
        logger.info(
            f"Installing schema version {target_version} "
            f"(stored {current_version}, {len(pending)} of {len(schema)} steps pending)"
        )

        transaction = Transaction.begin(connection, dialect)
        applied: list[MigrationStep] = []

        try:
            for step in schema:
                if not step.applies_to(current_version):
                    continue
                with step_logging_context(step.description), trace_step(
                    step.description, step.min_version
                ):
                    logger.debug(f"Applying step {step.description} (min {step.min_version})")
                    step.action(current_version, transaction)
                applied.append(step)

            store.set_version(transaction, target_version)
        except BaseException as exc:
            logger.error(
                f"Install of version {target_version} failed after {len(applied)} step(s): "
                f"{type(exc).__name__}: {exc}"
            )
            if applied and not dialect.transactional_ddl:
                logger.warning(
                    f"{dialect.name} commits DDL implicitly; schema changes from "
                    f"{len(applied)} step(s) may survive the rollback"
                )
            _rollback_after_failure(transaction, exc)
            raise

        try:
            transaction._commit()
        except BaseException as exc:
            logger.error(
                f"Commit of version {target_version} failed: {type(exc).__name__}: {exc}"
            )
            # sqlite3 keeps the transaction open when COMMIT is refused
            _rollback_after_failure(transaction, exc)
            raise

        add_span_event("committed", {"applied": len(applied)})
        logger.info(f"Schema at version {target_version} ({len(applied)} step(s) applied)")

    return InstallResult(
        previous_version=current_version,
        target_version=target_version,
        applied=applied,
    )


def _rollback_after_failure(transaction: Transaction, exc: BaseException) -> None:
    try:
        transaction._rollback()
    except Exception as rollback_exc:
        logger.opt(exception=rollback_exc).error(f"Rollback failed: {rollback_exc}")
        exc.add_note(f"Rollback also failed: {type(rollback_exc).__name__}: {rollback_exc}")
        exc.rollback_error = rollback_exc  # type: ignore[attr-defined]


def _release_lock_after_failure(
    dialect: Dialect, connection: Any, key: int, exc: BaseException
) -> None:
    try:
        dialect.release_lock(connection, key)
    except Exception as release_exc:
        logger.opt(exception=release_exc).error(f"Releasing installer lock failed: {release_exc}")
        exc.add_note(f"Releasing installer lock also failed: {release_exc}")
