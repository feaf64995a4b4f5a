"""
Unit tests for the install algorithm.

Uses a recording dialect and an in-memory version store so every database
interaction can be asserted on.
"""

import pytest

from pymigrate.config import DEFAULT_LOCK_KEY, configure
from pymigrate.core.exceptions import VersionRowError
from pymigrate.core.schema import Schema
from pymigrate.engine.installer import InstallResult, install
from pymigrate.storage.dialects import Dialect

CONNECTION = object()


class RecordingDialect(Dialect):
    name = "recording"

    def __init__(
        self,
        fail_begin=None,
        fail_commit=None,
        fail_rollback=None,
        fail_release=None,
        lockable=True,
        transactional_ddl=True,
    ):
        super().__init__()
        self.calls = []
        self.fail_begin = fail_begin
        self.fail_commit = fail_commit
        self.fail_rollback = fail_rollback
        self.fail_release = fail_release
        self.lockable = lockable
        self.transactional_ddl = transactional_ddl

    def begin(self, connection):
        self.calls.append("begin")
        if self.fail_begin:
            raise self.fail_begin

    def commit(self, connection):
        self.calls.append("commit")
        if self.fail_commit:
            raise self.fail_commit

    def rollback(self, connection):
        self.calls.append("rollback")
        if self.fail_rollback:
            raise self.fail_rollback

    def acquire_lock(self, connection, key):
        self.calls.append(("lock", key))
        return self.lockable

    def release_lock(self, connection, key):
        self.calls.append(("unlock", key))
        if self.fail_release:
            raise self.fail_release


class MemoryVersionStore:
    def __init__(self, version=0, read_error=None, write_error=None):
        self.dialect = None
        self.version = version
        self.read_error = read_error
        self.write_error = write_error
        self.writes = []

    def get_version(self, connection):
        if self.read_error:
            raise self.read_error
        return self.version

    def set_version(self, transaction, version):
        if self.write_error:
            raise self.write_error
        self.writes.append(version)


def recorder(log, name):
    def action(version, tx):
        log.append((name, version))

    action.__name__ = name
    return action


def failing(error):
    def action(version, tx):
        raise error

    return action


class TestInstallOrdering:
    """Test which steps run and in what order."""

    def test_registration_order_not_version_order(self):
        """Test [(1,A),(3,B),(2,C)] from 0 to 5 applies A, B, C then writes 5."""
        log = []
        schema = Schema()
        schema.register(1, recorder(log, "A"))
        schema.register(3, recorder(log, "B"))
        schema.register(2, recorder(log, "C"))
        store = MemoryVersionStore(version=0)
        dialect = RecordingDialect()

        result = install(schema, CONNECTION, 5, store=store, dialect=dialect)

        assert log == [("A", 0), ("B", 0), ("C", 0)]
        assert store.writes == [5]
        assert dialect.calls == ["begin", "commit"]
        assert isinstance(result, InstallResult)
        assert result.previous_version == 0
        assert result.target_version == 5
        assert [s.description for s in result.applied] == ["A", "B", "C"]

    def test_skips_steps_at_or_below_stored_version(self):
        """Test from version 2, [(1,A),(3,B)] to 3 applies only B."""
        log = []
        schema = Schema()
        schema.register(1, recorder(log, "A"))
        schema.register(3, recorder(log, "B"))
        store = MemoryVersionStore(version=2)

        result = install(schema, CONNECTION, 3, store=store, dialect=RecordingDialect())

        assert log == [("B", 2)]
        assert store.writes == [3]
        assert result.applied_count == 1

    def test_step_equal_to_version_is_skipped(self):
        log = []
        schema = Schema()
        schema.register(2, recorder(log, "A"))

        install(schema, CONNECTION, 2, store=MemoryVersionStore(version=2), dialect=RecordingDialect())

        assert log == []

    def test_actions_receive_pre_run_version_and_transaction(self):
        """Test every action sees the version read at the start of the run."""
        seen = []
        schema = Schema()
        schema.register(5, lambda version, tx: seen.append((version, tx)))
        schema.register(6, lambda version, tx: seen.append((version, tx)))

        install(schema, CONNECTION, 6, store=MemoryVersionStore(version=4), dialect=RecordingDialect())

        assert [version for version, _ in seen] == [4, 4]
        assert seen[0][1] is seen[1][1]
        assert seen[0][1].connection is CONNECTION

    @pytest.mark.parametrize("target", [0, 1, 3, 1000])
    def test_target_version_written_verbatim(self, target):
        """Test the stored version is the target, whatever the steps' versions."""
        schema = Schema()
        schema.register(3, lambda version, tx: None)
        store = MemoryVersionStore(version=0)

        install(schema, CONNECTION, target, store=store, dialect=RecordingDialect())

        assert store.writes == [target]

    def test_no_pending_steps_still_writes_version(self):
        """Test an up-to-date database gets the same version rewritten."""
        schema = Schema()
        schema.register(1, failing(AssertionError("must not run")))
        store = MemoryVersionStore(version=1)
        dialect = RecordingDialect()

        result = install(schema, CONNECTION, 1, store=store, dialect=dialect)

        assert result.applied == []
        assert store.writes == [1]
        assert dialect.calls == ["begin", "commit"]

    def test_empty_schema(self):
        store = MemoryVersionStore(version=0)

        install(Schema(), CONNECTION, 0, store=store, dialect=RecordingDialect())

        assert store.writes == [0]

    @pytest.mark.parametrize("target", [-1, 1.5, "3", None, True])
    def test_rejects_invalid_target(self, target):
        """Test target_version must be a non-negative int."""
        dialect = RecordingDialect()

        with pytest.raises(ValueError, match="non-negative integer"):
            install(Schema(), CONNECTION, target, store=MemoryVersionStore(), dialect=dialect)

        assert dialect.calls == []

    def test_schema_install_delegates(self):
        """Test Schema.install forwards to install()."""
        log = []
        schema = Schema()
        schema.register(1, recorder(log, "A"))
        store = MemoryVersionStore()

        result = schema.install(CONNECTION, 1, store=store, dialect=RecordingDialect())

        assert log == [("A", 0)]
        assert result.target_version == 1


class TestInstallFailures:
    """Test failure and rollback policy."""

    def test_step_failure_stops_and_rolls_back(self):
        """Test that a failing step aborts the run with its own exception."""
        log = []
        boom = RuntimeError("step B failed")
        schema = Schema()
        schema.register(1, recorder(log, "A"))
        schema.register(2, failing(boom))
        schema.register(3, recorder(log, "C"))
        store = MemoryVersionStore(version=0)
        dialect = RecordingDialect()

        with pytest.raises(RuntimeError) as exc_info:
            install(schema, CONNECTION, 3, store=store, dialect=dialect)

        assert exc_info.value is boom
        assert log == [("A", 0)]
        assert store.writes == []
        assert dialect.calls == ["begin", "rollback"]

    def test_version_read_failure_opens_no_transaction(self):
        error = ConnectionError("server unreachable")
        dialect = RecordingDialect()

        with pytest.raises(ConnectionError) as exc_info:
            install(Schema(), CONNECTION, 1, store=MemoryVersionStore(read_error=error), dialect=dialect)

        assert exc_info.value is error
        assert dialect.calls == []

    def test_begin_failure(self):
        log = []
        error = RuntimeError("cannot begin")
        schema = Schema()
        schema.register(1, recorder(log, "A"))
        store = MemoryVersionStore()
        dialect = RecordingDialect(fail_begin=error)

        with pytest.raises(RuntimeError) as exc_info:
            install(schema, CONNECTION, 1, store=store, dialect=dialect)

        assert exc_info.value is error
        assert log == []
        assert store.writes == []
        assert dialect.calls == ["begin"]

    def test_version_write_failure_rolls_back(self):
        error = VersionRowError("version", affected=0)
        store = MemoryVersionStore(write_error=error)
        dialect = RecordingDialect()

        with pytest.raises(VersionRowError) as exc_info:
            install(Schema(), CONNECTION, 1, store=store, dialect=dialect)

        assert exc_info.value is error
        assert dialect.calls == ["begin", "rollback"]

    def test_commit_failure_rolls_back(self):
        """Test a refused commit is rolled back and surfaced unchanged."""
        error = RuntimeError("commit failed")
        store = MemoryVersionStore()
        dialect = RecordingDialect(fail_commit=error)

        with pytest.raises(RuntimeError) as exc_info:
            install(Schema(), CONNECTION, 1, store=store, dialect=dialect)

        assert exc_info.value is error
        assert store.writes == [1]
        assert dialect.calls == ["begin", "commit", "rollback"]

    def test_commit_and_rollback_failure(self):
        """Test a rollback error after a refused commit is attached to the commit error."""
        error = RuntimeError("commit failed")
        rollback_error = OSError("connection lost")
        dialect = RecordingDialect(fail_commit=error, fail_rollback=rollback_error)

        with pytest.raises(RuntimeError) as exc_info:
            install(Schema(), CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect)

        assert exc_info.value is error
        assert error.rollback_error is rollback_error
        assert any("Rollback also failed" in note for note in error.__notes__)

    def test_commit_failure_releases_lock(self):
        dialect = RecordingDialect(fail_commit=RuntimeError("commit failed"))

        with pytest.raises(RuntimeError):
            install(Schema(), CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect, lock=True)

        assert dialect.calls[-3:] == ["commit", "rollback", ("unlock", DEFAULT_LOCK_KEY)]

    def test_rollback_failure_is_attached(self, log_records):
        """Test a rollback error is logged and attached, not raised in place of the original."""
        boom = RuntimeError("step failed")
        rollback_error = OSError("connection lost")
        schema = Schema()
        schema.register(1, failing(boom))
        dialect = RecordingDialect(fail_rollback=rollback_error)

        with pytest.raises(RuntimeError) as exc_info:
            install(schema, CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect)

        assert exc_info.value is boom
        assert boom.rollback_error is rollback_error
        assert any("Rollback also failed" in note for note in boom.__notes__)
        assert any(
            r["level"].name == "ERROR" and "Rollback failed" in r["message"] for r in log_records
        )

    def test_keyboard_interrupt_rolls_back(self):
        schema = Schema()
        schema.register(1, failing(KeyboardInterrupt()))
        dialect = RecordingDialect()

        with pytest.raises(KeyboardInterrupt):
            install(schema, CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect)

        assert dialect.calls == ["begin", "rollback"]

    def test_non_transactional_ddl_warning(self, log_records):
        """Test engines without transactional DDL warn when a run fails after steps ran."""
        schema = Schema()
        schema.register(1, lambda version, tx: None)
        schema.register(2, failing(RuntimeError("nope")))
        dialect = RecordingDialect(transactional_ddl=False)

        with pytest.raises(RuntimeError):
            install(schema, CONNECTION, 2, store=MemoryVersionStore(), dialect=dialect)

        assert any(
            r["level"].name == "WARNING" and "may survive the rollback" in r["message"]
            for r in log_records
        )


class TestInstallLock:
    """Test the optional installer lock."""

    def test_no_lock_by_default(self):
        dialect = RecordingDialect()

        install(Schema(), CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect)

        assert dialect.calls == ["begin", "commit"]

    def test_lock_wraps_the_run(self):
        """Test the lock is taken before the read and released after commit."""
        dialect = RecordingDialect()

        install(Schema(), CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect, lock=True)

        assert dialect.calls == [
            ("lock", DEFAULT_LOCK_KEY),
            "begin",
            "commit",
            ("unlock", DEFAULT_LOCK_KEY),
        ]

    def test_lock_from_config(self):
        configure(lock=True, lock_key=99)
        dialect = RecordingDialect()

        install(Schema(), CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect)

        assert dialect.calls[0] == ("lock", 99)
        assert dialect.calls[-1] == ("unlock", 99)

    def test_explicit_lock_false_overrides_config(self):
        configure(lock=True)
        dialect = RecordingDialect()

        install(Schema(), CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect, lock=False)

        assert dialect.calls == ["begin", "commit"]

    def test_lock_released_after_failure(self):
        schema = Schema()
        schema.register(1, failing(RuntimeError("nope")))
        dialect = RecordingDialect()

        with pytest.raises(RuntimeError):
            install(schema, CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect, lock=True)

        assert dialect.calls[-2:] == ["rollback", ("unlock", DEFAULT_LOCK_KEY)]

    def test_lock_released_after_read_failure(self):
        dialect = RecordingDialect()
        store = MemoryVersionStore(read_error=ConnectionError("gone"))

        with pytest.raises(ConnectionError):
            install(Schema(), CONNECTION, 1, store=store, dialect=dialect, lock=True)

        assert dialect.calls == [("lock", DEFAULT_LOCK_KEY), ("unlock", DEFAULT_LOCK_KEY)]

    def test_release_failure_after_failure_is_attached(self):
        boom = RuntimeError("step failed")
        schema = Schema()
        schema.register(1, failing(boom))
        dialect = RecordingDialect(fail_release=OSError("unlock failed"))

        with pytest.raises(RuntimeError) as exc_info:
            install(schema, CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect, lock=True)

        assert exc_info.value is boom
        assert any("installer lock" in note for note in boom.__notes__)

    def test_dialect_without_lock_is_not_released(self):
        dialect = RecordingDialect(lockable=False)

        install(Schema(), CONNECTION, 1, store=MemoryVersionStore(), dialect=dialect, lock=True)

        assert dialect.calls == [("lock", DEFAULT_LOCK_KEY), "begin", "commit"]
