"""
Schema definition: an ordered list of migration steps.

A Schema is built once, at startup, by the application that owns the
database. Each step pairs a minimum version with an action. On install, every
step whose minimum version is greater than the stored version runs, in the
order the steps were registered.

Registration order is the contract. Steps are never sorted by min_version;
register them in the order their changes depend on each other.

Usage:
    >>> schema = Schema()
    >>>
    >>> @schema.step(1)
    >>> def create_users(version, tx):
    >>>     tx.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)")
    >>>
    >>> schema.register(2, lambda version, tx: tx.execute(
    ...     "ALTER TABLE users ADD COLUMN email TEXT"))
    >>>
    >>> schema.install(connection, 2)
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterator

if TYPE_CHECKING:
    from pymigrate.engine.installer import InstallResult
    from pymigrate.engine.transaction import Transaction

StepAction = Callable[[int, "Transaction"], Any]


@dataclass(frozen=True)
class MigrationStep:
    """
    A unit of schema-changing work gated by a minimum version.

    Attributes:
        min_version: The step runs when the stored version is lower than this
        action: Called with (version at start of run, transaction); raising
            aborts the whole install run
        description: Name used in logs and spans (defaults to the action's name)
    """

    min_version: int
    action: StepAction
    description: str = ""

    def __post_init__(self) -> None:
        if not callable(self.action):
            raise TypeError(f"Migration step action must be callable, got {self.action!r}")
        if not self.description:
            name = getattr(self.action, "__name__", None) or repr(self.action)
            object.__setattr__(self, "description", name)

    def applies_to(self, version: int) -> bool:
        """Return True if this step runs against a database at `version`."""
        return self.min_version > version


class Schema:
    """
    Ordered, append-only collection of migration steps.

    Duplicate or out-of-order min_versions are accepted as given.
    """

    def __init__(self) -> None:
        self._steps: list[MigrationStep] = []

    def register(
        self, min_version: int, action: StepAction, description: str | None = None
    ) -> MigrationStep:
        """
        Append a migration step.

        Args:
            min_version: Step runs if the stored version is below this value
            action: Callable receiving (current_version, transaction)
            description: Optional name for logs

        Returns:
            The registered step
        """
        step = MigrationStep(min_version=min_version, action=action, description=description or "")
        self._steps.append(step)
        return step

    # Alias
    update = register

    def step(
        self, min_version: int, description: str | None = None
    ) -> Callable[[StepAction], StepAction]:
        """
        Decorator form of register().

        Example:
            >>> @schema.step(3)
            >>> def add_index(version, tx):
            >>>     tx.execute("CREATE INDEX idx_users_name ON users(name)")
        """

        def decorator(action: StepAction) -> StepAction:
            self.register(min_version, action, description)
            return action

        return decorator

    @property
    def steps(self) -> tuple[MigrationStep, ...]:
        """Registered steps, in registration order."""
        return tuple(self._steps)

    def pending(self, version: int) -> list[MigrationStep]:
        """
        Get the steps an install run would apply from `version`.

        Args:
            version: Stored schema version

        Returns:
            Steps with min_version > version, in registration order
        """
        return [step for step in self._steps if step.applies_to(version)]

    def install(self, connection: Any, target_version: int, **kwargs: Any) -> "InstallResult":
        """
        Bring the database to `target_version`. See pymigrate.engine.installer.install().
        """
        from pymigrate.engine.installer import install

        return install(self, connection, target_version, **kwargs)

    def __iter__(self) -> Iterator[MigrationStep]:
        return iter(tuple(self._steps))

    def __len__(self) -> int:
        return len(self._steps)

    def __repr__(self) -> str:
        return f"<Schema steps={len(self._steps)}>"
