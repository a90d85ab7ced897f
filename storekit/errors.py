"""Domain error taxonomy for repository operations.

Every public repository operation either returns a result or raises one of
the exceptions below. Backend exceptions never cross the repository boundary
unwrapped; the original fault is always kept as ``__cause__``.
"""

CANCELLED_MESSAGE = (
    "The operation was cancelled due to waiting too long for completion "
    "or due to manual cancellation"
)


class RepositoryError(Exception):
    """Base exception for repository operations."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(message)


class ConfigurationError(RepositoryError, ValueError):
    """Raised when a builder receives invalid input.

    Raised synchronously while the builder is being configured and never
    wrapped by the repository envelope.
    """


class OperationTimeoutOrCancelledError(RepositoryError):
    """Raised when the timeout or the caller's cancellation token fired."""

    def __init__(
        self,
        message: str = CANCELLED_MESSAGE,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message, entity_type=entity_type, operation=operation)


class StoreFaultError(RepositoryError):
    """Raised when the store adapter failed (connectivity, constraints, translation)."""


class InvalidStrategyError(RepositoryError):
    """Raised when a command reaches execution without a resolvable target."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
        strategy: object | None = None,
    ) -> None:
        super().__init__(message, entity_type=entity_type, operation=operation)
        self.strategy = strategy


class UnitOfWorkError(StoreFaultError):
    """Raised when a commit, rollback or flush could not be completed."""

    def __init__(
        self,
        message: str,
        transaction_id: str | None = None,
        state: object | None = None,
    ) -> None:
        super().__init__(message, operation="unit_of_work")
        self.transaction_id = transaction_id
        self.state = state
