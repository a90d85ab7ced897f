"""Repository settings, operation names and the execution envelope.

Every call into a store adapter goes through :func:`run_bounded`:

1. the effective timeout is the builder override when non-zero, otherwise
   the per-operation default from :class:`RepositorySettings`;
2. the call runs inside an :class:`~storekit.cancellation.OperationScope`
   combining that timeout with the caller's cancellation token;
3. domain errors pass through untouched, anything else is wrapped with the
   original exception as the cause.
"""

from enum import Enum

import typing as t
from collections.abc import Awaitable, Callable
from pydantic import Field
from pydantic_settings import SettingsConfigDict

from storekit.adapters import IsolationLevel
from storekit.cancellation import CancellationToken, OperationScope
from storekit.config import Settings
from storekit.errors import (
    OperationTimeoutOrCancelledError,
    RepositoryError,
    StoreFaultError,
)
from storekit.logger import get_logger

logger = get_logger(__name__)


class Operation(Enum):
    EXISTS = "exists"
    COUNT = "count"
    GET_BY_ID = "get_by_id"
    GET_SINGLE = "get_single"
    GET_RANGE = "get_range"
    GET_RANGE_ENTIRE = "get_range_entire"
    ADD = "add"
    ADD_RANGE = "add_range"
    REMOVE = "remove"
    REMOVE_RANGE = "remove_range"
    UPDATE = "update"
    UPDATE_RANGE = "update_range"
    RESTORE = "restore"
    RESTORE_RANGE = "restore_range"
    SAVE_CHANGES = "save_changes"
    BEGIN_TRANSACTION = "begin_transaction"
    COMMIT = "commit"
    ROLLBACK = "rollback"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS: dict[Operation, str] = {
    Operation.EXISTS: "check the existence of",
    Operation.COUNT: "count",
    Operation.GET_BY_ID: "get by identifier",
    Operation.GET_SINGLE: "get a single",
    Operation.GET_RANGE: "get a range of",
    Operation.GET_RANGE_ENTIRE: "get a counted range of",
    Operation.ADD: "add",
    Operation.ADD_RANGE: "add a range of",
    Operation.REMOVE: "remove",
    Operation.REMOVE_RANGE: "remove a range of",
    Operation.UPDATE: "update",
    Operation.UPDATE_RANGE: "update a range of",
    Operation.RESTORE: "restore",
    Operation.RESTORE_RANGE: "restore a range of",
    Operation.SAVE_CHANGES: "save changes of",
    Operation.BEGIN_TRANSACTION: "begin a transaction for",
    Operation.COMMIT: "commit a transaction for",
    Operation.ROLLBACK: "roll back a transaction for",
}


class RepositorySettings(Settings):
    """Per-operation default timeouts in seconds and transaction defaults."""

    model_config = SettingsConfigDict(env_prefix="STOREKIT_REPOSITORY_")

    config_name: t.ClassVar[str | None] = "repository"

    exists_timeout: float = Field(default=10.0, gt=0)
    count_timeout: float = Field(default=20.0, gt=0)
    get_by_id_timeout: float = Field(default=20.0, gt=0)
    get_single_timeout: float = Field(default=20.0, gt=0)
    get_range_timeout: float = Field(default=20.0, gt=0)
    get_range_entire_timeout: float = Field(default=20.0, gt=0)
    add_timeout: float = Field(default=20.0, gt=0)
    add_range_timeout: float = Field(default=20.0, gt=0)
    remove_timeout: float = Field(default=20.0, gt=0)
    remove_range_timeout: float = Field(default=40.0, gt=0)
    update_timeout: float = Field(default=20.0, gt=0)
    update_range_timeout: float = Field(default=40.0, gt=0)
    restore_timeout: float = Field(default=20.0, gt=0)
    restore_range_timeout: float = Field(default=40.0, gt=0)
    save_changes_timeout: float = Field(default=30.0, gt=0)
    begin_transaction_timeout: float = Field(default=20.0, gt=0)

    transaction_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for commit and rollback",
    )
    isolation_level: IsolationLevel | None = Field(
        default=None,
        description="Isolation level for new transactions; None uses the store default",
    )

    def timeout_for(self, operation: Operation) -> float:
        if operation in (Operation.COMMIT, Operation.ROLLBACK):
            return self.transaction_timeout
        return float(getattr(self, f"{operation.value}_timeout"))


async def run_bounded[T](
    action: Callable[[], Awaitable[T]],
    *,
    operation: Operation,
    entity_type: str,
    settings: RepositorySettings,
    timeout: float = 0.0,
    cancellation: CancellationToken | None = None,
    fault: Callable[[str], RepositoryError] | None = None,
) -> T:
    """Run one adapter call under the timeout/cancellation envelope.

    Args:
        action: Zero-argument coroutine factory doing the adapter work.
        operation: Operation name, selects the default timeout.
        entity_type: Record type name for messages and errors.
        settings: Source of default timeouts.
        timeout: Builder override; ``0`` means use the default.
        cancellation: Caller's cancellation token.
        fault: Builds the wrapping error from a message; defaults to
            :class:`StoreFaultError`.

    Raises:
        OperationTimeoutOrCancelledError: The deadline passed or the token fired.
        RepositoryError: Domain errors raised by ``action`` unchanged.
        StoreFaultError: Any other failure, chained to the original exception.
    """
    effective = timeout or settings.timeout_for(operation)
    logger.debug(f"{operation.value} {entity_type} (timeout {effective:g}s)")
    try:
        with OperationScope(
            effective,
            cancellation,
            operation=operation.value,
            entity_type=entity_type,
        ):
            return await action()
    except OperationTimeoutOrCancelledError:
        logger.warning(f"{operation.value} {entity_type} cancelled or timed out")
        raise
    except RepositoryError:
        raise
    except Exception as e:
        logger.error(f"{operation.value} {entity_type} failed: {e}")
        msg = (
            f"An error occurred while attempting to {operation.description} "
            f"{entity_type}: {e}"
        )
        if fault is not None:
            raise fault(msg) from e
        raise StoreFaultError(
            msg,
            entity_type=entity_type,
            operation=operation.value,
        ) from e
