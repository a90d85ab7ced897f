"""Unit of work and transactions.

``UnitOfWork.save_changes`` flushes everything staged through the
repositories sharing an adapter. ``TransactionFactory`` opens backend
transactions and wraps them in a :class:`DatabaseTransaction` handle that
tracks its state and rolls back when abandoned inside ``async with``.
"""

import uuid
from enum import Enum

import typing as t
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

import anyio

from storekit.adapters import IsolationLevel, NativeTransaction, StoreAdapterBase
from storekit.cancellation import CancellationToken
from storekit.config import get_settings
from storekit.errors import RepositoryError, UnitOfWorkError
from storekit.logger import get_logger

from ._base import Operation, RepositorySettings, run_bounded

logger = get_logger(__name__)


class UnitOfWorkState(Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass
class UnitOfWorkMetrics:
    transaction_id: str
    start_time: datetime
    end_time: datetime | None = None
    state: UnitOfWorkState = UnitOfWorkState.INACTIVE
    isolation_level: IsolationLevel | None = None
    error_message: str | None = None

    @property
    def duration(self) -> float | None:
        """Transaction duration in seconds, once finished."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class UnitOfWork:
    """Commits staged repository changes for one adapter."""

    def __init__(
        self,
        adapter: StoreAdapterBase[t.Any],
        settings: RepositorySettings | None = None,
    ) -> None:
        self.adapter = adapter
        self.settings = settings or get_settings(RepositorySettings)

    async def save_changes(
        self,
        *,
        cancellation: CancellationToken | None = None,
    ) -> int:
        """Flush every staged change.

        Returns:
            Number of records the flush touched.

        Raises:
            UnitOfWorkError: The store rejected the flush.
            OperationTimeoutOrCancelledError: The flush was aborted.
        """
        return await run_bounded(
            self.adapter.save_changes,
            operation=Operation.SAVE_CHANGES,
            entity_type=self.adapter.record_name,
            settings=self.settings,
            cancellation=cancellation,
            fault=lambda msg: UnitOfWorkError(f"Unable to save changes. {msg}"),
        )


class DatabaseTransaction:
    """Handle over one backend transaction.

    Use as ``async with``: leaving the block with an exception, or without
    calling ``commit``/``rollback``, rolls the transaction back.
    """

    def __init__(
        self,
        native: NativeTransaction,
        *,
        entity_type: str,
        settings: RepositorySettings,
        isolation_level: IsolationLevel | None = None,
    ) -> None:
        self._native = native
        self._entity_type = entity_type
        self._settings = settings
        self._state = UnitOfWorkState.ACTIVE
        self._metrics = UnitOfWorkMetrics(
            transaction_id=str(uuid.uuid4()),
            start_time=datetime.now(UTC),
            state=UnitOfWorkState.ACTIVE,
            isolation_level=isolation_level,
        )

    @property
    def state(self) -> UnitOfWorkState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == UnitOfWorkState.ACTIVE

    @property
    def transaction_id(self) -> str:
        return self._metrics.transaction_id

    @property
    def isolation_level(self) -> IsolationLevel | None:
        return self._metrics.isolation_level

    @property
    def metrics(self) -> UnitOfWorkMetrics:
        return self._metrics

    def _set_state(self, state: UnitOfWorkState) -> None:
        self._state = state
        self._metrics.state = state
        if state in (
            UnitOfWorkState.COMMITTED,
            UnitOfWorkState.ROLLED_BACK,
            UnitOfWorkState.FAILED,
        ):
            self._metrics.end_time = datetime.now(UTC)

    def _fault(self, verb: str) -> Callable[[str], UnitOfWorkError]:
        return lambda msg: UnitOfWorkError(
            f"Unable to {verb} transaction. {msg}",
            self.transaction_id,
            self._state,
        )

    async def _finish(
        self,
        action: Callable[[], Awaitable[None]],
        operation: Operation,
        verb: str,
        cancellation: CancellationToken | None,
    ) -> None:
        try:
            await run_bounded(
                action,
                operation=operation,
                entity_type=self._entity_type,
                settings=self._settings,
                cancellation=cancellation,
                fault=self._fault(verb),
            )
        except BaseException as e:
            self._metrics.error_message = str(e) or type(e).__name__
            self._set_state(UnitOfWorkState.FAILED)
            raise

    async def _rollback_on_error(self) -> None:
        """Roll back while another error propagates; a failed rollback is logged."""
        try:
            await self.rollback()
        except RepositoryError as e:
            logger.error(
                f"Transaction {self.transaction_id} could not be rolled back: {e}"
            )

    async def commit(self, *, cancellation: CancellationToken | None = None) -> None:
        """Commit the transaction.

        A failed or cancelled commit rolls the transaction back before the
        error propagates. If that rollback fails too, the handle stays
        ``FAILED`` and ``rollback`` may be retried.
        """
        if self._state != UnitOfWorkState.ACTIVE:
            msg = f"Cannot commit transaction in state {self._state.value}"
            raise UnitOfWorkError(msg, self.transaction_id, self._state)

        self._set_state(UnitOfWorkState.COMMITTING)
        try:
            await self._finish(
                self._native.commit, Operation.COMMIT, "commit", cancellation
            )
        except BaseException:
            await self._rollback_on_error()
            raise
        self._set_state(UnitOfWorkState.COMMITTED)
        logger.debug(
            f"Transaction {self.transaction_id} committed "
            f"in {self._metrics.duration:.3f}s"
        )

    async def rollback(self, *, cancellation: CancellationToken | None = None) -> None:
        """Roll back; a no-op once the transaction has completed.

        Runs shielded from outer cancellation, so a cancelled caller still
        releases the backend transaction. The rollback timeout and
        ``cancellation`` still apply.
        """
        if self._state in (UnitOfWorkState.COMMITTED, UnitOfWorkState.ROLLED_BACK):
            return
        if self._state not in (UnitOfWorkState.ACTIVE, UnitOfWorkState.FAILED):
            msg = f"Cannot roll back transaction in state {self._state.value}"
            raise UnitOfWorkError(msg, self.transaction_id, self._state)

        self._set_state(UnitOfWorkState.ROLLING_BACK)
        with anyio.CancelScope(shield=True):
            await self._finish(
                self._native.rollback, Operation.ROLLBACK, "roll back", cancellation
            )
        self._set_state(UnitOfWorkState.ROLLED_BACK)
        logger.debug(f"Transaction {self.transaction_id} rolled back")

    async def __aenter__(self) -> t.Self:
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        if self._state not in (UnitOfWorkState.ACTIVE, UnitOfWorkState.FAILED):
            return
        if exc_type is not None:
            await self._rollback_on_error()
            return
        if self._state == UnitOfWorkState.ACTIVE:
            logger.warning(
                f"Transaction {self.transaction_id} left without commit; "
                "rolling back"
            )
        await self.rollback()


class TransactionFactory:
    """Opens transactions on one adapter."""

    def __init__(
        self,
        adapter: StoreAdapterBase[t.Any],
        settings: RepositorySettings | None = None,
    ) -> None:
        self.adapter = adapter
        self.settings = settings or get_settings(RepositorySettings)

    async def begin(
        self,
        isolation_level: IsolationLevel | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> DatabaseTransaction:
        """Open a transaction.

        Args:
            isolation_level: Requested level; falls back to
                ``RepositorySettings.isolation_level``, then the store default.
            cancellation: Caller's cancellation token.
        """
        level = isolation_level or self.settings.isolation_level
        native = await run_bounded(
            lambda: self.adapter.begin_transaction(level),
            operation=Operation.BEGIN_TRANSACTION,
            entity_type=self.adapter.record_name,
            settings=self.settings,
            cancellation=cancellation,
            fault=lambda msg: UnitOfWorkError(f"Unable to begin transaction. {msg}"),
        )
        transaction = DatabaseTransaction(
            native,
            entity_type=self.adapter.record_name,
            settings=self.settings,
            isolation_level=level,
        )
        logger.debug(f"Transaction {transaction.transaction_id} started")
        return transaction

    @asynccontextmanager
    async def transaction(
        self,
        isolation_level: IsolationLevel | None = None,
    ) -> AsyncIterator[DatabaseTransaction]:
        """Commit on success; roll back on any error, cancellation included."""
        transaction = await self.begin(isolation_level)
        try:
            yield transaction
        except BaseException:
            await transaction._rollback_on_error()
            raise
        if transaction.is_active:
            await transaction.commit()
