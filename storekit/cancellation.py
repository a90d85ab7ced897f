"""Timeout and caller cancellation for a single repository operation.

``OperationScope`` combines an optional deadline with an optional
``CancellationToken`` into one ``anyio.CancelScope``. Whichever source fires
first aborts the awaited adapter call, and the scope reports the abort as
:class:`~storekit.errors.OperationTimeoutOrCancelledError` without saying
which source it was.
"""

import math

import anyio
import typing as t

from .errors import CANCELLED_MESSAGE, OperationTimeoutOrCancelledError


class CancellationToken:
    """Caller-owned cancellation signal.

    A token may be shared by several concurrent operations running on the
    same event loop; cancelling it aborts all of them.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._scopes: set[anyio.CancelScope] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        for scope in list(self._scopes):
            scope.cancel()

    def _register(self, scope: anyio.CancelScope) -> None:
        self._scopes.add(scope)

    def _unregister(self, scope: anyio.CancelScope) -> None:
        self._scopes.discard(scope)


class OperationScope:
    """Bounded execution context for one operation.

    Args:
        timeout: Seconds before the operation is aborted; ``None`` or ``0``
            means no deadline.
        token: Optional caller cancellation token.
        operation: Operation name reported on the raised error.
        entity_type: Record type name reported on the raised error.
    """

    def __init__(
        self,
        timeout: float | None = None,
        token: CancellationToken | None = None,
        *,
        operation: str | None = None,
        entity_type: str | None = None,
    ) -> None:
        self.timeout = timeout
        self.token = token
        self.operation = operation
        self.entity_type = entity_type
        self.timed_out = False
        self._scope: anyio.CancelScope | None = None

    def _error(self) -> OperationTimeoutOrCancelledError:
        return OperationTimeoutOrCancelledError(
            CANCELLED_MESSAGE,
            entity_type=self.entity_type,
            operation=self.operation,
        )

    def __enter__(self) -> "OperationScope":
        if self.token is not None and self.token.cancelled:
            raise self._error()

        deadline = (
            anyio.current_time() + self.timeout if self.timeout else math.inf
        )
        self._scope = anyio.CancelScope(deadline=deadline)
        self._scope.__enter__()
        if self.token is not None:
            self.token._register(self._scope)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: t.Any,
    ) -> bool:
        scope = self._scope
        if scope is None:
            return False
        if self.token is not None:
            self.token._unregister(scope)
        suppressed = bool(scope.__exit__(exc_type, exc_val, exc_tb))
        if scope.cancelled_caught:
            self.timed_out = self.token is None or not self.token.cancelled
            raise self._error() from exc_val
        return suppressed
