"""Store adapter contract consumed by the repository engine."""

from abc import ABC, abstractmethod
from enum import Enum

import typing as t
from collections.abc import Sequence

from storekit.builders import RangeQuery, RemoveStrategy, SingleQuery
from storekit.cleanup import CleanupMixin


class IsolationLevel(Enum):
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"
    SNAPSHOT = "SNAPSHOT"


@t.runtime_checkable
class NativeTransaction(t.Protocol):
    """Backend transaction handle returned by ``begin_transaction``."""

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class StoreAdapterBase[RecordT](CleanupMixin, ABC):
    """Executes finalized builder configurations against one backend.

    Each adapter owns the representation of predicates, ordering keys and
    projections it accepts. Writes (``insert``, ``update_tracked``,
    ``restore_tracked`` and non-direct ``delete_by_strategy``) are staged
    until ``save_changes``; direct deletes hit the store immediately.
    """

    def __init__(self, record_type: type[RecordT]) -> None:
        super().__init__()
        self.record_type = record_type
        self.record_name = getattr(record_type, "__name__", str(record_type))

    @abstractmethod
    async def count(
        self,
        filters: Sequence[t.Any] = (),
        *,
        ignore_default_filters: bool = False,
    ) -> int: ...

    async def exists(
        self,
        filters: Sequence[t.Any] = (),
        *,
        ignore_default_filters: bool = False,
    ) -> bool:
        return (
            await self.count(filters, ignore_default_filters=ignore_default_filters)
            > 0
        )

    @abstractmethod
    async def find_by_id(
        self,
        identifier: t.Any,
        *,
        include_deleted: bool = False,
    ) -> RecordT | None: ...

    @abstractmethod
    async def find_by_ids(
        self,
        identifiers: Sequence[t.Any],
        *,
        include_deleted: bool = False,
    ) -> list[RecordT]: ...

    @abstractmethod
    async def find_one(self, query: SingleQuery) -> RecordT | None: ...

    @abstractmethod
    async def find_many(self, query: RangeQuery) -> list[RecordT]: ...

    @abstractmethod
    async def insert(self, records: Sequence[RecordT]) -> int: ...

    @abstractmethod
    async def delete_by_strategy(
        self,
        strategy: RemoveStrategy,
        payload: t.Any,
        *,
        direct: bool,
        limit_one: bool = False,
    ) -> int:
        """Delete records.

        Args:
            strategy: How ``payload`` selects the targets.
            payload: Records, identifiers or a predicate, per ``strategy``.
            direct: Delete at the store now, ignoring tracking and the
                default filter. When false the payload is a sequence of
                tracked records already marked deleted, staged as updates.
            limit_one: Delete at most one match on the direct path.

        Returns:
            Number of records affected.
        """

    @abstractmethod
    async def update_tracked(self, records: Sequence[RecordT]) -> int: ...

    @abstractmethod
    async def restore_tracked(self, records: Sequence[RecordT]) -> int: ...

    @abstractmethod
    async def save_changes(self) -> int:
        """Flush staged changes and return how many records they touched."""

    @abstractmethod
    def is_tracked(self, record: RecordT) -> bool: ...

    @abstractmethod
    async def attach(self, record: RecordT) -> RecordT | None:
        """Bring a detached record under tracking.

        Returns:
            The tracked instance carrying ``record``'s state, or ``None`` if
            the record does not exist in the store.
        """

    @abstractmethod
    async def begin_transaction(
        self,
        isolation_level: IsolationLevel | None = None,
    ) -> NativeTransaction: ...
