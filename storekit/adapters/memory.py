"""In-process store adapter.

Predicates are plain callables taking a record and returning a bool,
ordering keys are callables returning a sortable value and a projection is a
callable mapping a record to its projected form. The adapter keeps committed
rows as private copies, hands out tracked instances through an identity map
and stages writes until ``save_changes``.
"""

import copy

import anyio
import anyio.lowlevel
import typing as t
from collections.abc import Callable, Iterable, Sequence

from storekit.builders import OrderingKey, RangeQuery, RemoveStrategy, SingleQuery
from storekit.logger import get_logger

from ._base import IsolationLevel, StoreAdapterBase

logger = get_logger(__name__)

Predicate = Callable[[t.Any], bool]

_INSERT = "insert"
_UPDATE = "update"


class MemoryTransaction:
    def __init__(
        self,
        adapter: "MemoryStoreAdapter[t.Any]",
        isolation_level: IsolationLevel | None,
    ) -> None:
        self.adapter = adapter
        self.isolation_level = isolation_level

    async def commit(self) -> None:
        await self.adapter._finish_transaction(commit=True)

    async def rollback(self) -> None:
        await self.adapter._finish_transaction(commit=False)


class MemoryStoreAdapter[RecordT](StoreAdapterBase[RecordT]):
    """Dictionary-backed adapter for tests and small embedded use.

    Args:
        record_type: Record class served by this adapter.
        records: Rows present in the store from the start.
        latency: Seconds every call sleeps before touching the rows.
    """

    def __init__(
        self,
        record_type: type[RecordT],
        *,
        records: Iterable[RecordT] = (),
        latency: float = 0.0,
    ) -> None:
        super().__init__(record_type)
        self.latency = latency
        self.fail_with: Exception | None = None
        self._rows: dict[t.Any, RecordT] = {
            record.id: copy.deepcopy(record) for record in records  # type: ignore[attr-defined]
        }
        self._tracked: dict[t.Any, RecordT] = {}
        self._pending: dict[t.Any, tuple[str, RecordT]] = {}
        self._snapshot: dict[t.Any, RecordT] | None = None

    @property
    def in_transaction(self) -> bool:
        return self._snapshot is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def stored(self, identifier: t.Any) -> RecordT | None:
        """Copy of the committed row, bypassing tracking and filters."""
        row = self._rows.get(identifier)
        return copy.deepcopy(row) if row is not None else None

    def stored_count(self) -> int:
        return len(self._rows)

    async def _io(self) -> None:
        if self.latency:
            await anyio.sleep(self.latency)
        else:
            await anyio.lowlevel.checkpoint()
        if self.fail_with is not None:
            raise self.fail_with

    def _scan(
        self,
        filters: Sequence[Predicate],
        ignore_default_filters: bool,
    ) -> list[RecordT]:
        return [
            row
            for row in self._rows.values()
            if (ignore_default_filters or not row.is_deleted)  # type: ignore[attr-defined]
            and all(predicate(row) for predicate in filters)
        ]

    @staticmethod
    def _order(rows: list[RecordT], ordering: Sequence[OrderingKey]) -> list[RecordT]:
        # stable sorts applied from the last tie-breaker to the primary key
        for key in reversed(ordering):
            rows.sort(key=key.key, reverse=key.descending)
        return rows

    def _materialize(self, row: RecordT, tracking: bool) -> RecordT:
        identifier = row.id  # type: ignore[attr-defined]
        tracked = self._tracked.get(identifier)
        if tracked is not None:
            return tracked
        instance = copy.deepcopy(row)
        if tracking:
            self._tracked[identifier] = instance
        return instance

    def _project(self, record: RecordT, projection: t.Any) -> RecordT:
        return projection(record) if projection is not None else record

    async def count(
        self,
        filters: Sequence[t.Any] = (),
        *,
        ignore_default_filters: bool = False,
    ) -> int:
        await self._io()
        return len(self._scan(filters, ignore_default_filters))

    async def find_by_id(
        self,
        identifier: t.Any,
        *,
        include_deleted: bool = False,
    ) -> RecordT | None:
        await self._io()
        row = self._rows.get(identifier)
        if row is None or (row.is_deleted and not include_deleted):  # type: ignore[attr-defined]
            return None
        return self._materialize(row, tracking=True)

    async def find_by_ids(
        self,
        identifiers: Sequence[t.Any],
        *,
        include_deleted: bool = False,
    ) -> list[RecordT]:
        await self._io()
        wanted = set(identifiers)
        rows = [
            row
            for row in self._scan((), include_deleted)
            if row.id in wanted  # type: ignore[attr-defined]
        ]
        return [self._materialize(row, tracking=True) for row in rows]

    async def find_one(self, query: SingleQuery) -> RecordT | None:
        await self._io()
        rows = self._order(
            self._scan(query.filters, query.ignore_default_filters),
            query.ordering,
        )
        if not rows:
            return None
        row = rows[0] if query.take_first else rows[-1]
        tracking = query.tracking and query.projection is None
        return self._project(self._materialize(row, tracking), query.projection)

    async def find_many(self, query: RangeQuery) -> list[RecordT]:
        await self._io()
        rows = self._order(
            self._scan(query.filters, query.ignore_default_filters),
            query.ordering,
        )
        start = query.skip or 0
        stop = start + query.take if query.take is not None else None
        tracking = query.tracking and query.projection is None
        return [
            self._project(self._materialize(row, tracking), query.projection)
            for row in rows[start:stop]
        ]

    async def insert(self, records: Sequence[RecordT]) -> int:
        await self._io()
        for record in records:
            identifier = record.id  # type: ignore[attr-defined]
            self._pending[identifier] = (_INSERT, record)
            self._tracked[identifier] = record
        return len(records)

    def _stage_updates(self, records: Sequence[RecordT]) -> int:
        for record in records:
            identifier = record.id  # type: ignore[attr-defined]
            kind = self._pending.get(identifier, (_UPDATE, record))[0]
            self._pending[identifier] = (kind, record)
            self._tracked[identifier] = record
        return len(records)

    async def delete_by_strategy(
        self,
        strategy: RemoveStrategy,
        payload: t.Any,
        *,
        direct: bool,
        limit_one: bool = False,
    ) -> int:
        await self._io()
        if not direct:
            return self._stage_updates(payload)

        match strategy:
            case RemoveStrategy.BY_PREDICATE:
                targets = [key for key, row in self._rows.items() if payload(row)]
            case RemoveStrategy.BY_IDENTIFIER:
                targets = [key for key in payload if key in self._rows]
            case RemoveStrategy.BY_INSTANCE:
                targets = [
                    record.id
                    for record in payload
                    if record.id in self._rows
                ]
            case _:
                msg = f"Unsupported remove strategy: {strategy!r}"
                raise ValueError(msg)
        if limit_one:
            targets = targets[:1]
        for key in targets:
            del self._rows[key]
            self._tracked.pop(key, None)
            self._pending.pop(key, None)
        logger.debug(f"Deleted {len(targets)} {self.record_name} row(s) directly")
        return len(targets)

    async def update_tracked(self, records: Sequence[RecordT]) -> int:
        await self._io()
        return self._stage_updates(records)

    async def restore_tracked(self, records: Sequence[RecordT]) -> int:
        await self._io()
        return self._stage_updates(records)

    async def save_changes(self) -> int:
        await self._io()
        staged = list(self._pending.items())
        for key, (kind, _) in staged:
            if kind == _INSERT and key in self._rows:
                msg = f"Duplicate {self.record_name} identifier: {key}"
                raise KeyError(msg)
            if kind == _UPDATE and key not in self._rows:
                msg = f"{self.record_name} {key} no longer exists in the store"
                raise LookupError(msg)
        for key, (_, record) in staged:
            self._rows[key] = copy.deepcopy(record)
        self._pending.clear()
        return len(staged)

    def is_tracked(self, record: RecordT) -> bool:
        return self._tracked.get(record.id) is record  # type: ignore[attr-defined]

    async def attach(self, record: RecordT) -> RecordT | None:
        await self._io()
        identifier = record.id  # type: ignore[attr-defined]
        if identifier not in self._rows and identifier not in self._pending:
            return None
        self._tracked[identifier] = record
        return record

    async def begin_transaction(
        self,
        isolation_level: IsolationLevel | None = None,
    ) -> MemoryTransaction:
        await self._io()
        if self._snapshot is not None:
            msg = "A transaction is already active"
            raise RuntimeError(msg)
        self._snapshot = copy.deepcopy(self._rows)
        return MemoryTransaction(self, isolation_level)

    async def _finish_transaction(self, commit: bool) -> None:
        await self._io()
        if self._snapshot is None:
            msg = "No active transaction"
            raise RuntimeError(msg)
        if not commit:
            self._rows = self._snapshot
            self._pending.clear()
            self._tracked.clear()
        self._snapshot = None
