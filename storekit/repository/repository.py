"""Generic repository execution engine.

Binds a store adapter to a record type and runs every check, read and
command through the bounded envelope in :mod:`storekit.repository._base`.

Each command accepts either a ready builder or a callable that configures a
fresh one::

    await repo.get_range(lambda q: q.with_filter(pred).with_pagination(0, 20))
    await repo.remove(RemoveSingleBuilder().with_identifier(record_id))

Builders are finalized before the envelope starts, so configuration errors
reach the caller unwrapped.
"""

import typing as t
from collections.abc import Callable, Sequence

from storekit.adapters import StoreAdapterBase
from storekit.builders import (
    AddCommand,
    AddRangeBuilder,
    AddSingleBuilder,
    RangeQuery,
    RangeQueryBuilder,
    RemoveCommand,
    RemoveRangeBuilder,
    RemoveSingleBuilder,
    RemoveStrategy,
    RestoreCommand,
    RestoreRangeBuilder,
    RestoreSingleBuilder,
    RestoreStrategy,
    SingleQuery,
    SingleQueryBuilder,
    UpdateCommand,
    UpdateRangeBuilder,
    UpdateSingleBuilder,
    trusted_range,
)
from storekit.builders._base import BaseBuilder
from storekit.cancellation import CancellationToken
from storekit.config import get_settings
from storekit.errors import ConfigurationError, InvalidStrategyError
from storekit.logger import get_logger
from storekit.records import (
    Chunk,
    mark_created,
    mark_deleted,
    mark_restored,
    mark_updated,
)

from ._base import Operation, RepositorySettings, run_bounded

logger = get_logger(__name__)

type BuilderArg[B] = B | Callable[[B], B | None]


class Repository[RecordT]:
    """Check/Get/Add/Remove/Update/Restore facade over one store adapter.

    The repository holds no lock and no per-call state; independent
    operations may run concurrently when the adapter allows it.

    Args:
        adapter: Store adapter serving ``RecordT``.
        settings: Default timeouts; the shared :class:`RepositorySettings`
            instance when omitted.
    """

    def __init__(
        self,
        adapter: StoreAdapterBase[RecordT],
        settings: RepositorySettings | None = None,
    ) -> None:
        self.adapter = adapter
        self.settings = settings or get_settings(RepositorySettings)
        self.entity_name = adapter.record_name
        self._metrics: dict[str, int] = {}

    def get_metrics(self) -> dict[str, int]:
        return dict(self._metrics)

    def _increment_metric(self, operation: Operation, success: bool = True) -> None:
        metric_key = f"{operation.value}_{'success' if success else 'error'}"
        self._metrics[metric_key] = self._metrics.get(metric_key, 0) + 1

    def _resolve[B: BaseBuilder[t.Any]](
        self,
        argument: BuilderArg[B] | None,
        builder_type: type[B],
    ) -> B:
        if argument is None:
            return builder_type()
        if isinstance(argument, builder_type):
            return argument
        if isinstance(argument, BaseBuilder) or not callable(argument):
            msg = (
                f"Expected {builder_type.__name__} or a configure callable, "
                f"got {type(argument).__name__}"
            )
            raise ConfigurationError(msg, entity_type=self.entity_name)
        builder = builder_type()
        configured = argument(builder)
        if configured is None:
            return builder
        if not isinstance(configured, builder_type):
            msg = f"Configure callable must return {builder_type.__name__} or None"
            raise ConfigurationError(msg, entity_type=self.entity_name)
        return configured

    async def _run[T](
        self,
        operation: Operation,
        action: Callable[[], t.Awaitable[T]],
        *,
        timeout: float = 0.0,
        cancellation: CancellationToken | None = None,
    ) -> T:
        try:
            result = await run_bounded(
                action,
                operation=operation,
                entity_type=self.entity_name,
                settings=self.settings,
                timeout=timeout,
                cancellation=cancellation,
            )
        except Exception:
            self._increment_metric(operation, success=False)
            raise
        self._increment_metric(operation)
        return result

    # Checks

    async def exists(
        self,
        predicate: t.Any = None,
        *,
        ignore_query_filters: bool = False,
        cancellation: CancellationToken | None = None,
    ) -> bool:
        filters = () if predicate is None else (predicate,)
        return await self._run(
            Operation.EXISTS,
            lambda: self.adapter.exists(
                filters,
                ignore_default_filters=ignore_query_filters,
            ),
            cancellation=cancellation,
        )

    async def count(
        self,
        predicate: t.Any = None,
        *,
        ignore_query_filters: bool = False,
        cancellation: CancellationToken | None = None,
    ) -> int:
        filters = () if predicate is None else (predicate,)
        return await self._run(
            Operation.COUNT,
            lambda: self.adapter.count(
                filters,
                ignore_default_filters=ignore_query_filters,
            ),
            cancellation=cancellation,
        )

    # Reads

    async def get_by_id(
        self,
        identifier: t.Any,
        *,
        cancellation: CancellationToken | None = None,
    ) -> RecordT | None:
        """Return the live record with ``identifier``, or ``None``."""
        if identifier is None:
            msg = "Identifier cannot be None"
            raise ConfigurationError(msg, entity_type=self.entity_name)
        return await self._run(
            Operation.GET_BY_ID,
            lambda: self.adapter.find_by_id(identifier),
            cancellation=cancellation,
        )

    async def get_single(
        self,
        query: BuilderArg[SingleQueryBuilder] | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> RecordT | None:
        config: SingleQuery = self._resolve(query, SingleQueryBuilder).build()
        return await self._run(
            Operation.GET_SINGLE,
            lambda: self.adapter.find_one(config),
            timeout=config.timeout,
            cancellation=cancellation,
        )

    def _range_config(
        self,
        query: BuilderArg[RangeQueryBuilder] | None,
    ) -> RangeQuery:
        if query is None:
            return trusted_range()
        return self._resolve(query, RangeQueryBuilder).build()

    async def get_range(
        self,
        query: BuilderArg[RangeQueryBuilder] | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> list[RecordT]:
        """Return the matching records.

        Without a query every record passing the default filters is returned,
        unpaged. A builder applies its own pagination (skip 0, take 100 unless
        set).
        """
        config = self._range_config(query)
        return await self._run(
            Operation.GET_RANGE,
            lambda: self.adapter.find_many(config),
            timeout=config.timeout,
            cancellation=cancellation,
        )

    async def get_range_entire(
        self,
        query: BuilderArg[RangeQueryBuilder] | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> Chunk[RecordT]:
        """Return one page together with the total number of matches.

        The total uses the filters only; the page also applies ordering,
        projection and pagination. Without a query the page holds every
        match.
        """
        config = self._range_config(query)

        async def action() -> Chunk[RecordT]:
            total = await self.adapter.count(
                config.count_filters,
                ignore_default_filters=config.ignore_default_filters,
            )
            items = await self.adapter.find_many(config)
            return Chunk(items=items, total=total)

        return await self._run(
            Operation.GET_RANGE_ENTIRE,
            action,
            timeout=config.timeout,
            cancellation=cancellation,
        )

    # Add

    async def _add(self, command: AddCommand[RecordT]) -> None:
        for record in command.records:
            mark_created(record, command.created_by)
        await self.adapter.insert(command.records)
        if command.save_changes:
            await self.adapter.save_changes()

    async def add(
        self,
        command: BuilderArg[AddSingleBuilder[RecordT]],
        *,
        cancellation: CancellationToken | None = None,
    ) -> RecordT:
        config = self._resolve(command, AddSingleBuilder).build()
        await self._run(
            Operation.ADD,
            lambda: self._add(config),
            timeout=config.timeout,
            cancellation=cancellation,
        )
        return config.records[0]

    async def add_range(
        self,
        command: BuilderArg[AddRangeBuilder[RecordT]],
        *,
        cancellation: CancellationToken | None = None,
    ) -> list[RecordT]:
        config = self._resolve(command, AddRangeBuilder).build()
        await self._run(
            Operation.ADD_RANGE,
            lambda: self._add(config),
            timeout=config.timeout,
            cancellation=cancellation,
        )
        return list(config.records)

    # Tracking

    async def _track(self, records: Sequence[RecordT]) -> list[tuple[RecordT, RecordT]]:
        """Pair each caller record with its tracked instance.

        Tracked records are used as they are; detached ones are attached
        first. Records missing from the store are dropped.
        """
        pairs: list[tuple[RecordT, RecordT]] = []
        for record in records:
            if self.adapter.is_tracked(record):
                pairs.append((record, record))
                continue
            tracked = await self.adapter.attach(record)
            if tracked is not None:
                pairs.append((record, tracked))
        return pairs

    @staticmethod
    def _mark(
        pairs: Sequence[tuple[RecordT, RecordT]],
        marker: Callable[[t.Any, str | None], t.Any],
        actor: str | None,
    ) -> list[RecordT]:
        tracked: list[RecordT] = []
        for original, instance in pairs:
            marker(instance, actor)
            if instance is not original:
                marker(original, actor)
            tracked.append(instance)
        return tracked

    # Update

    async def _update(self, command: UpdateCommand[RecordT]) -> int:
        targets = self._mark(
            await self._track(command.records), mark_updated, command.updated_by
        )
        if not targets:
            return 0
        affected = await self.adapter.update_tracked(targets)
        if command.save_changes:
            await self.adapter.save_changes()
        return affected

    async def update(
        self,
        command: BuilderArg[UpdateSingleBuilder[RecordT]],
        *,
        cancellation: CancellationToken | None = None,
    ) -> int:
        config = self._resolve(command, UpdateSingleBuilder).build()
        return await self._run(
            Operation.UPDATE,
            lambda: self._update(config),
            timeout=config.timeout,
            cancellation=cancellation,
        )

    async def update_range(
        self,
        command: BuilderArg[UpdateRangeBuilder[RecordT]],
        *,
        cancellation: CancellationToken | None = None,
    ) -> int:
        config = self._resolve(command, UpdateRangeBuilder).build()
        return await self._run(
            Operation.UPDATE_RANGE,
            lambda: self._update(config),
            timeout=config.timeout,
            cancellation=cancellation,
        )

    # Remove

    def _check_remove(
        self,
        command: RemoveCommand[RecordT],
        operation: Operation,
    ) -> t.Any:
        if command.strategy is None:
            msg = (
                "No remove strategy was selected; "
                "use with_entity, with_identifier or with_filter"
            )
            raise InvalidStrategyError(
                msg,
                entity_type=self.entity_name,
                operation=operation.value,
            )
        payload = command.payload
        if payload is None:
            msg = f"Remove strategy {command.strategy.name} has no payload"
            raise InvalidStrategyError(
                msg,
                entity_type=self.entity_name,
                operation=operation.value,
                strategy=command.strategy,
            )
        return payload

    async def _remove_targets(
        self,
        command: RemoveCommand[RecordT],
        payload: t.Any,
    ) -> list[tuple[RecordT, RecordT]]:
        match command.strategy:
            case RemoveStrategy.BY_INSTANCE:
                return await self._track(payload)
            case RemoveStrategy.BY_IDENTIFIER if command.single:
                found = await self.adapter.find_by_id(payload[0])
                return [(found, found)] if found is not None else []
            case RemoveStrategy.BY_IDENTIFIER:
                records = await self.adapter.find_by_ids(payload)
            case RemoveStrategy.BY_PREDICATE if command.single:
                found = await self.adapter.find_one(SingleQuery(filters=(payload,)))
                return [(found, found)] if found is not None else []
            case _:
                records = await self.adapter.find_many(trusted_range(payload))
        return [(record, record) for record in records]

    async def _remove(
        self,
        command: RemoveCommand[RecordT],
        operation: Operation,
    ) -> int:
        payload = self._check_remove(command, operation)
        strategy = t.cast("RemoveStrategy", command.strategy)

        if command.execute_directly:
            return await self.adapter.delete_by_strategy(
                strategy,
                payload,
                direct=True,
                limit_one=command.single,
            )

        targets = self._mark(
            await self._remove_targets(command, payload),
            mark_deleted,
            command.removed_by,
        )
        if not targets:
            return 0
        affected = await self.adapter.delete_by_strategy(
            RemoveStrategy.BY_INSTANCE,
            targets,
            direct=False,
        )
        if command.save_changes:
            await self.adapter.save_changes()
        return affected

    async def remove(
        self,
        command: BuilderArg[RemoveSingleBuilder[RecordT]],
        *,
        cancellation: CancellationToken | None = None,
    ) -> int:
        """Remove one record; returns 1, or 0 when nothing matched.

        Without ``with_execute_directly`` the record is soft-deleted and can
        be restored. With it the row is deleted at the store immediately.
        """
        config = self._resolve(command, RemoveSingleBuilder).build()
        return await self._run(
            Operation.REMOVE,
            lambda: self._remove(config, Operation.REMOVE),
            timeout=config.timeout,
            cancellation=cancellation,
        )

    async def remove_range(
        self,
        command: BuilderArg[RemoveRangeBuilder[RecordT]],
        *,
        cancellation: CancellationToken | None = None,
    ) -> int:
        config = self._resolve(command, RemoveRangeBuilder).build()
        return await self._run(
            Operation.REMOVE_RANGE,
            lambda: self._remove(config, Operation.REMOVE_RANGE),
            timeout=config.timeout,
            cancellation=cancellation,
        )

    # Restore

    async def _restore_targets(
        self,
        command: RestoreCommand[RecordT],
        operation: Operation,
    ) -> list[tuple[RecordT, RecordT]]:
        match command.strategy:
            case RestoreStrategy.BY_INSTANCE if command.entities is not None:
                return await self._track(command.entities)
            case RestoreStrategy.BY_IDENTIFIER if command.identifiers is not None:
                records = await self.adapter.find_by_ids(
                    command.identifiers,
                    include_deleted=True,
                )
                return [(record, record) for record in records]
        msg = "No restore target was selected; use with_entity or with_identifier"
        raise InvalidStrategyError(
            msg,
            entity_type=self.entity_name,
            operation=operation.value,
            strategy=command.strategy,
        )

    async def _restore(
        self,
        command: RestoreCommand[RecordT],
        operation: Operation,
    ) -> int:
        targets = self._mark(
            await self._restore_targets(command, operation),
            mark_restored,
            command.restored_by,
        )
        if not targets:
            return 0
        affected = await self.adapter.restore_tracked(targets)
        if command.save_changes:
            await self.adapter.save_changes()
        return affected

    async def restore(
        self,
        command: BuilderArg[RestoreSingleBuilder[RecordT]],
        *,
        cancellation: CancellationToken | None = None,
    ) -> int:
        """Undo a soft remove; returns 0 when the record no longer exists."""
        config = self._resolve(command, RestoreSingleBuilder).build()
        return await self._run(
            Operation.RESTORE,
            lambda: self._restore(config, Operation.RESTORE),
            timeout=config.timeout,
            cancellation=cancellation,
        )

    async def restore_range(
        self,
        command: BuilderArg[RestoreRangeBuilder[RecordT]],
        *,
        cancellation: CancellationToken | None = None,
    ) -> int:
        config = self._resolve(command, RestoreRangeBuilder).build()
        return await self._run(
            Operation.RESTORE_RANGE,
            lambda: self._restore(config, Operation.RESTORE_RANGE),
            timeout=config.timeout,
            cancellation=cancellation,
        )
