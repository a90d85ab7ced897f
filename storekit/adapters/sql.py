"""SQLAlchemy (async) / SQLModel store adapter.

Predicates are SQL boolean expressions (``Hero.age > 30``), ordering keys are
columns or expressions, and a projection is a sequence of columns loaded via
``load_only``. Change tracking is the ``AsyncSession`` unit of work.
"""

import uuid

import sqlalchemy as sa
import typing as t
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from pydantic import SecretStr
from pydantic_settings import SettingsConfigDict
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)
from sqlalchemy.orm import joinedload, lazyload, load_only, selectinload
from sqlmodel import Field, SQLModel

from storekit.builders import OrderingKey, RangeQuery, RemoveStrategy, SingleQuery
from storekit.config import Settings, get_settings
from storekit.lazy import Lazy
from storekit.logger import get_logger
from storekit.records import utc_now

from ._base import IsolationLevel, StoreAdapterBase

logger = get_logger(__name__)


class SqlSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="STOREKIT_SQL_")

    config_name: t.ClassVar[str | None] = "sql"

    url: SecretStr = SecretStr("sqlite+aiosqlite:///:memory:")
    echo: bool = False


class AuditedTable(SQLModel):
    """Column set shared by audited tables; subclass with ``table=True``."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None
    is_deleted: bool = Field(default=False, index=True)


class SqlTransaction:
    def __init__(
        self,
        adapter: "SqlStoreAdapter[t.Any]",
        session: AsyncSession,
    ) -> None:
        self.adapter = adapter
        self.session = session

    async def commit(self) -> None:
        try:
            await self.session.commit()
        finally:
            self.adapter._transaction = None

    async def rollback(self) -> None:
        try:
            await self.session.rollback()
        finally:
            self.adapter._transaction = None


class SqlStoreAdapter[RecordT](StoreAdapterBase[RecordT]):
    """Adapter over one mapped SQLModel table.

    Args:
        record_type: ``SQLModel`` table class.
        engine: Engine to use. When omitted one is created from
            :class:`SqlSettings` and disposed on cleanup.
        settings: Settings used when no engine is given.
    """

    def __init__(
        self,
        record_type: type[RecordT],
        engine: AsyncEngine | None = None,
        *,
        settings: SqlSettings | None = None,
    ) -> None:
        super().__init__(record_type)
        self.settings = settings or get_settings(SqlSettings)
        self._engine = Lazy(
            lambda: engine if engine is not None else self._create_engine()
        )
        self._session = Lazy(self._create_session)
        self._transaction: SqlTransaction | None = None

    def _create_engine(self) -> AsyncEngine:
        engine = create_async_engine(
            self.settings.url.get_secret_value(),
            echo=self.settings.echo,
        )
        self.register_resource(engine)
        return engine

    def _create_session(self) -> AsyncSession:
        session = AsyncSession(self.engine, expire_on_commit=False)
        self.register_resource(session)
        return session

    @property
    def engine(self) -> AsyncEngine:
        return self._engine.value

    @property
    def session(self) -> AsyncSession:
        return self._session.value

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    def _column(self, name: str) -> t.Any:
        return getattr(self.record_type, name)

    def _conditions(
        self,
        filters: Sequence[t.Any],
        ignore_default_filters: bool,
    ) -> list[t.Any]:
        conditions = list(filters)
        if not ignore_default_filters:
            conditions.append(sa.not_(self._column("is_deleted")))
        return conditions

    def _include_option(self, path: str, split: bool) -> t.Any:
        loader = selectinload if split else joinedload
        entity: t.Any = self.record_type
        option: t.Any = None
        for name in path.split("."):
            attr = getattr(entity, name)
            option = (
                loader(attr)
                if option is None
                else getattr(option, loader.__name__)(attr)
            )
            entity = attr.property.mapper.class_
        return option

    @staticmethod
    def _order_clauses(ordering: Sequence[OrderingKey], reverse: bool) -> list[t.Any]:
        return [
            sa.desc(item.key) if item.descending != reverse else sa.asc(item.key)
            for item in ordering
        ]

    def _select(
        self,
        query: SingleQuery | RangeQuery,
        *,
        reverse: bool = False,
    ) -> t.Any:
        stmt = sa.select(self.record_type).where(
            *self._conditions(query.filters, query.ignore_default_filters)
        )
        options: list[t.Any] = []
        if query.ignore_auto_include:
            options.append(lazyload("*"))
        options.extend(
            self._include_option(path, query.split_query) for path in query.includes
        )
        if query.projection is not None:
            options.append(load_only(*query.projection))
        if options:
            stmt = stmt.options(*options)
        if query.ordering:
            stmt = stmt.order_by(*self._order_clauses(query.ordering, reverse))
        elif reverse:
            stmt = stmt.order_by(sa.desc(self._column("created_at")))
        return stmt

    async def _load(self, stmt: t.Any, tracking: bool) -> list[RecordT]:
        session = self.session
        known = {id(obj) for obj in session.identity_map.values()}
        result = await session.execute(stmt)
        records = list(result.unique().scalars().all())
        if not tracking:
            for record in records:
                if id(record) not in known:
                    session.expunge(record)
        return records

    async def count(
        self,
        filters: Sequence[t.Any] = (),
        *,
        ignore_default_filters: bool = False,
    ) -> int:
        stmt = (
            sa.select(sa.func.count())
            .select_from(self.record_type)
            .where(*self._conditions(filters, ignore_default_filters))
        )
        return int(await self.session.scalar(stmt) or 0)

    async def exists(
        self,
        filters: Sequence[t.Any] = (),
        *,
        ignore_default_filters: bool = False,
    ) -> bool:
        inner = sa.select(self._column("id")).where(
            *self._conditions(filters, ignore_default_filters)
        )
        return bool(await self.session.scalar(sa.select(sa.exists(inner))))

    async def find_by_id(
        self,
        identifier: t.Any,
        *,
        include_deleted: bool = False,
    ) -> RecordT | None:
        record = await self.session.get(self.record_type, identifier)
        if record is None or (record.is_deleted and not include_deleted):  # type: ignore[attr-defined]
            return None
        return record

    async def find_by_ids(
        self,
        identifiers: Sequence[t.Any],
        *,
        include_deleted: bool = False,
    ) -> list[RecordT]:
        if not identifiers:
            return []
        stmt = sa.select(self.record_type).where(
            self._column("id").in_(list(identifiers)),
            *self._conditions((), include_deleted),
        )
        return await self._load(stmt, tracking=True)

    async def find_one(self, query: SingleQuery) -> RecordT | None:
        stmt = self._select(query, reverse=not query.take_first).limit(1)
        records = await self._load(stmt, query.tracking)
        return records[0] if records else None

    async def find_many(self, query: RangeQuery) -> list[RecordT]:
        stmt = self._select(query)
        if query.skip:
            stmt = stmt.offset(query.skip)
        if query.take is not None:
            stmt = stmt.limit(query.take)
        return await self._load(stmt, query.tracking)

    async def insert(self, records: Sequence[RecordT]) -> int:
        self.session.add_all(records)
        return len(records)

    async def update_tracked(self, records: Sequence[RecordT]) -> int:
        self.session.add_all(records)
        return len(records)

    async def restore_tracked(self, records: Sequence[RecordT]) -> int:
        self.session.add_all(records)
        return len(records)

    @asynccontextmanager
    async def _direct_connection(self) -> AsyncIterator[AsyncConnection]:
        if self._transaction is not None:
            yield await self.session.connection()
            return
        async with self.engine.begin() as conn:
            yield conn

    async def delete_by_strategy(
        self,
        strategy: RemoveStrategy,
        payload: t.Any,
        *,
        direct: bool,
        limit_one: bool = False,
    ) -> int:
        if not direct:
            self.session.add_all(payload)
            return len(payload)

        id_column = self._column("id")
        async with self._direct_connection() as conn:
            match strategy:
                case RemoveStrategy.BY_PREDICATE:
                    stmt = sa.select(id_column).where(payload)
                    if limit_one:
                        stmt = stmt.limit(1)
                    identifiers = list((await conn.execute(stmt)).scalars().all())
                case RemoveStrategy.BY_IDENTIFIER:
                    identifiers = list(payload)
                case RemoveStrategy.BY_INSTANCE:
                    identifiers = [record.id for record in payload]
                case _:
                    msg = f"Unsupported remove strategy: {strategy!r}"
                    raise ValueError(msg)
            if limit_one:
                identifiers = identifiers[:1]
            if not identifiers:
                return 0
            result = await conn.execute(
                sa.delete(self.record_type).where(id_column.in_(identifiers))
            )
        self._evict(set(identifiers))
        logger.debug(f"Deleted {result.rowcount} {self.record_name} row(s) directly")
        return int(result.rowcount)

    def _evict(self, identifiers: set[t.Any]) -> None:
        session = self.session
        for obj in list(session.identity_map.values()):
            if isinstance(obj, self.record_type) and obj.id in identifiers:  # type: ignore[attr-defined]
                session.expunge(obj)

    async def save_changes(self) -> int:
        session = self.session
        affected = len(session.new) + len(session.dirty) + len(session.deleted)
        if self._transaction is not None:
            await session.flush()
        else:
            await session.commit()
        return affected

    def is_tracked(self, record: RecordT) -> bool:
        return record in self.session

    async def attach(self, record: RecordT) -> RecordT | None:
        session = self.session
        if record in session:
            return record
        existing = await session.get(self.record_type, record.id)  # type: ignore[attr-defined]
        if existing is None:
            return None
        return await session.merge(record)

    async def begin_transaction(
        self,
        isolation_level: IsolationLevel | None = None,
    ) -> SqlTransaction:
        if self._transaction is not None:
            msg = "A transaction is already active on this session"
            raise RuntimeError(msg)
        session = self.session
        if isolation_level is not None:
            if session.in_transaction():
                logger.warning(
                    f"Session already in a transaction; keeping its isolation level "
                    f"instead of {isolation_level.value}"
                )
            else:
                await session.connection(
                    execution_options={"isolation_level": isolation_level.value}
                )
        self._transaction = SqlTransaction(self, session)
        return self._transaction
