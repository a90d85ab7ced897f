"""MongoDB store adapter on motor.

Predicates are filter documents, combined with ``$and``; ordering keys are
field names; a projection is a projection document or a list of field
names. Records are pydantic models whose ``id`` maps to ``_id``. There is no
identity map: every write is staged as a bulk operation and sent by
``save_changes``. Partially loaded records are written with ``$set``.
"""

import typing as t
from collections.abc import Sequence
from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import BaseModel, SecretStr
from pydantic_settings import SettingsConfigDict
from pymongo import ASCENDING, DESCENDING, InsertOne, ReplaceOne, UpdateOne
from pymongo.read_concern import ReadConcern

from storekit.builders import OrderingKey, RangeQuery, RemoveStrategy, SingleQuery
from storekit.config import Settings, get_settings
from storekit.lazy import Lazy
from storekit.logger import get_logger
from storekit.records import utc_now

from ._base import IsolationLevel, StoreAdapterBase

logger = get_logger(__name__)

NOT_DELETED: dict[str, t.Any] = {"is_deleted": {"$ne": True}}


class MongoSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="STOREKIT_MONGO_")

    config_name: t.ClassVar[str | None] = "mongodb"

    connection_string: SecretStr = SecretStr("mongodb://127.0.0.1:27017")
    database: str = "storekit"


class MongoTransaction:
    def __init__(self, adapter: "MongoStoreAdapter[t.Any]", session: t.Any) -> None:
        self.adapter = adapter
        self.session = session

    async def _finish(self, action: t.Callable[[], t.Awaitable[t.Any]]) -> None:
        try:
            await action()
        finally:
            self.adapter._session = None
            await self.session.end_session()

    async def commit(self) -> None:
        await self._finish(self.session.commit_transaction)

    async def rollback(self) -> None:
        self.adapter._pending.clear()
        if self.session.has_ended:
            # a failed commit already ended the session, which aborts the
            # server-side transaction
            return
        await self._finish(self.session.abort_transaction)


class MongoStoreAdapter[RecordT: BaseModel](StoreAdapterBase[RecordT]):
    """Adapter over one collection.

    Args:
        record_type: Pydantic model stored in the collection.
        client: Motor client; created from :class:`MongoSettings` and
            closed on cleanup when omitted.
        collection_name: Defaults to the lower-cased record type name.
        settings: Connection settings.
    """

    def __init__(
        self,
        record_type: type[RecordT],
        client: AsyncIOMotorClient | None = None,
        *,
        collection_name: str | None = None,
        settings: MongoSettings | None = None,
    ) -> None:
        super().__init__(record_type)
        self.settings = settings or get_settings(MongoSettings)
        self.collection_name = collection_name or self.record_name.lower()
        self._client = Lazy(
            lambda: client if client is not None else self._create_client()
        )
        self._collection = Lazy(
            lambda: self.client[self.settings.database][self.collection_name]
        )
        self._pending: list[t.Any] = []
        self._session: t.Any = None

    def _create_client(self) -> AsyncIOMotorClient:
        client: AsyncIOMotorClient = AsyncIOMotorClient(
            self.settings.connection_string.get_secret_value()
        )
        self.register_resource(client)
        return client

    @property
    def client(self) -> AsyncIOMotorClient:
        return self._client.value

    @property
    def collection(self) -> t.Any:
        return self._collection.value

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _to_document(self, record: RecordT) -> dict[str, t.Any]:
        document = record.model_dump()
        document["_id"] = document.pop("id")
        return document

    def _from_document(
        self,
        document: dict[str, t.Any],
        projected: bool = False,
    ) -> RecordT:
        data = dict(document)
        if "_id" in data:
            data["id"] = data.pop("_id")
        if projected:
            return self.record_type.model_construct(**data)
        return self.record_type.model_validate(data)

    @staticmethod
    def _filter(
        filters: Sequence[dict[str, t.Any]],
        ignore_default_filters: bool,
    ) -> dict[str, t.Any]:
        clauses = [f for f in filters if f]
        if not ignore_default_filters:
            clauses.append(NOT_DELETED)
        if not clauses:
            return {}
        if len(clauses) == 1:
            return dict(clauses[0])
        return {"$and": clauses}

    @staticmethod
    def _projection(projection: t.Any) -> dict[str, t.Any] | None:
        if projection is None or isinstance(projection, dict):
            return projection
        return {name: 1 for name in projection}

    @staticmethod
    def _sort(ordering: Sequence[OrderingKey], reverse: bool) -> list[tuple[str, int]]:
        if not ordering and reverse:
            return [("created_at", DESCENDING)]
        return [
            (item.key, DESCENDING if item.descending != reverse else ASCENDING)
            for item in ordering
        ]

    async def _fetch(
        self,
        filter_: dict[str, t.Any],
        *,
        projection: t.Any = None,
        sort: list[tuple[str, int]] | None = None,
        skip: int | None = None,
        limit: int | None = None,
    ) -> list[RecordT]:
        cursor = self.collection.find(
            filter_,
            projection=self._projection(projection),
            session=self._session,
        )
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit is not None:
            cursor = cursor.limit(limit)
        documents = await cursor.to_list(length=None)
        return [self._from_document(doc, projection is not None) for doc in documents]

    async def count(
        self,
        filters: Sequence[t.Any] = (),
        *,
        ignore_default_filters: bool = False,
    ) -> int:
        result = await self.collection.count_documents(
            self._filter(filters, ignore_default_filters),
            session=self._session,
        )
        return int(result)

    async def exists(
        self,
        filters: Sequence[t.Any] = (),
        *,
        ignore_default_filters: bool = False,
    ) -> bool:
        document = await self.collection.find_one(
            self._filter(filters, ignore_default_filters),
            projection={"_id": 1},
            session=self._session,
        )
        return document is not None

    async def find_by_id(
        self,
        identifier: t.Any,
        *,
        include_deleted: bool = False,
    ) -> RecordT | None:
        document = await self.collection.find_one(
            self._filter([{"_id": identifier}], include_deleted),
            session=self._session,
        )
        return self._from_document(document) if document is not None else None

    async def find_by_ids(
        self,
        identifiers: Sequence[t.Any],
        *,
        include_deleted: bool = False,
    ) -> list[RecordT]:
        if not identifiers:
            return []
        return await self._fetch(
            self._filter([{"_id": {"$in": list(identifiers)}}], include_deleted)
        )

    async def find_one(self, query: SingleQuery) -> RecordT | None:
        records = await self._fetch(
            self._filter(query.filters, query.ignore_default_filters),
            projection=query.projection,
            sort=self._sort(query.ordering, reverse=not query.take_first),
            limit=1,
        )
        return records[0] if records else None

    async def find_many(self, query: RangeQuery) -> list[RecordT]:
        return await self._fetch(
            self._filter(query.filters, query.ignore_default_filters),
            projection=query.projection,
            sort=self._sort(query.ordering, reverse=False),
            skip=query.skip,
            limit=query.take,
        )

    async def insert(self, records: Sequence[RecordT]) -> int:
        self._pending.extend(InsertOne(self._to_document(r)) for r in records)
        return len(records)

    def _stage_write(self, records: Sequence[RecordT]) -> int:
        """Stage a write of each record.

        Records carrying every field replace the stored document. Records
        carrying only some (projected reads, or detached records built from a
        subset of fields) are staged as a ``$set`` of the fields they carry,
        leaving the rest of the stored document alone.
        """
        all_fields = set(self.record_type.model_fields)
        for record in records:
            record.updated_at = utc_now()  # type: ignore[attr-defined]
            document = self._to_document(record)
            selector = {"_id": document["_id"]}
            loaded = record.model_fields_set
            if loaded >= all_fields:
                self._pending.append(ReplaceOne(selector, document))
                continue
            changes = {name: document[name] for name in loaded if name != "id"}
            self._pending.append(UpdateOne(selector, {"$set": changes}))
        return len(records)

    async def update_tracked(self, records: Sequence[RecordT]) -> int:
        return self._stage_write(records)

    async def restore_tracked(self, records: Sequence[RecordT]) -> int:
        return self._stage_write(records)

    async def delete_by_strategy(
        self,
        strategy: RemoveStrategy,
        payload: t.Any,
        *,
        direct: bool,
        limit_one: bool = False,
    ) -> int:
        if not direct:
            return self._stage_write(payload)

        match strategy:
            case RemoveStrategy.BY_PREDICATE:
                filter_ = dict(payload)
            case RemoveStrategy.BY_IDENTIFIER:
                filter_ = {"_id": {"$in": list(payload)}}
            case RemoveStrategy.BY_INSTANCE:
                filter_ = {"_id": {"$in": [record.id for record in payload]}}
            case _:
                msg = f"Unsupported remove strategy: {strategy!r}"
                raise ValueError(msg)
        if limit_one:
            result = await self.collection.delete_one(filter_, session=self._session)
        else:
            result = await self.collection.delete_many(filter_, session=self._session)
        logger.debug(
            f"Deleted {result.deleted_count} {self.record_name} document(s) directly"
        )
        return int(result.deleted_count)

    async def save_changes(self) -> int:
        if not self._pending:
            return 0
        operations = list(self._pending)
        await self.collection.bulk_write(
            operations, ordered=True, session=self._session
        )
        self._pending.clear()
        return len(operations)

    def is_tracked(self, record: RecordT) -> bool:
        return False

    async def attach(self, record: RecordT) -> RecordT | None:
        document = await self.collection.find_one(
            {"_id": record.id},  # type: ignore[attr-defined]
            projection={"_id": 1},
            session=self._session,
        )
        return record if document is not None else None

    async def begin_transaction(
        self,
        isolation_level: IsolationLevel | None = None,
    ) -> MongoTransaction:
        if self._session is not None:
            msg = "A transaction is already active on this adapter"
            raise RuntimeError(msg)
        session = await self.client.start_session()
        read_concern = (
            ReadConcern("snapshot")
            if isolation_level
            in (IsolationLevel.SNAPSHOT, IsolationLevel.SERIALIZABLE)
            else None
        )
        session.start_transaction(read_concern=read_concern)
        self._session = session
        return MongoTransaction(self, session)

    async def _cleanup_resources(self) -> None:
        if self._session is not None:
            await self._session.end_session()
            self._session = None
