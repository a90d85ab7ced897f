"""Restore command builders, the inverse of a soft remove."""

from enum import Enum

import typing as t
from collections.abc import Iterable
from dataclasses import dataclass

from ._base import BaseStateBuilder, require


class RestoreStrategy(Enum):
    BY_IDENTIFIER = "by_identifier"
    BY_INSTANCE = "by_instance"


@dataclass(frozen=True)
class RestoreCommand[RecordT]:
    strategy: RestoreStrategy | None
    single: bool
    entities: tuple[RecordT, ...] | None = None
    identifiers: tuple[t.Any, ...] | None = None
    restored_by: str | None = None
    save_changes: bool = False
    timeout: float = 0.0


class _RestoreBuilder[RecordT](BaseStateBuilder[RestoreCommand[RecordT]]):
    _single: t.ClassVar[bool] = True

    def __init__(self) -> None:
        super().__init__()
        self._strategy: RestoreStrategy | None = None
        self._entities: tuple[RecordT, ...] | None = None
        self._identifiers: tuple[t.Any, ...] | None = None
        self._restored_by: str | None = None

    def with_restored_by(self, actor: str | None) -> t.Self:
        self._restored_by = actor
        return self

    def _finalize(self) -> RestoreCommand[RecordT]:
        return RestoreCommand(
            strategy=self._strategy,
            single=self._single,
            entities=self._entities,
            identifiers=self._identifiers,
            restored_by=self._restored_by,
            save_changes=self._save_changes,
            timeout=self._timeout,
        )


class RestoreSingleBuilder[RecordT](_RestoreBuilder[RecordT]):
    def with_entity(self, record: RecordT) -> t.Self:
        self._entities = (require(record, "Entity"),)
        self._strategy = RestoreStrategy.BY_INSTANCE
        return self

    def with_identifier(self, identifier: t.Any) -> t.Self:
        self._identifiers = (require(identifier, "Identifier"),)
        self._strategy = RestoreStrategy.BY_IDENTIFIER
        return self


class RestoreRangeBuilder[RecordT](_RestoreBuilder[RecordT]):
    _single: t.ClassVar[bool] = False

    def with_entities(self, records: Iterable[RecordT]) -> t.Self:
        self._entities = tuple(
            require(record, "Entity") for record in require(records, "Entities")
        )
        self._strategy = RestoreStrategy.BY_INSTANCE
        return self

    def with_identifiers(self, identifiers: Iterable[t.Any]) -> t.Self:
        self._identifiers = tuple(
            require(identifier, "Identifier")
            for identifier in require(identifiers, "Identifiers")
        )
        self._strategy = RestoreStrategy.BY_IDENTIFIER
        return self
