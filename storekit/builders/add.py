"""Add command builders."""

import typing as t
from collections.abc import Iterable
from dataclasses import dataclass

from storekit.errors import ConfigurationError

from ._base import BaseStateBuilder, require


@dataclass(frozen=True)
class AddCommand[RecordT]:
    records: tuple[RecordT, ...]
    created_by: str | None = None
    save_changes: bool = False
    timeout: float = 0.0


class _AddBuilder[RecordT](BaseStateBuilder[AddCommand[RecordT]]):
    def __init__(self) -> None:
        super().__init__()
        self._records: tuple[RecordT, ...] | None = None
        self._created_by: str | None = None

    def with_created_by(self, actor: str | None) -> t.Self:
        self._created_by = actor
        return self

    def _finalize(self) -> AddCommand[RecordT]:
        if self._records is None:
            msg = f"{type(self).__name__} has no records to add"
            raise ConfigurationError(msg)
        return AddCommand(
            records=self._records,
            created_by=self._created_by,
            save_changes=self._save_changes,
            timeout=self._timeout,
        )


class AddSingleBuilder[RecordT](_AddBuilder[RecordT]):
    def with_entity(self, record: RecordT) -> t.Self:
        self._records = (require(record, "Entity"),)
        return self


class AddRangeBuilder[RecordT](_AddBuilder[RecordT]):
    def with_entities(self, records: Iterable[RecordT]) -> t.Self:
        self._records = tuple(
            require(record, "Entity") for record in require(records, "Entities")
        )
        return self
