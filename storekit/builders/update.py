"""Update command builders."""

import typing as t
from collections.abc import Iterable
from dataclasses import dataclass

from storekit.errors import ConfigurationError

from ._base import BaseStateBuilder, require


@dataclass(frozen=True)
class UpdateCommand[RecordT]:
    records: tuple[RecordT, ...]
    updated_by: str | None = None
    save_changes: bool = False
    timeout: float = 0.0


class _UpdateBuilder[RecordT](BaseStateBuilder[UpdateCommand[RecordT]]):
    def __init__(self) -> None:
        super().__init__()
        self._records: tuple[RecordT, ...] | None = None
        self._updated_by: str | None = None

    def with_updated_by(self, actor: str | None) -> t.Self:
        self._updated_by = actor
        return self

    def _finalize(self) -> UpdateCommand[RecordT]:
        if self._records is None:
            msg = f"{type(self).__name__} has no records to update"
            raise ConfigurationError(msg)
        return UpdateCommand(
            records=self._records,
            updated_by=self._updated_by,
            save_changes=self._save_changes,
            timeout=self._timeout,
        )


class UpdateSingleBuilder[RecordT](_UpdateBuilder[RecordT]):
    def with_entity(self, record: RecordT) -> t.Self:
        self._records = (require(record, "Entity"),)
        return self


class UpdateRangeBuilder[RecordT](_UpdateBuilder[RecordT]):
    def with_entities(self, records: Iterable[RecordT]) -> t.Self:
        self._records = tuple(
            require(record, "Entity") for record in require(records, "Entities")
        )
        return self
