"""Remove command builders.

The target-selection strategy follows the last setter called::

    with_entity(x)      -> BY_INSTANCE,   payload x
    with_identifier(k)  -> BY_IDENTIFIER, payload k
    with_filter(p)      -> BY_PREDICATE,  payload p
    with_remove_strategy(s) -> strategy s, payloads untouched

Payloads set by earlier calls are kept, so an override may point at a
payload that was never provided. The repository detects that at execution
and raises ``InvalidStrategyError``.
"""

from enum import IntEnum

import typing as t
from collections.abc import Iterable
from dataclasses import dataclass

from ._base import BaseStateBuilder, require


class RemoveStrategy(IntEnum):
    BY_IDENTIFIER = 101
    BY_INSTANCE = 201
    BY_PREDICATE = 301


@dataclass(frozen=True)
class RemoveCommand[RecordT]:
    strategy: RemoveStrategy | None
    single: bool
    entities: tuple[RecordT, ...] | None = None
    identifiers: tuple[t.Any, ...] | None = None
    predicate: t.Any = None
    execute_directly: bool = False
    removed_by: str | None = None
    save_changes: bool = False
    timeout: float = 0.0

    @property
    def payload(self) -> t.Any:
        """Payload of the active strategy, ``None`` when it was never set."""
        match self.strategy:
            case RemoveStrategy.BY_INSTANCE:
                return self.entities
            case RemoveStrategy.BY_IDENTIFIER:
                return self.identifiers
            case RemoveStrategy.BY_PREDICATE:
                return self.predicate
        return None


class _RemoveBuilder[RecordT](BaseStateBuilder[RemoveCommand[RecordT]]):
    _single: t.ClassVar[bool] = True

    def __init__(self) -> None:
        super().__init__()
        self._strategy: RemoveStrategy | None = None
        self._entities: tuple[RecordT, ...] | None = None
        self._identifiers: tuple[t.Any, ...] | None = None
        self._predicate: t.Any = None
        self._execute_directly = False
        self._removed_by: str | None = None

    @property
    def strategy(self) -> RemoveStrategy | None:
        return self._strategy

    def with_filter(self, predicate: t.Any) -> t.Self:
        self._predicate = require(predicate, "Filter")
        self._strategy = RemoveStrategy.BY_PREDICATE
        return self

    def with_remove_strategy(self, strategy: RemoveStrategy) -> t.Self:
        """Force the strategy without touching any payload."""
        self._strategy = RemoveStrategy(require(strategy, "Strategy"))
        return self

    def with_execute_directly(self, execute: bool = True) -> t.Self:
        """Delete at the store immediately, bypassing tracking and soft delete.

        Irreversible; ``with_save_changes`` has no effect on this path.
        """
        self._execute_directly = execute
        return self

    def with_removed_by(self, actor: str | None) -> t.Self:
        self._removed_by = actor
        return self

    def _finalize(self) -> RemoveCommand[RecordT]:
        return RemoveCommand(
            strategy=self._strategy,
            single=self._single,
            entities=self._entities,
            identifiers=self._identifiers,
            predicate=self._predicate,
            execute_directly=self._execute_directly,
            removed_by=self._removed_by,
            save_changes=self._save_changes,
            timeout=self._timeout,
        )


class RemoveSingleBuilder[RecordT](_RemoveBuilder[RecordT]):
    def with_entity(self, record: RecordT) -> t.Self:
        self._entities = (require(record, "Entity"),)
        self._strategy = RemoveStrategy.BY_INSTANCE
        return self

    def with_identifier(self, identifier: t.Any) -> t.Self:
        self._identifiers = (require(identifier, "Identifier"),)
        self._strategy = RemoveStrategy.BY_IDENTIFIER
        return self


class RemoveRangeBuilder[RecordT](_RemoveBuilder[RecordT]):
    _single: t.ClassVar[bool] = False

    def with_entities(self, records: Iterable[RecordT]) -> t.Self:
        self._entities = tuple(
            require(record, "Entity") for record in require(records, "Entities")
        )
        self._strategy = RemoveStrategy.BY_INSTANCE
        return self

    def with_identifiers(self, identifiers: Iterable[t.Any]) -> t.Self:
        self._identifiers = tuple(
            require(identifier, "Identifier")
            for identifier in require(identifiers, "Identifiers")
        )
        self._strategy = RemoveStrategy.BY_IDENTIFIER
        return self
