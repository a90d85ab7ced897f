"""Record capabilities, audit helpers and the paginated ``Chunk`` result."""

import uuid

import typing as t
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(UTC)


@t.runtime_checkable
class HasIdentity(t.Protocol):
    """Anything with a store-level identifier."""

    id: t.Any


@t.runtime_checkable
class HasAuditFields(t.Protocol):
    """Audit metadata maintained by the repository, never by callers."""

    created_at: datetime
    updated_at: datetime | None
    created_by: str | None
    updated_by: str | None
    is_deleted: bool


@t.runtime_checkable
class Record(HasIdentity, HasAuditFields, t.Protocol):
    """A persisted entity or document with identity and audit metadata."""


class AuditedRecord(BaseModel):
    """Ready-made pydantic record satisfying :class:`Record`.

    ``created_at`` is frozen: it is set once on construction and any later
    assignment raises a validation error.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=utc_now, frozen=True)
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None
    is_deleted: bool = False


def mark_created(record: t.Any, actor: str | None) -> t.Any:
    if actor is not None:
        record.created_by = actor
    return record


def mark_updated(record: t.Any, actor: str | None) -> t.Any:
    record.updated_at = utc_now()
    if actor is not None:
        record.updated_by = actor
    return record


def mark_deleted(record: t.Any, actor: str | None = None) -> t.Any:
    """Flip the logical-delete marker on and stamp the mutation."""
    record.is_deleted = True
    return mark_updated(record, actor)


def mark_restored(record: t.Any, actor: str | None = None) -> t.Any:
    """Flip the logical-delete marker off and stamp the mutation."""
    record.is_deleted = False
    return mark_updated(record, actor)


def record_id(record: t.Any) -> t.Any:
    return record.id


@dataclass
class Chunk[RecordT]:
    """A page of records with the total number of matches.

    ``total`` is computed from the filters alone, so it ignores skip, take,
    ordering and projection.
    """

    items: list[RecordT] = field(default_factory=list)
    total: int = 0

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[RecordT]:
        return iter(self.items)

    @property
    def is_partial(self) -> bool:
        return self.total > len(self.items)
