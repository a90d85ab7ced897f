"""Single-result and range-result query builders.

Predicates, ordering keys and projections are opaque here: each store
adapter decides what it accepts (closures, SQL expressions, Mongo filter
documents) and translates them itself.
"""

import typing as t
from dataclasses import dataclass

from storekit.errors import ConfigurationError

from ._base import DEFAULT_SKIP, DEFAULT_TAKE, MAX_TAKE, BaseBuilder, require
from .includer import Includer


@dataclass(frozen=True, slots=True)
class OrderingKey:
    key: t.Any
    descending: bool = False


@dataclass(frozen=True)
class QueryConfig:
    filters: tuple[t.Any, ...] = ()
    projection: t.Any = None
    ordering: tuple[OrderingKey, ...] = ()
    includes: tuple[str, ...] = ()
    ignore_default_filters: bool = False
    ignore_auto_include: bool = False
    split_query: bool = False
    tracking: bool = True
    constraints_ignored: bool = False
    timeout: float = 0.0


@dataclass(frozen=True)
class SingleQuery(QueryConfig):
    """Finalized single-result query. ``take_first`` picks first vs last match."""

    take_first: bool = True


@dataclass(frozen=True)
class RangeQuery(QueryConfig):
    """Finalized range query.

    ``skip``/``take`` are ``None`` only when the quantity limit was removed.
    """

    skip: int | None = DEFAULT_SKIP
    take: int | None = DEFAULT_TAKE

    @property
    def count_filters(self) -> tuple[t.Any, ...]:
        """Filters that define the match population, independent of paging."""
        return self.filters

    @property
    def unbounded(self) -> bool:
        return self.take is None


def trusted_range(*filters: t.Any, tracking: bool = True) -> RangeQuery:
    """Unbounded query used internally to resolve range command targets."""
    return RangeQuery(
        filters=tuple(filters),
        tracking=tracking,
        constraints_ignored=True,
        skip=None,
        take=None,
    )


class _QueryBuilder[ConfigT](BaseBuilder[ConfigT]):
    def __init__(self) -> None:
        super().__init__()
        self._filters: list[t.Any] = []
        self._projection: t.Any = None
        self._ordering: list[OrderingKey] = []
        self._includes: tuple[str, ...] = ()
        self._ignore_default_filters = False
        self._ignore_auto_include = False
        self._split_query = False
        self._tracking = True

    def with_filter(self, predicate: t.Any) -> t.Self:
        """Add a predicate; all predicates must match."""
        self._filters.append(require(predicate, "Filter"))
        return self

    def with_projection(self, projection: t.Any) -> t.Self:
        self._projection = require(projection, "Projection")
        return self

    def with_ordering(self, key: t.Any, descending: bool = True) -> t.Self:
        """Replace any existing ordering with ``key`` as the primary key."""
        self._ordering = [OrderingKey(require(key, "Ordering key"), descending)]
        return self

    def with_then_ordering(self, key: t.Any, descending: bool = False) -> t.Self:
        """Append a tie-breaker after the existing ordering."""
        if not self._ordering:
            msg = (
                "with_then_ordering requires a primary ordering; "
                "call with_ordering first"
            )
            raise ConfigurationError(msg)
        self._ordering.append(OrderingKey(require(key, "Ordering key"), descending))
        return self

    def with_joiner(self, configure: t.Callable[[Includer], Includer | None]) -> t.Self:
        includer = Includer()
        configured = require(configure, "Joiner")(includer)
        self._includes = (configured or includer).paths
        return self

    def with_ignore_query_filters(self) -> t.Self:
        self._ignore_default_filters = True
        return self

    def with_ignore_auto_include(self) -> t.Self:
        self._ignore_auto_include = True
        return self

    def with_split_query(self) -> t.Self:
        self._split_query = True
        return self

    def with_tracking(self, tracking: bool = True) -> t.Self:
        self._tracking = tracking
        return self

    def with_no_tracking(self) -> t.Self:
        return self.with_tracking(False)

    def _common(self) -> dict[str, t.Any]:
        return {
            "filters": tuple(self._filters),
            "projection": self._projection,
            "ordering": tuple(self._ordering),
            "includes": self._includes,
            "ignore_default_filters": self._ignore_default_filters,
            "ignore_auto_include": self._ignore_auto_include,
            "split_query": self._split_query,
            "tracking": self._tracking,
            "constraints_ignored": self._constraints_ignored,
            "timeout": self._timeout,
        }


class SingleQueryBuilder(_QueryBuilder[SingleQuery]):
    def __init__(self) -> None:
        super().__init__()
        self._take_first = True

    def with_take_first(self) -> t.Self:
        self._take_first = True
        return self

    def with_take_last(self) -> t.Self:
        self._take_first = False
        return self

    def _finalize(self) -> SingleQuery:
        return SingleQuery(take_first=self._take_first, **self._common())


class RangeQueryBuilder(_QueryBuilder[RangeQuery]):
    def __init__(self) -> None:
        super().__init__()
        self._skip: int | None = DEFAULT_SKIP
        self._take: int | None = DEFAULT_TAKE

    def with_pagination(self, skip: int, take: int) -> t.Self:
        """Set the page window.

        Args:
            skip: Records to skip, ``>= 0``.
            take: Page size, ``> 0`` and at most 1000 unless constraints are
                disabled.
        """
        if skip < 0:
            msg = f"Skip must be zero or greater, got {skip}"
            raise ConfigurationError(msg)
        if take <= 0:
            msg = f"Take must be greater than zero, got {take}"
            raise ConfigurationError(msg)
        if take > MAX_TAKE and not self._constraints_ignored:
            msg = f"Take cannot exceed {MAX_TAKE} unless constraints are disabled"
            raise ConfigurationError(msg)
        self._skip = skip
        self._take = take
        return self

    def with_no_quantity_limit(self) -> t.Self:
        """Drop skip/take entirely. Only allowed with constraints disabled."""
        if not self._constraints_ignored:
            msg = "Removing the quantity limit requires with_disable_constraints()"
            raise ConfigurationError(msg)
        self._skip = None
        self._take = None
        return self

    def _finalize(self) -> RangeQuery:
        return RangeQuery(skip=self._skip, take=self._take, **self._common())
