from ._base import DEFAULT_SKIP, DEFAULT_TAKE, MAX_TAKE, MAX_TIMEOUT, MIN_TIMEOUT
from .add import AddCommand, AddRangeBuilder, AddSingleBuilder
from .includer import Includer
from .query import (
    OrderingKey,
    RangeQuery,
    RangeQueryBuilder,
    SingleQuery,
    SingleQueryBuilder,
    trusted_range,
)
from .remove import (
    RemoveCommand,
    RemoveRangeBuilder,
    RemoveSingleBuilder,
    RemoveStrategy,
)
from .restore import (
    RestoreCommand,
    RestoreRangeBuilder,
    RestoreSingleBuilder,
    RestoreStrategy,
)
from .update import UpdateCommand, UpdateRangeBuilder, UpdateSingleBuilder

__all__ = [
    "DEFAULT_SKIP",
    "DEFAULT_TAKE",
    "MAX_TAKE",
    "MAX_TIMEOUT",
    "MIN_TIMEOUT",
    "AddCommand",
    "AddRangeBuilder",
    "AddSingleBuilder",
    "Includer",
    "OrderingKey",
    "RangeQuery",
    "RangeQueryBuilder",
    "RemoveCommand",
    "RemoveRangeBuilder",
    "RemoveSingleBuilder",
    "RemoveStrategy",
    "RestoreCommand",
    "RestoreRangeBuilder",
    "RestoreSingleBuilder",
    "RestoreStrategy",
    "SingleQuery",
    "SingleQueryBuilder",
    "UpdateCommand",
    "UpdateRangeBuilder",
    "UpdateSingleBuilder",
    "trusted_range",
]
