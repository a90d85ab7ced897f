"""Backend-agnostic repository core: fluent builders, a bounded execution
envelope and soft-delete aware commands over pluggable store adapters."""

from .builders import (
    AddRangeBuilder,
    AddSingleBuilder,
    Includer,
    RangeQueryBuilder,
    RemoveRangeBuilder,
    RemoveSingleBuilder,
    RemoveStrategy,
    RestoreRangeBuilder,
    RestoreSingleBuilder,
    SingleQueryBuilder,
    UpdateRangeBuilder,
    UpdateSingleBuilder,
)
from .cancellation import CancellationToken, OperationScope
from .errors import (
    ConfigurationError,
    InvalidStrategyError,
    OperationTimeoutOrCancelledError,
    RepositoryError,
    StoreFaultError,
    UnitOfWorkError,
)
from .logger import configure_logging, get_logger
from .records import AuditedRecord, Chunk, HasAuditFields, HasIdentity, Record
from .repository import (
    DatabaseTransaction,
    Repository,
    RepositorySettings,
    TransactionFactory,
    UnitOfWork,
)

__version__ = "0.1.0"

__all__ = [
    "AddRangeBuilder",
    "AddSingleBuilder",
    "AuditedRecord",
    "CancellationToken",
    "Chunk",
    "ConfigurationError",
    "DatabaseTransaction",
    "HasAuditFields",
    "HasIdentity",
    "Includer",
    "InvalidStrategyError",
    "OperationScope",
    "OperationTimeoutOrCancelledError",
    "RangeQueryBuilder",
    "Record",
    "RemoveRangeBuilder",
    "RemoveSingleBuilder",
    "RemoveStrategy",
    "Repository",
    "RepositoryError",
    "RepositorySettings",
    "RestoreRangeBuilder",
    "RestoreSingleBuilder",
    "SingleQueryBuilder",
    "StoreFaultError",
    "TransactionFactory",
    "UnitOfWork",
    "UnitOfWorkError",
    "UpdateRangeBuilder",
    "UpdateSingleBuilder",
    "configure_logging",
    "get_logger",
]
