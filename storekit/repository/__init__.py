from ._base import Operation, RepositorySettings, run_bounded
from .repository import Repository
from .unit_of_work import (
    DatabaseTransaction,
    TransactionFactory,
    UnitOfWork,
    UnitOfWorkMetrics,
    UnitOfWorkState,
)

__all__ = [
    "DatabaseTransaction",
    "Operation",
    "Repository",
    "RepositorySettings",
    "TransactionFactory",
    "UnitOfWork",
    "UnitOfWorkMetrics",
    "UnitOfWorkState",
    "run_bounded",
]
