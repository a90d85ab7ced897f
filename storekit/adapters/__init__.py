from ._base import IsolationLevel, NativeTransaction, StoreAdapterBase
from .memory import MemoryStoreAdapter, MemoryTransaction

__all__ = [
    "IsolationLevel",
    "MemoryStoreAdapter",
    "MemoryTransaction",
    "NativeTransaction",
    "StoreAdapterBase",
]
