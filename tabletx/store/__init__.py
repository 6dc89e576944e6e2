from .base import AsyncTableStore, ReadScope, TableStore
from .session import StoreSession
from .sql import SqlTableStore
from .threaded import ThreadedAsyncStore

__all__ = [
    "TableStore",
    "AsyncTableStore",
    "ReadScope",
    "StoreSession",
    "SqlTableStore",
    "ThreadedAsyncStore",
]
