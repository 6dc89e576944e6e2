from .batch.coordinator import AsyncTransactionCoordinator, TransactionCoordinator
from .batch.models import DeleteMode, Operation, OperationKind, RowEntity, UpdateMode
from .batch.result import TransactionResult
from .config import BATCH_CAPACITY, BatchConfig, ClearTableConfig
from .context import AsyncTableContext, TableContext
from .store.sql import SqlTableStore
from .store.threaded import ThreadedAsyncStore

__all__ = [
    "TableContext",
    "AsyncTableContext",
    "TransactionCoordinator",
    "AsyncTransactionCoordinator",
    "TransactionResult",
    "RowEntity",
    "Operation",
    "OperationKind",
    "DeleteMode",
    "UpdateMode",
    "BatchConfig",
    "ClearTableConfig",
    "BATCH_CAPACITY",
    "SqlTableStore",
    "ThreadedAsyncStore",
]
