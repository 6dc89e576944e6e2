from .coordinator import AsyncTransactionCoordinator, TransactionCoordinator
from .encoder import encode_operation, sanitize_delete_mode
from .executor import (
    AsyncBatchExecutor,
    BatchExecutor,
    ChunkState,
    ChunkTransition,
    SubmitOutcome,
    advance,
)
from .grouper import group_by_partition, normalize_partition_key
from .models import (
    BatchAction,
    DeleteMode,
    Operation,
    OperationKind,
    ReservedNames,
    RowEntity,
    UpdateMode,
)
from .queue import BatchQueue
from .result import TransactionResult

__all__ = [
    "TransactionCoordinator",
    "AsyncTransactionCoordinator",
    "BatchExecutor",
    "AsyncBatchExecutor",
    "ChunkState",
    "ChunkTransition",
    "SubmitOutcome",
    "advance",
    "encode_operation",
    "sanitize_delete_mode",
    "group_by_partition",
    "normalize_partition_key",
    "BatchAction",
    "DeleteMode",
    "Operation",
    "OperationKind",
    "ReservedNames",
    "RowEntity",
    "UpdateMode",
    "BatchQueue",
    "TransactionResult",
]
