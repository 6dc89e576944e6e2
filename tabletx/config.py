from dataclasses import dataclass
from typing import Optional

# Hard ceiling imposed by the store on the number of items in one batch.
BATCH_CAPACITY = 100

TABLE_CLEAR_POLL_INTERVAL_MS = 1000


@dataclass
class BatchConfig:
    max_workers: int = 1

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")


@dataclass
class ClearTableConfig:
    poll_interval_ms: int = TABLE_CLEAR_POLL_INTERVAL_MS
    # None waits for the table to disappear without bound.
    max_polls: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be > 0")
        if self.max_polls is not None and self.max_polls < 1:
            raise ValueError("max_polls must be >= 1 or None")
