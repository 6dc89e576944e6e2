from .registry import (
    BATCH_SUBMIT_LATENCY_SECONDS,
    BATCH_SUBMIT_TOTAL,
    ENTITIES_TOTAL,
)

__all__ = [
    "BATCH_SUBMIT_TOTAL",
    "BATCH_SUBMIT_LATENCY_SECONDS",
    "ENTITIES_TOTAL",
]
