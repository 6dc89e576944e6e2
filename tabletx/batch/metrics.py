from __future__ import annotations

from ..metrics.registry import (
    BATCH_SUBMIT_LATENCY_SECONDS,
    BATCH_SUBMIT_TOTAL,
    ENTITIES_TOTAL,
)


def observe_batch_submit(table: str, outcome: str, latency_s: float) -> None:
    """
    Record one submit attempt.

    Args:
        table: Logical table name
        outcome: ChunkState value reached by the attempt ("all_ok", ...)
        latency_s: Wall-clock duration of the submit call
    """
    BATCH_SUBMIT_TOTAL.labels(table=table, outcome=outcome).inc()
    BATCH_SUBMIT_LATENCY_SECONDS.labels(table=table).observe(latency_s)


def observe_entities(table: str, passed: int, failed: int) -> None:
    """Record how many entities passed and failed."""
    if passed:
        ENTITIES_TOTAL.labels(table=table, status="passed").inc(passed)
    if failed:
        ENTITIES_TOTAL.labels(table=table, status="failed").inc(failed)
