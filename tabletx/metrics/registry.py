from prometheus_client import Counter, Histogram

BATCH_SUBMIT_TOTAL = Counter(
    "tabletx_batch_submit_total",
    "Batch submissions by outcome",
    ["table", "outcome"],
)

BATCH_SUBMIT_LATENCY_SECONDS = Histogram(
    "tabletx_batch_submit_latency_seconds",
    "Latency of a single batch submission",
    ["table"],
)

ENTITIES_TOTAL = Counter(
    "tabletx_entities_total",
    "Entities that passed or failed a batch transaction",
    ["table", "status"],
)
