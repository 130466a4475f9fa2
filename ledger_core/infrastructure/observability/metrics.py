"""Prometheus metrics for ledger mutations, obligation auto-posting and store calls"""

from prometheus_client import Counter, Histogram

# Mutation metrics
mutation_counter = Counter(
    "ledger_mutation_total",
    "Ledger mutations by operation and outcome",
    ["operation", "outcome"],  # applied | rolled_back
)

# Scheduler metrics
obligation_counter = Counter(
    "ledger_obligation_total",
    "Recurring obligations processed by the scheduler",
    ["outcome"],  # posted | skipped | failed
)

# Store metrics
store_latency_histogram = Histogram(
    "ledger_store_latency_seconds",
    "Ledger store response time",
    ["method"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

store_failure_counter = Counter(
    "ledger_store_failures_total",
    "Failed ledger store calls",
    ["method"],
)


def record_mutation(operation: str, applied: bool) -> None:
    """Record mutation outcome for monitoring rollback rates"""
    outcome = "applied" if applied else "rolled_back"
    mutation_counter.labels(operation=operation, outcome=outcome).inc()


def record_obligation(outcome: str) -> None:
    obligation_counter.labels(outcome=outcome).inc()
