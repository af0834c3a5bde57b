"""Prometheus metrics for sweep throughput, series mutations and HTTP latency"""

from prometheus_client import Counter, Histogram

from obligation_engine.domain.models import SweepReport

# Sweep metrics
sweep_root_counter = Counter(
    "obligation_sweep_roots_total",
    "Recurring roots visited by the backfill sweep",
    ["outcome"],  # processed | failed
)

instances_generated_counter = Counter(
    "obligation_instances_generated_total",
    "Child instances materialized from recurring roots",
    ["trigger"],  # sweep | create
)

sweep_cancelled_counter = Counter(
    "obligation_sweep_cancelled_total",
    "Sweeps stopped before visiting every root",
)

sweep_duration_histogram = Histogram(
    "obligation_sweep_duration_seconds",
    "Wall time of one backfill sweep",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

# Series mutation metrics
mutation_counter = Counter(
    "obligation_series_mutations_total",
    "Scoped edits and deletes applied to obligations",
    ["action", "scope"],
)

integrity_error_counter = Counter(
    "obligation_integrity_errors_total",
    "Mutations refused because the series was inconsistent",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_sweep(report: SweepReport, duration_seconds: float) -> None:
    """Record sweep outcome counters and duration"""
    sweep_root_counter.labels(outcome="processed").inc(report.roots_processed)
    sweep_root_counter.labels(outcome="failed").inc(len(report.failed_root_ids))
    instances_generated_counter.labels(trigger="sweep").inc(report.instances_created)
    if report.cancelled:
        sweep_cancelled_counter.inc()
    sweep_duration_histogram.observe(duration_seconds)


def record_mutation(action: str, scope: str) -> None:
    mutation_counter.labels(action=action, scope=scope).inc()
