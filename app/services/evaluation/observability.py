"""Prometheus metrics for evaluation calculations."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

EVALUATION_CALCULATIONS = Counter(
    "evaluation_calculations_total",
    "Per-person evaluation calculations",
    ["status"],  # status: succeeded, skipped
)

METRIC_FAILURES = Counter(
    "evaluation_metric_failures_total",
    "Metric aggregation failures",
    ["metric"],
)

CALCULATION_TIME = Histogram(
    "evaluation_calculation_seconds",
    "Time to aggregate, score and store one person's evaluation",
)

BATCH_SIZE = Histogram(
    "evaluation_batch_persons",
    "Number of persons targeted by one calculation call",
    buckets=(1, 5, 10, 25, 50, 100, 250, 500),
)
