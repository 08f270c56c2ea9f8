"""Prometheus metrics for reconciliation runs."""

from __future__ import annotations

from pathlib import Path

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile

registry = CollectorRegistry(auto_describe=True)

POLICY_RESULTS = Counter(
    "kgov_policy_results_total",
    "Reconciliation results per policy kind and status",
    ["kind", "status"],
    registry=registry,
)
POLICY_DURATION = Histogram(
    "kgov_policy_duration_seconds",
    "Time spent reconciling one policy object",
    ["kind"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=registry,
)
LAST_RUN_FAILED = Gauge(
    "kgov_last_run_failed",
    "1 if the last run recorded a Failed result",
    ["mode"],
    registry=registry,
)
LAST_RUN_TIMESTAMP = Gauge(
    "kgov_last_run_timestamp_seconds",
    "Unix time the last run finished",
    ["mode"],
    registry=registry,
)


def observe_result(kind: str, status: str, duration: float) -> None:
    POLICY_RESULTS.labels(kind=kind, status=status).inc()
    POLICY_DURATION.labels(kind=kind).observe(duration)


def set_run_gauges(mode: str, failed: bool, finished_at: float) -> None:
    LAST_RUN_FAILED.labels(mode=mode).set(1 if failed else 0)
    LAST_RUN_TIMESTAMP.labels(mode=mode).set(finished_at)


def write_metrics(path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), registry)
