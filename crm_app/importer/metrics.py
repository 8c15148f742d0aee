"""Prometheus metrics helpers for the importer."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_slice_counter = Counter(
    "importer_bulk_insert_slices_total",
    "Bulk insert invocations by content type and outcome.",
    ["content_type", "outcome"],
)
_row_counter = Counter(
    "importer_bulk_insert_rows_total",
    "Rows handled by bulk insert invocations by content type and outcome.",
    ["content_type", "outcome"],
)
_slice_duration = Histogram(
    "importer_bulk_insert_slice_duration_seconds",
    "Duration of one bulk insert invocation in seconds.",
    ["content_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60),
)
_cancel_counter = Counter(
    "importer_bulk_insert_cancelled_total",
    "Bulk insert invocations skipped because their job was cancelled.",
)
_dispatch_failures = Counter(
    "importer_side_effect_dispatch_failures_total",
    "Fire-and-forget side effects that could not be handed off.",
    ["effect"],
)


def record_slice(
    *,
    content_type: str,
    outcome: Literal["success", "failure"],
    rows: int,
    duration_seconds: float,
) -> None:
    """Capture metrics for one finished bulk insert invocation."""

    _slice_counter.labels(content_type=content_type, outcome=outcome).inc()
    if rows:
        _row_counter.labels(content_type=content_type, outcome=outcome).inc(rows)
    _slice_duration.labels(content_type=content_type).observe(duration_seconds)


def record_cancelled_slice() -> None:
    _cancel_counter.inc()


def record_dispatch_failure(effect: Literal["activity_logs", "validation"]) -> None:
    _dispatch_failures.labels(effect=effect).inc()
