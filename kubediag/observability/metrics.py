"""Prometheus metrics for kubediag."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Watch stream metrics
watcher_events_total = Counter(
    "kubediag_watcher_events_total",
    "Total watch events received",
    ["watcher", "event_type"],
)

watcher_errors_total = Counter(
    "kubediag_watcher_errors_total",
    "Total watch stream API errors",
    ["watcher", "status_code"],
)

watcher_reconnects_total = Counter(
    "kubediag_watcher_reconnects_total",
    "Total watch stream reconnects",
    ["watcher", "reason"],
)

watcher_backoff_seconds = Histogram(
    "kubediag_watcher_backoff_seconds",
    "Back-off delay applied before reopening a watch stream",
    ["watcher"],
    buckets=(1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0),
)

# Failure detector metrics
failures_detected_total = Counter(
    "kubediag_failures_detected_total",
    "Pod failure edges observed by the failure detector",
)

diagnoses_created_total = Counter(
    "kubediag_diagnoses_created_total",
    "PodDiagnosis resources created",
)

diagnoses_skipped_total = Counter(
    "kubediag_diagnoses_skipped_total",
    "Failure detector passes that did not create a PodDiagnosis",
    ["reason"],
)

# Lifecycle controller metrics
diagnoses_finished_total = Counter(
    "kubediag_diagnoses_finished_total",
    "PodDiagnosis resources moved to a terminal phase",
    ["phase"],
)

reasoning_requests_total = Counter(
    "kubediag_reasoning_requests_total",
    "Calls to the reasoning service",
    ["outcome"],
)

reasoning_duration_seconds = Histogram(
    "kubediag_reasoning_duration_seconds",
    "Reasoning service call duration in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 45.0, 60.0),
)

pod_events_emitted_total = Counter(
    "kubediag_pod_events_emitted_total",
    "Diagnosis events recorded on pods",
    ["result"],
)

# Delivery layer metrics
reconcile_errors_total = Counter(
    "kubediag_reconcile_errors_total",
    "Reconciliation passes that raised and were scheduled for re-delivery",
    ["queue"],
)

work_queue_depth = Gauge(
    "kubediag_work_queue_depth",
    "Keys waiting in the work queue",
    ["queue"],
)

work_queue_retries_total = Counter(
    "kubediag_work_queue_retries_total",
    "Keys re-queued after a failed pass",
    ["queue"],
)
