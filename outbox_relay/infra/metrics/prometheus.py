"""Prometheus metrics for the outbox relay."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry so tests and embedding applications control exposition
REGISTRY = CollectorRegistry()

# Drain cycles: from a handful of milliseconds up to a full publish timeout
DRAIN_DURATION_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)

# Broker round trips including the publisher confirm
PUBLISH_LATENCY_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)

# Write path
outbox_records_written_total = Counter(
    "outbox_records_written_total",
    "Outbox records inserted alongside business transactions",
    ["event_type"],
    registry=REGISTRY,
)

direct_publish_failures_total = Counter(
    "outbox_direct_publish_failures_total",
    "Direct-mode publishes that failed and were dropped",
    ["event_type"],
    registry=REGISTRY,
)

# Drain path
outbox_publish_total = Counter(
    "outbox_publish_total",
    "Publish attempts by outcome (sent, retried, failed)",
    ["topic", "outcome"],
    registry=REGISTRY,
)

outbox_publish_duration_seconds = Histogram(
    "outbox_publish_duration_seconds",
    "Time spent waiting for a single broker publish",
    ["topic"],
    buckets=PUBLISH_LATENCY_BUCKETS,
    registry=REGISTRY,
)

outbox_drain_duration_seconds = Histogram(
    "outbox_drain_duration_seconds",
    "Duration of a full drain cycle",
    buckets=DRAIN_DURATION_BUCKETS,
    registry=REGISTRY,
)

outbox_drain_batch_size = Gauge(
    "outbox_drain_batch_size",
    "Records fetched by the most recent drain cycle",
    registry=REGISTRY,
)

outbox_drain_skipped_total = Counter(
    "outbox_drain_skipped_total",
    "Drain cycles skipped because a previous cycle was still running",
    registry=REGISTRY,
)

outbox_drain_errors_total = Counter(
    "outbox_drain_errors_total",
    "Drain cycles aborted by a store failure",
    registry=REGISTRY,
)

outbox_version_conflicts_total = Counter(
    "outbox_version_conflicts_total",
    "Record updates rejected by the optimistic version check",
    registry=REGISTRY,
)

# Retention
outbox_records_swept_total = Counter(
    "outbox_records_swept_total",
    "SENT records deleted by the retention sweep",
    registry=REGISTRY,
)
