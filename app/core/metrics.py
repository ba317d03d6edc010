"""Prometheus metric inventory.

All metrics are declared here so there is one list of what the service
measures.  Modules import the metric they own and update it in place.

HTTP metrics are fed by MetricsMiddleware.  The points metrics answer the
questions that matter for the aggregator:

  - how often does the persisted total drift from the computed one?
    (points_reconciliations_total by outcome)
  - which activity source is failing and silently under-reporting?
    (points_source_failures_total by source)
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # The stats endpoint fans out to five reads; most of the interesting
    # latency lives between 25ms and 1s.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Points aggregation
# ---------------------------------------------------------------------------

POINTS_RECONCILIATIONS = Counter(
    "points_reconciliations_total",
    "Points reconciliation runs by outcome",
    ["outcome"],  # unchanged|corrected|conflict|write_failed|missing_user
)

POINTS_SOURCE_FAILURES = Counter(
    "points_source_failures_total",
    "Activity source reads that failed and were replaced by an empty result",
    ["source"],  # video_completions|watch_progress|quiz_grades|challenges|attendance
)

# ---------------------------------------------------------------------------
# Supporting services
# ---------------------------------------------------------------------------

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # hit|miss
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)

NOTIFICATIONS_PUBLISHED = Counter(
    "notifications_published_total",
    "Notifications persisted and published, by type",
    ["type"],  # video|quiz|points|rank
)
