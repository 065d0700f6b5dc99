"""Prometheus metric inventory.

Every metric the service exports is declared here; the module that owns
the behavior imports the metric and increments it at the point of action.

HTTP metrics are fed by MetricsMiddleware.  Domain metrics answer the
questions an operator asks about this service in particular:

  - How many enrollments moved between which statuses?
    (a spike of in_progress -> completed after a content change is normal,
     a spike of * -> cancelled usually is not)
  - How many learning records are being written, edited, removed?
  - Which business rules are rejecting requests, and how often?
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
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
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Domain metrics
# ---------------------------------------------------------------------------

ENROLLMENT_TRANSITIONS = Counter(
    "enrollment_transitions_total",
    "Enrollment status transitions applied",
    ["from_status", "to_status"],
)

LEARNING_RECORD_OPERATIONS = Counter(
    "learning_record_operations_total",
    "Learning record writes by operation",
    ["operation"],  # create|update|delete|replay
)

DOMAIN_ERRORS = Counter(
    "domain_errors_total",
    "Business-rule rejections returned to callers",
    ["error"],  # exception class name, e.g. StaleEditWindow
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Summary cache operations by result",
    ["operation"],  # hit|miss|invalidate
)
