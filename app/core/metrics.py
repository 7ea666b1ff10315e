"""
Prometheus Metrics

Process-wide collectors, exposed by the ``/metrics`` endpoint in ``app.main``.
"""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"]
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"]
)

REPORTS_CREATED = Counter(
    "reports_created_total",
    "Total reports created",
    ["category"]
)

NOTIFICATIONS_CREATED = Counter(
    "notifications_created_total",
    "Total notifications created",
    ["kind"]
)
