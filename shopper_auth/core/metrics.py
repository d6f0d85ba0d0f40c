"""Application metrics using the Prometheus client library.

Single inventory of everything the service measures.  Modules import the
metric they own and increment it at the point of action; the values are
scraped from GET /metrics.

Counters are labeled by flow and outcome rather than by error class so
dashboards can answer "what share of guest logins fail right now?"
without exposing provider error text as label values (unbounded
cardinality).
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
    # A session-start request carries up to four outbound round-trips
    # (authorize, token, bridge, restore), so the upper buckets matter.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# SLAS flow metrics
# ---------------------------------------------------------------------------

LOGIN_FLOWS = Counter(
    "slas_login_total",
    "Shopper login/refresh/logout flows by outcome",
    # flow: guest_login, guest_refresh, registered_login, registered_refresh, logout
    ["flow", "outcome"],
)

SESSION_BRIDGE_CALLS = Counter(
    "slas_session_bridge_total",
    "Session bridge calls by outcome",
    ["outcome"],  # "success" or "failure"
)

SESSION_RESTORE_CALLS = Counter(
    "slas_session_restore_total",
    "Session attribute restore calls by outcome",
    ["outcome"],  # "success", "failure" or "skipped"
)

BASKET_MERGE_CALLS = Counter(
    "slas_basket_merge_total",
    "Guest basket merge calls by outcome",
    ["outcome"],
)

SESSION_START_DECISIONS = Counter(
    "slas_session_start_total",
    "Session-start interceptor decisions",
    # action: skipped, registered_refresh, guest_login
    ["action"],
)
