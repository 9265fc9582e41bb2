"""Prometheus metrics definitions for the orchestrator and the proxy."""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================

# FAST: proxied HTTP round trips to a local backend (1ms ~ 60s)
_BUCKETS_FAST = (
    0.001, 0.005, 0.01, 0.025, 0.05,
    0.1, 0.25, 0.5, 1, 2.5,
    5, 15, 60,
)  # 13 buckets

# SLOW: orchestrator commands that shell out to docker (100ms ~ 180s)
_BUCKETS_SLOW = (
    0.1, 0.2, 0.4, 0.8, 1.5,
    3, 6, 12, 24, 48,
    96, 180,
)  # 12 buckets

# =============================================================================
# Orchestrator Metrics
# =============================================================================

ORCHESTRATOR_OPERATIONS = Counter(
    "sandboxhub_orchestrator_operations_total",
    "Orchestrator commands by outcome",
    ["operation", "result"],  # operation: create, delete, start, stop, list, get
)

ORCHESTRATOR_OPERATION_DURATION = Histogram(
    "sandboxhub_orchestrator_operation_duration_seconds",
    "Duration of orchestrator commands",
    ["operation"],
    buckets=_BUCKETS_SLOW,
)

ORCHESTRATOR_STATUS_RECONCILED = Counter(
    "sandboxhub_orchestrator_status_reconciled_total",
    "Cached instance statuses corrected from a live probe",
)

# =============================================================================
# Proxy Metrics
# =============================================================================

PROXY_REQUESTS = Counter(
    "sandboxhub_proxy_requests_total",
    "Proxied HTTP requests by outcome",
    ["outcome"],  # forwarded, bad_gateway, gateway_timeout, bad_request
)

PROXY_UPSTREAM_DURATION = Histogram(
    "sandboxhub_proxy_upstream_duration_seconds",
    "Time until the backend returned response headers",
    buckets=_BUCKETS_FAST,
)

PROXY_ROUTES = Gauge(
    "sandboxhub_proxy_routes",
    "Entries in the active route table",
)

PROXY_ROUTE_RELOADS = Counter(
    "sandboxhub_proxy_route_reloads_total",
    "Route table reload attempts",
    ["result"],  # success, failure
)

PROXY_WS_ACTIVE_CONNECTIONS = Gauge(
    "sandboxhub_proxy_ws_active_connections",
    "Currently relayed WebSocket connections",
)

PROXY_WS_ERRORS = Counter(
    "sandboxhub_proxy_ws_errors_total",
    "WebSocket relay errors",
    ["error_type"],
)


# =============================================================================
# Metric Initialization
# =============================================================================


def _init_metrics() -> None:
    """Initialize labeled metrics with zero values."""
    for op in ["create", "delete", "start", "stop", "list", "get"]:
        ORCHESTRATOR_OPERATION_DURATION.labels(operation=op)
        for result in ["success", "error"]:
            ORCHESTRATOR_OPERATIONS.labels(operation=op, result=result)

    for outcome in ["forwarded", "bad_gateway", "gateway_timeout", "bad_request"]:
        PROXY_REQUESTS.labels(outcome=outcome)

    for result in ["success", "failure"]:
        PROXY_ROUTE_RELOADS.labels(result=result)

    for error_type in ["handshake_failed", "connection_failed", "connection_closed", "relay_error"]:
        PROXY_WS_ERRORS.labels(error_type=error_type)


_init_metrics()
