"""Prometheus metrics."""

from sandboxhub.metrics.collector import (
    ORCHESTRATOR_OPERATION_DURATION,
    ORCHESTRATOR_OPERATIONS,
    ORCHESTRATOR_STATUS_RECONCILED,
    PROXY_REQUESTS,
    PROXY_ROUTE_RELOADS,
    PROXY_ROUTES,
    PROXY_UPSTREAM_DURATION,
    PROXY_WS_ACTIVE_CONNECTIONS,
    PROXY_WS_ERRORS,
)

__all__ = [
    "ORCHESTRATOR_OPERATIONS",
    "ORCHESTRATOR_OPERATION_DURATION",
    "ORCHESTRATOR_STATUS_RECONCILED",
    "PROXY_REQUESTS",
    "PROXY_ROUTE_RELOADS",
    "PROXY_ROUTES",
    "PROXY_UPSTREAM_DURATION",
    "PROXY_WS_ACTIVE_CONNECTIONS",
    "PROXY_WS_ERRORS",
]
