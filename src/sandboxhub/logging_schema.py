"""Log event types for structured logging."""

from enum import StrEnum


class LogEvent(StrEnum):
    """Log event types.

    Used with logger.info/warning/error extra dict:
        logger.info("message", extra={"event": LogEvent.INSTANCE_CREATED, ...})
    """

    # Application lifecycle
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"

    # Orchestrator events
    INSTANCE_CREATED = "instance_created"
    INSTANCE_DELETED = "instance_deleted"
    INSTANCE_STARTED = "instance_started"
    INSTANCE_STOPPED = "instance_stopped"
    INSTANCE_FAILED = "instance_failed"
    STATUS_RECONCILED = "status_reconciled"
    STATUS_PROBE_FAILED = "status_probe_failed"

    # Registry / artifact events
    REGISTRY_SAVED = "registry_saved"
    ARTIFACT_WRITTEN = "artifact_written"
    ARTIFACT_FAILED = "artifact_failed"
    ROUTES_DIVERGED = "routes_diverged"

    # Container events
    CONTAINER_STARTED = "container_started"
    CONTAINER_STOPPED = "container_stopped"
    CONTAINER_REMOVED = "container_removed"
    COMMAND_FAILED = "command_failed"
    COMMAND_TIMEOUT = "command_timeout"

    # Router reload (sender side)
    RELOAD_SENT = "reload_sent"
    RELOAD_SKIPPED = "reload_skipped"

    # Proxy events
    ROUTES_LOADED = "routes_loaded"
    ROUTES_RELOAD_FAILED = "routes_reload_failed"
    PROXY_REQUEST = "proxy_request"
    UPSTREAM_ERROR = "upstream_error"
    BAD_REQUEST = "bad_request"
    WS_ERROR = "ws_error"
