"""Logging configuration for sandboxhub.

Both processes (the orchestrator and the subdomain proxy) log through the
root logger with one handler:
- text: Human-readable for local development
- json: One object per line with the LogEvent name and instance prefix
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import json as jsonlogger

from sandboxhub.config import LoggingConfig


def _component(logger_name: str) -> str:
    return "proxy" if logger_name.startswith("sandboxhub.proxy") else "orchestrator"


class RateLimitFilter(logging.Filter):
    """Suppress identical messages repeated within a time window.

    A proxy pointed at a dead backend logs the same warning for every
    request; this keeps one per window. Records carrying a `prefix` are
    keyed per instance, so one failing sandbox never hides another.
    ERROR and above always pass through.

    Args:
        rate_limit_seconds: Minimum seconds between identical messages (0 disables)
        max_cache_size: Maximum number of messages to track
    """

    def __init__(
        self,
        rate_limit_seconds: float = 5.0,
        max_cache_size: int = 1000,
        name: str = "",
    ) -> None:
        super().__init__(name)
        self._rate_limit = rate_limit_seconds
        self._max_cache = max_cache_size
        self._last_log: dict[tuple, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR or self._rate_limit <= 0:
            return True

        key = (
            record.name,
            record.lineno,
            record.getMessage(),
            getattr(record, "prefix", None),
        )
        now = time.monotonic()
        last = self._last_log.get(key)
        if last is not None and now - last < self._rate_limit:
            return False
        self._last_log[key] = now

        if len(self._last_log) > self._max_cache:
            # Drop everything outside the window first, then the oldest tenth
            cutoff = now - self._rate_limit
            self._last_log = {k: t for k, t in self._last_log.items() if t >= cutoff}
            if len(self._last_log) > self._max_cache:
                by_age = sorted(self._last_log, key=self._last_log.__getitem__)
                for old_key in by_age[: self._max_cache // 10 or 1]:
                    del self._last_log[old_key]

        return True


class SandboxJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter for log aggregation.

    Every line carries timestamp, level, logger, service and component
    (`orchestrator` or `proxy`). LogEvent members are written as their
    string value.
    """

    def __init__(self, config: LoggingConfig, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._service = config.service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self._service
        log_record["component"] = _component(record.name)

        event = log_record.get("event")
        if event is not None:
            log_record["event"] = str(event)

        if record.levelno >= logging.WARNING:
            log_record["source"] = f"{record.filename}:{record.lineno}"

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        log_record.pop("color_message", None)


def build_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.format == "json":
        return SandboxJsonFormatter(config)
    return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def setup_logging(config: LoggingConfig) -> logging.Handler:
    """Install the sandboxhub handler on the root logger.

    Logs go to stderr so command output on stdout stays machine-readable.

    Returns:
        The installed handler
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(config))
    handler.addFilter(RateLimitFilter(rate_limit_seconds=config.rate_limit_seconds))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in ("uvicorn", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = False
        uv_logger.addHandler(handler)

    # Per-request logging is done by the proxy itself
    logging.getLogger("uvicorn.access").disabled = True

    for noisy in ("httpx", "httpcore", "websockets"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return handler
