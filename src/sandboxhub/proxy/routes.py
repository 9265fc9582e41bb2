"""Live route table for the subdomain proxy.

The table is an immutable snapshot. Reload builds a new snapshot from the
route document and replaces the holder's reference in one assignment, so a
request handler that already read the reference keeps a consistent view and
never observes a partially updated table.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from pydantic import ValidationError as PydanticValidationError

from sandboxhub.core.errors import ConfigIOError
from sandboxhub.core.models import RouteDocument
from sandboxhub.logging_schema import LogEvent
from sandboxhub.metrics import PROXY_ROUTE_RELOADS, PROXY_ROUTES

logger = logging.getLogger(__name__)

DEFAULT_PREFIX_LABEL = "default"


class ProxyState(StrEnum):
    LOADING = "loading"
    SERVING = "serving"
    RELOADING = "reloading"


@dataclass(frozen=True)
class RouteTable:
    """Immutable prefix -> port snapshot."""

    routes: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    updated_at: str | None = None
    loaded_at: float = field(default_factory=time.time)

    @classmethod
    def from_mapping(cls, routes: Mapping[str, int], updated_at: str | None = None) -> "RouteTable":
        # Host matching is case-insensitive, so keys are stored lowercased
        normalized = {prefix.lower(): port for prefix, port in routes.items()}
        return cls(routes=MappingProxyType(normalized), updated_at=updated_at)

    def lookup(self, prefix: str | None) -> int | None:
        if prefix is None:
            return None
        return self.routes.get(prefix)

    def __len__(self) -> int:
        return len(self.routes)


class HostMatcher:
    """Extract the instance prefix from a Host header.

    Matches `<prefix>.<root_domain>` with an optional `:port` suffix,
    case-insensitively.
    """

    def __init__(self, root_domain: str) -> None:
        self._root_domain = root_domain.lower().strip(".")
        self._pattern = re.compile(rf"([^.]+)\.{re.escape(self._root_domain)}")

    @property
    def root_domain(self) -> str:
        return self._root_domain

    def prefix(self, host: str | None) -> str | None:
        if not host:
            return None
        hostname = host.strip().lower()
        if hostname.startswith("["):
            # IPv6 literal
            return None
        hostname, _, _ = hostname.partition(":")
        match = self._pattern.fullmatch(hostname)
        return match.group(1) if match else None


def load_route_table(path: Path) -> RouteTable:
    """Read and validate the route document.

    Raises:
        FileNotFoundError: Document does not exist
        ConfigIOError: Unreadable or malformed document
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except OSError as exc:
        raise ConfigIOError(f"Failed to read route document {path}: {exc}") from exc

    try:
        document = RouteDocument.model_validate(json.loads(raw))
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        raise ConfigIOError(f"Malformed route document {path}: {exc}") from exc

    return RouteTable.from_mapping(document.routes, document.updated_at)


class RouteTableHolder:
    """Single swappable reference to the active route table."""

    def __init__(self, path: Path, default_port: int) -> None:
        self._path = path
        self._default_port = default_port
        self._table = RouteTable()
        self._state = ProxyState.LOADING
        self._mtime: float | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def table(self) -> RouteTable:
        return self._table

    @property
    def state(self) -> ProxyState:
        return self._state

    @property
    def default_port(self) -> int:
        return self._default_port

    def resolve(self, prefix: str | None) -> int:
        """Backend port for a prefix; unknown or missing prefix gets the default."""
        port = self._table.lookup(prefix)
        return port if port is not None else self._default_port

    def load_initial(self) -> None:
        """Startup load. A missing document yields an empty table."""
        try:
            self._swap(load_route_table(self._path))
        except FileNotFoundError:
            logger.warning("Route document not found, serving default backend: %s", self._path)
            self._swap(RouteTable())
        except ConfigIOError as exc:
            PROXY_ROUTE_RELOADS.labels(result="failure").inc()
            logger.warning(
                "Failed to load routes, serving default backend",
                extra={"event": LogEvent.ROUTES_RELOAD_FAILED, "error": exc.message},
            )
            self._swap(RouteTable())

    def reload(self) -> bool:
        """Re-read the route document and swap the table.

        On failure the previous table stays active.

        Returns:
            True if a new table was installed
        """
        self._state = ProxyState.RELOADING
        try:
            table = load_route_table(self._path)
        except (FileNotFoundError, ConfigIOError) as exc:
            self._state = ProxyState.SERVING
            PROXY_ROUTE_RELOADS.labels(result="failure").inc()
            logger.warning(
                "Route reload failed, keeping previous table",
                extra={
                    "event": LogEvent.ROUTES_RELOAD_FAILED,
                    "path": str(self._path),
                    "error": str(exc),
                    "routes": len(self._table),
                },
            )
            return False

        self._swap(table)
        PROXY_ROUTE_RELOADS.labels(result="success").inc()
        return True

    def reload_if_changed(self) -> bool:
        """Reload when the document's mtime moved (file-watch trigger)."""
        try:
            mtime = self._path.stat().st_mtime
        except OSError:
            return False
        if mtime == self._mtime:
            return False
        return self.reload()

    def _swap(self, table: RouteTable) -> None:
        try:
            self._mtime = self._path.stat().st_mtime
        except OSError:
            self._mtime = None
        self._table = table
        self._state = ProxyState.SERVING
        PROXY_ROUTES.set(len(table))
        logger.info(
            "Route table loaded: %d routes (updated %s)",
            len(table),
            table.updated_at,
            extra={
                "event": LogEvent.ROUTES_LOADED,
                "routes": len(table),
                "updated_at": table.updated_at,
                "default_port": self._default_port,
            },
        )
