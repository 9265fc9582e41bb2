"""Routing artifact writer.

Writes every derived artifact from one registry snapshot:
- route document (fatal): consumed by the reverse proxy
- compose file (fatal): one service per instance
- app config (best-effort): display metadata for the demo front-end
- edge nginx config (best-effort): external wildcard domain
"""

import json
import logging
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from sandboxhub.artifacts.templates import (
    render_app_config,
    render_compose,
    render_nginx,
    render_route_document,
)
from sandboxhub.config import ArtifactsConfig
from sandboxhub.core.errors import ConfigIOError
from sandboxhub.core.models import Registry, RouteDocument, utc_now_iso
from sandboxhub.infra.files import write_json_atomic, write_text_atomic
from sandboxhub.logging_schema import LogEvent
from sandboxhub.runtimes.naming import ResourceNaming

logger = logging.getLogger(__name__)


class ArtifactGenerator:
    """Regenerates routing artifacts from the registry."""

    def __init__(
        self,
        config: ArtifactsConfig,
        naming: ResourceNaming,
        domain: str,
        default_port: int,
        backend_host: str = "localhost",
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._config = config
        self._naming = naming
        self._domain = domain
        self._default_port = default_port
        self._backend_host = backend_host
        self._clock = clock

        root = Path(config.project_root)
        self.route_path = self._resolve(root, config.route_file)
        self.compose_path = self._resolve(root, config.compose_file)
        self.app_config_path = (
            self._resolve(root, config.app_config_file) if config.app_config_file else None
        )
        self.nginx_path = self._resolve(root, config.nginx_file) if config.nginx_file else None

    @staticmethod
    def _resolve(root: Path, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else root / candidate

    # =========================================================================
    # Route document
    # =========================================================================

    def write_routes(self, routes: dict[str, int]) -> None:
        """Write only the route document (used to drop a route ahead of teardown)."""
        document = render_route_document(routes, self._clock())
        self._write_required(self.route_path, lambda: write_json_atomic(self.route_path, document))

    def load_routes(self) -> dict[str, int] | None:
        """Read the current route document. None if absent or unreadable."""
        try:
            raw = self.route_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Failed to read route document %s: %s", self.route_path, exc)
            return None

        try:
            return RouteDocument.model_validate(json.loads(raw)).routes
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            logger.warning("Malformed route document %s: %s", self.route_path, exc)
            return None

    # =========================================================================
    # Full generation pass
    # =========================================================================

    def generate(self, registry: Registry) -> list[Path]:
        """Write all artifacts for this registry snapshot.

        Returns:
            Paths written successfully

        Raises:
            ConfigIOError: route document or compose file could not be written
        """
        generated_at = self._clock()
        routes = registry.routes()
        written: list[Path] = []

        route_document = render_route_document(routes, generated_at)
        self._write_required(
            self.route_path, lambda: write_json_atomic(self.route_path, route_document)
        )
        written.append(self.route_path)

        compose = render_compose(registry, self._config, self._naming, generated_at)
        self._write_required(
            self.compose_path, lambda: write_text_atomic(self.compose_path, compose)
        )
        written.append(self.compose_path)

        if self.app_config_path is not None:
            app_config = render_app_config(registry, generated_at)
            path = self.app_config_path
            if self._write_optional(path, lambda: write_json_atomic(path, app_config)):
                written.append(path)

        if self.nginx_path is not None:
            nginx = render_nginx(
                routes,
                self._config,
                self._domain,
                self._default_port,
                self._backend_host,
                generated_at,
            )
            path = self.nginx_path
            if self._write_optional(path, lambda: write_text_atomic(path, nginx)):
                written.append(path)

        logger.info(
            "Generated routing artifacts",
            extra={
                "event": LogEvent.ARTIFACT_WRITTEN,
                "instances": len(registry.instances),
                "files": [str(p) for p in written],
            },
        )
        return written

    def _write_required(self, path: Path, write: Callable[[], None]) -> None:
        try:
            write()
        except OSError as exc:
            raise ConfigIOError(f"Failed to write {path}: {exc}") from exc

    def _write_optional(self, path: Path, write: Callable[[], None]) -> bool:
        try:
            write()
        except OSError as exc:
            logger.warning(
                "Failed to write optional artifact",
                extra={"event": LogEvent.ARTIFACT_FAILED, "path": str(path), "error": str(exc)},
            )
            return False
        return True
