"""File-backed instance registry.

The registry is a single JSON document:
    {"instances": [{prefix, port, containerName, status, createdAt, theme}], "nextPort": N}

Writes are atomic (temp file + rename). Concurrent writers are not
coordinated here; the orchestrator re-reads before every mutating decision.
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from sandboxhub.core.errors import ConfigIOError
from sandboxhub.core.models import Registry
from sandboxhub.infra.files import write_json_atomic
from sandboxhub.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class RegistryStore:
    """Load and save the registry document."""

    def __init__(self, path: str | Path, default_next_port: int) -> None:
        self._path = Path(path)
        self._default_next_port = default_next_port

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Registry:
        """Load the registry; an absent document yields an empty registry.

        Raises:
            ConfigIOError: Unreadable or malformed document
        """
        try:
            content = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Registry(instances=[], next_port=self._default_next_port)
        except OSError as exc:
            raise ConfigIOError(f"Failed to read registry {self._path}: {exc}") from exc

        try:
            data = json.loads(content)
            if "nextPort" not in data and "next_port" not in data:
                data["nextPort"] = self._default_next_port
            return Registry.model_validate(data)
        except (ValueError, TypeError, PydanticValidationError) as exc:
            raise ConfigIOError(f"Malformed registry {self._path}: {exc}") from exc

    def save(self, registry: Registry) -> None:
        """Persist the registry atomically, creating parent directories.

        Raises:
            ConfigIOError: Write failed (document on disk left unchanged)
        """
        try:
            write_json_atomic(self._path, registry.to_document())
        except OSError as exc:
            raise ConfigIOError(f"Failed to write registry {self._path}: {exc}") from exc

        logger.debug(
            "Registry saved",
            extra={
                "event": LogEvent.REGISTRY_SAVED,
                "path": str(self._path),
                "instances": len(registry.instances),
            },
        )
