"""Resource naming conventions for instance backing processes."""

from sandboxhub.config import RuntimeConfig


class ResourceNaming:
    """Centralized naming derived from the instance prefix."""

    def __init__(self, config: RuntimeConfig) -> None:
        self._container_prefix = config.container_prefix
        self._service_prefix = config.service_prefix

    def container_name(self, prefix: str) -> str:
        return f"{self._container_prefix}{prefix}"

    def service_name(self, prefix: str) -> str:
        return f"{self._service_prefix}{prefix}"
