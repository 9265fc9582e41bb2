"""Instance runtimes."""

from sandboxhub.config import Settings, get_settings
from sandboxhub.core.interfaces import InstanceRuntime
from sandboxhub.runtimes.compose import ComposeRuntime
from sandboxhub.runtimes.docker import DockerApiRuntime
from sandboxhub.runtimes.naming import ResourceNaming
from sandboxhub.runtimes.reload import ProxyReloader


def create_runtime(settings: Settings | None = None) -> InstanceRuntime:
    """Build the runtime selected by settings.runtime.backend."""
    settings = settings or get_settings()
    backend = settings.runtime.backend
    if backend == "compose":
        return ComposeRuntime(settings.runtime, settings.artifacts)
    if backend == "docker":
        return DockerApiRuntime(settings.runtime, settings.artifacts, settings.docker)
    raise ValueError(f"Unknown runtime backend: {backend}")


__all__ = [
    "ComposeRuntime",
    "DockerApiRuntime",
    "ProxyReloader",
    "ResourceNaming",
    "create_runtime",
]
