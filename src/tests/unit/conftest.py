"""Shared fixtures for sandboxhub unit tests."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from sandboxhub.artifacts import ArtifactGenerator
from sandboxhub.config import (
    ArtifactsConfig,
    DockerConfig,
    InstanceConfig,
    LoggingConfig,
    ProxyConfig,
    RuntimeConfig,
    Settings,
)
from sandboxhub.core.interfaces import ContainerStatus, InstanceRuntime
from sandboxhub.orchestrator import InstanceOrchestrator
from sandboxhub.runtimes import ResourceNaming
from sandboxhub.store import RegistryStore

FIXED_TIMESTAMP = "2024-01-01T00:00:00.000Z"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary project directory."""
    return Settings(
        instance=InstanceConfig(
            registry_file=".instances.json",
            subdomain_domain="sandbox.example.com",
        ),
        artifacts=ArtifactsConfig(
            project_root=str(tmp_path),
            route_file="config/subdomain-proxy.json",
            compose_file="docker-compose.yml",
            app_config_file="config/app-config.json",
            nginx_file="nginx/nginx.conf",
        ),
        runtime=RuntimeConfig(startup_grace=0, command_timeout=5),
        docker=DockerConfig(),
        proxy=ProxyConfig(
            root_domain="example.com",
            route_file="config/subdomain-proxy.json",
        ),
        logging=LoggingConfig(),
    )


@pytest.fixture
def naming(settings: Settings) -> ResourceNaming:
    return ResourceNaming(settings.runtime)


@pytest.fixture
def store(settings: Settings, tmp_path: Path) -> RegistryStore:
    return RegistryStore(tmp_path / settings.instance.registry_file, settings.instance.default_port)


@pytest.fixture
def generator(settings: Settings, naming: ResourceNaming) -> ArtifactGenerator:
    return ArtifactGenerator(
        settings.artifacts,
        naming,
        domain=settings.instance.subdomain_domain,
        default_port=settings.instance.default_port,
        clock=lambda: FIXED_TIMESTAMP,
    )


@pytest.fixture
def mock_runtime() -> AsyncMock:
    """InstanceRuntime mock tracking running containers in memory.

    start(service_ref) marks `sandbox-app-<prefix>` running (service refs are
    `app-<prefix>`), stop(container_name) clears it.
    """
    running: set[str] = set()
    runtime = AsyncMock(spec=InstanceRuntime)
    runtime.running = running

    async def start(service_ref: str) -> None:
        running.add("sandbox-app-" + service_ref.removeprefix("app-"))

    async def stop(container_name: str) -> None:
        running.discard(container_name)

    async def is_running(container_name: str) -> bool:
        return container_name in running

    async def status(container_name: str) -> ContainerStatus:
        alive = container_name in running
        return ContainerStatus(running=alive, detail="running" if alive else "not found")

    runtime.start = AsyncMock(side_effect=start)
    runtime.stop = AsyncMock(side_effect=stop)
    runtime.is_running = AsyncMock(side_effect=is_running)
    runtime.status = AsyncMock(side_effect=status)
    runtime.reload_router = AsyncMock(return_value=1)
    return runtime


@pytest.fixture
def orchestrator(
    settings: Settings,
    store: RegistryStore,
    generator: ArtifactGenerator,
    mock_runtime: AsyncMock,
    naming: ResourceNaming,
) -> InstanceOrchestrator:
    """Orchestrator over a temp registry, with every port reported free."""
    return InstanceOrchestrator(
        settings.instance,
        store,
        generator,
        mock_runtime,
        naming,
        is_available=lambda port: True,
    )
