"""Docker Engine API instance runtime.

Services are still brought up from the generated compose file, but probes
and stop/remove go through the Engine API instead of spawning the CLI.
"""

import logging

import httpx

from sandboxhub.config import ArtifactsConfig, DockerConfig, RuntimeConfig
from sandboxhub.core.errors import BackendOperationError
from sandboxhub.core.interfaces import ContainerStatus
from sandboxhub.infra.docker import ContainerAPI, DockerClient
from sandboxhub.logging_schema import LogEvent
from sandboxhub.runtimes.compose import ComposeRuntime
from sandboxhub.runtimes.reload import ProxyReloader

logger = logging.getLogger(__name__)


class DockerApiRuntime(ComposeRuntime):
    """Compose for start, Engine API for everything else."""

    def __init__(
        self,
        runtime: RuntimeConfig,
        artifacts: ArtifactsConfig,
        docker: DockerConfig,
        containers: ContainerAPI | None = None,
        reloader: ProxyReloader | None = None,
    ) -> None:
        super().__init__(runtime, artifacts, reloader)
        self._docker_config = docker
        self._client: DockerClient | None = None
        if containers is None:
            self._client = DockerClient(docker)
            containers = ContainerAPI(self._client)
        self._containers = containers

    async def stop(self, container_name: str) -> None:
        try:
            existing = await self._containers.inspect(container_name)
            if not existing:
                logger.info(
                    "Container already absent",
                    extra={"event": LogEvent.CONTAINER_STOPPED, "container": container_name},
                )
                return

            if existing.get("State", {}).get("Running", False):
                await self._containers.stop(container_name, timeout=self._docker_config.stop_timeout)
            await self._containers.remove(container_name)
        except httpx.HTTPError as exc:
            raise BackendOperationError(f"Failed to stop {container_name}: {exc}") from exc

        logger.info(
            "Stopped and removed container",
            extra={"event": LogEvent.CONTAINER_REMOVED, "container": container_name},
        )

    async def status(self, container_name: str) -> ContainerStatus:
        try:
            data = await self._containers.inspect(container_name)
        except httpx.HTTPError as exc:
            raise BackendOperationError(f"Failed to inspect {container_name}: {exc}") from exc

        if not data:
            return ContainerStatus(running=False, detail="not found")

        state = data.get("State", {})
        detail = state.get("Status", "")
        health = (state.get("Health") or {}).get("Status")
        if health:
            detail = f"{detail} ({health})"
        return ContainerStatus(running=state.get("Running", False), detail=detail)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
