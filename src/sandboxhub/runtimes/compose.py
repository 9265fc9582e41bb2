"""Compose CLI instance runtime.

Starts services with `docker compose up -d` against the generated compose
file and probes/stops containers through the docker CLI. Every command runs
with the configured hard timeout.
"""

import asyncio
import logging
import re
from pathlib import Path

from sandboxhub.config import ArtifactsConfig, RuntimeConfig
from sandboxhub.core.errors import BackendOperationError
from sandboxhub.core.interfaces import ContainerStatus, InstanceRuntime
from sandboxhub.infra.shell import CommandResult, run_command
from sandboxhub.logging_schema import LogEvent
from sandboxhub.runtimes.reload import ProxyReloader

logger = logging.getLogger(__name__)

_NOT_FOUND_PATTERN = re.compile(r"no such (container|object)", re.IGNORECASE)


def _is_absent(result: CommandResult) -> bool:
    return not result.ok and bool(_NOT_FOUND_PATTERN.search(result.stderr))


class ComposeRuntime(InstanceRuntime):
    """Instance runtime backed by the docker / docker compose CLI."""

    def __init__(
        self,
        runtime: RuntimeConfig,
        artifacts: ArtifactsConfig,
        reloader: ProxyReloader | None = None,
    ) -> None:
        self._runtime = runtime
        self._project_root = Path(artifacts.project_root)
        compose_file = Path(artifacts.compose_file)
        self._compose_file = (
            compose_file if compose_file.is_absolute() else self._project_root / compose_file
        )
        self._reloader = reloader or ProxyReloader(runtime)

    async def _docker(self, *args: str, cwd: str | None = None) -> CommandResult:
        return await run_command(
            [self._runtime.docker_binary, *args],
            timeout=self._runtime.command_timeout,
            cwd=cwd,
            max_output=self._runtime.max_output_bytes,
        )

    async def start(self, service_ref: str) -> None:
        """Bring up one compose service, then wait the startup grace period."""
        if not self._compose_file.exists():
            raise BackendOperationError(
                f"Compose file not found: {self._compose_file} (generate artifacts first)"
            )

        result = await self._docker(
            "compose",
            "-f",
            str(self._compose_file.resolve()),
            "up",
            "-d",
            service_ref,
            cwd=str(self._project_root),
        )
        result.check()

        if self._runtime.startup_grace > 0:
            await asyncio.sleep(self._runtime.startup_grace)

        logger.info(
            "Started service",
            extra={"event": LogEvent.CONTAINER_STARTED, "service": service_ref},
        )

    async def stop(self, container_name: str) -> None:
        """docker stop then docker rm; a missing container is success."""
        result = await self._docker("stop", container_name)
        if _is_absent(result):
            logger.info(
                "Container already absent",
                extra={"event": LogEvent.CONTAINER_STOPPED, "container": container_name},
            )
            return
        if not result.ok:
            logger.warning(
                "docker stop failed, removing anyway",
                extra={
                    "event": LogEvent.COMMAND_FAILED,
                    "container": container_name,
                    "error": result.stderr.strip(),
                },
            )

        result = await self._docker("rm", "-f", container_name)
        if not _is_absent(result):
            result.check()

        logger.info(
            "Stopped and removed container",
            extra={"event": LogEvent.CONTAINER_REMOVED, "container": container_name},
        )

    async def is_running(self, container_name: str) -> bool:
        return (await self.status(container_name)).running

    async def status(self, container_name: str) -> ContainerStatus:
        result = await self._docker("inspect", "--format", "{{.State.Status}}", container_name)
        if _is_absent(result):
            return ContainerStatus(running=False, detail="not found")
        result.check()

        state = result.stdout.strip()
        return ContainerStatus(running=state == "running", detail=state)

    async def reload_router(self) -> int:
        return await self._reloader.reload()
