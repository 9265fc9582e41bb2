"""Docker Engine API client.

Async access for inspecting, stopping and removing instance containers
over the Unix socket or TCP. Creation stays with compose.
"""

import logging

import httpx

from sandboxhub.config import DockerConfig

logger = logging.getLogger(__name__)

_STOP_TIMEOUT_BUFFER = 10  # seconds beyond the container stop grace period


class DockerClient:
    """Lazily created httpx client bound to the Docker daemon."""

    def __init__(
        self,
        config: DockerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _create_client(self) -> httpx.AsyncClient:
        host = self._config.host
        timeout = self._config.api_timeout
        if self._transport is not None:
            return httpx.AsyncClient(
                transport=self._transport, base_url="http://docker", timeout=timeout
            )
        if host.startswith("unix://"):
            transport = httpx.AsyncHTTPTransport(uds=host.removeprefix("unix://"))
            return httpx.AsyncClient(transport=transport, base_url="http://docker", timeout=timeout)
        return httpx.AsyncClient(base_url=host.replace("tcp://", "http://", 1), timeout=timeout)

    async def get(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = self._create_client()
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


class ContainerAPI:
    """Container endpoints used for probing and teardown."""

    def __init__(self, client: DockerClient) -> None:
        self._docker = client

    async def inspect(self, name: str) -> dict | None:
        """Inspect a container. Returns None if it does not exist."""
        client = await self._docker.get()
        resp = await client.get(f"/containers/{name}/json")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def stop(self, name: str, timeout: int = 10) -> None:
        """Stop a container; already stopped (304) or missing (404) is fine."""
        client = await self._docker.get()
        # Docker waits up to `t` seconds before SIGKILL
        resp = await client.post(
            f"/containers/{name}/stop",
            params={"t": str(timeout)},
            timeout=timeout + _STOP_TIMEOUT_BUFFER,
        )
        if resp.status_code not in (204, 304, 404):
            resp.raise_for_status()
        logger.debug("Stopped container: %s", name)

    async def remove(self, name: str, force: bool = True) -> None:
        """Remove a container (missing is fine)."""
        client = await self._docker.get()
        resp = await client.delete(
            f"/containers/{name}", params={"force": "true" if force else "false"}
        )
        if resp.status_code == 404:
            logger.debug("Container not found: %s", name)
            return
        resp.raise_for_status()
        logger.debug("Removed container: %s", name)
