"""ContainerAPI tests against a mocked Docker Engine."""

import httpx
import pytest

from sandboxhub.config import DockerConfig
from sandboxhub.infra import ContainerAPI, DockerClient


def _engine(responses: dict[tuple[str, str], int], seen: list[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        status = responses.get((request.method, request.url.path), 500)
        if status == 200:
            return httpx.Response(200, json={"State": {"Running": True}})
        return httpx.Response(status)

    return httpx.MockTransport(handler)


class TestContainerAPI:
    """ContainerAPI tests."""

    async def test_inspect(self) -> None:
        seen: list[httpx.Request] = []
        transport = _engine({("GET", "/containers/sandbox-app-a/json"): 200}, seen)
        api = ContainerAPI(DockerClient(DockerConfig(), transport=transport))

        assert await api.inspect("sandbox-app-a") == {"State": {"Running": True}}

    async def test_inspect_missing(self) -> None:
        seen: list[httpx.Request] = []
        transport = _engine({("GET", "/containers/sandbox-app-a/json"): 404}, seen)
        api = ContainerAPI(DockerClient(DockerConfig(), transport=transport))

        assert await api.inspect("sandbox-app-a") is None

    @pytest.mark.parametrize("status", [204, 304, 404])
    async def test_stop_tolerates_stopped_or_missing(self, status: int) -> None:
        seen: list[httpx.Request] = []
        transport = _engine({("POST", "/containers/sandbox-app-a/stop"): status}, seen)
        api = ContainerAPI(DockerClient(DockerConfig(), transport=transport))

        await api.stop("sandbox-app-a", timeout=3)

        assert seen[0].url.params["t"] == "3"

    async def test_remove_server_error_raises(self) -> None:
        seen: list[httpx.Request] = []
        transport = _engine({}, seen)
        api = ContainerAPI(DockerClient(DockerConfig(), transport=transport))

        with pytest.raises(httpx.HTTPStatusError):
            await api.remove("sandbox-app-a")

        assert seen[0].url.params["force"] == "true"

    async def test_client_recreated_after_close(self) -> None:
        client = DockerClient(DockerConfig(), transport=_engine({}, []))

        first = await client.get()
        await client.close()

        assert first.is_closed
        assert await client.get() is not first
