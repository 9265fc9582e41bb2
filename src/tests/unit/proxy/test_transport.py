"""Tests for forwarding helpers and WebSocket relay functions in transport module."""

from unittest.mock import AsyncMock

import pytest

from sandboxhub.proxy.client import HOP_BY_HOP_HEADERS
from sandboxhub.proxy.transport import (
    Target,
    _close_code,
    _relay_backend_to_client,
    _relay_client_to_backend,
    _RelayClosed,
    build_forward_headers,
)

TARGET = Target(host="localhost", port=5175, prefix_label="abc123xyz00001")


class _Messages:
    """Async iterator standing in for a backend connection's message stream."""

    def __init__(self, messages: list[str | bytes], close_code: int | None = 1000) -> None:
        self._messages = list(messages)
        self.close_code = close_code
        self.send = AsyncMock()
        self.close = AsyncMock()

    def __aiter__(self) -> "_Messages":
        return self

    async def __anext__(self) -> str | bytes:
        if not self._messages:
            raise StopAsyncIteration
        return self._messages.pop(0)


class TestBuildForwardHeaders:
    """build_forward_headers() tests."""

    def test_adds_forwarded_headers(self) -> None:
        headers = build_forward_headers(
            [("host", "abc123xyz00001.example.com"), ("accept", "text/html")],
            inbound_host="abc123xyz00001.example.com",
            scheme="https",
            client_ip="192.0.2.10",
            target=TARGET,
            excluded=HOP_BY_HOP_HEADERS,
        )

        assert dict(headers) == {
            "accept": "text/html",
            "x-forwarded-for": "192.0.2.10",
            "x-forwarded-host": "abc123xyz00001.example.com",
            "x-forwarded-proto": "https",
            "x-forwarded-port": "443",
            "x-forwarded-prefix": "abc123xyz00001",
        }

    def test_strips_hop_by_hop_and_spoofed_values(self) -> None:
        headers = build_forward_headers(
            [
                ("Connection", "Upgrade"),
                ("Transfer-Encoding", "chunked"),
                ("X-Forwarded-Host", "evil.example.net"),
                ("X-Forwarded-Prefix", "other"),
            ],
            inbound_host="abc123xyz00001.example.com",
            scheme="http",
            client_ip=None,
            target=TARGET,
            excluded=HOP_BY_HOP_HEADERS,
        )

        names = [key.lower() for key, _ in headers]
        assert "connection" not in names
        assert "transfer-encoding" not in names
        assert "x-forwarded-for" not in names
        assert names.count("x-forwarded-host") == 1
        assert dict(headers)["x-forwarded-host"] == "abc123xyz00001.example.com"
        assert dict(headers)["x-forwarded-port"] == "80"

    def test_keeps_repeated_headers(self) -> None:
        headers = build_forward_headers(
            [("cookie", "a=1"), ("cookie", "b=2")],
            inbound_host="example.com",
            scheme="http",
            client_ip=None,
            target=TARGET,
            excluded=HOP_BY_HOP_HEADERS,
        )

        assert [value for key, value in headers if key == "cookie"] == ["a=1", "b=2"]


class TestRelayClientToBackend:
    """_relay_client_to_backend() tests."""

    async def test_forwards_text_and_bytes(self) -> None:
        mock_client_ws = AsyncMock()
        backend = _Messages([])
        mock_client_ws.receive = AsyncMock(
            side_effect=[
                {"type": "websocket.receive", "text": "hello"},
                {"type": "websocket.receive", "bytes": b"\x00\x01\x02"},
                {"type": "websocket.disconnect"},
            ]
        )

        with pytest.raises(_RelayClosed):
            await _relay_client_to_backend(mock_client_ws, backend)

        assert backend.send.await_args_list[0].args == ("hello",)
        assert backend.send.await_args_list[1].args == (b"\x00\x01\x02",)

    async def test_client_disconnect_closes_backend(self) -> None:
        """Closing one side closes the other."""
        mock_client_ws = AsyncMock()
        backend = _Messages([])
        mock_client_ws.receive = AsyncMock(return_value={"type": "websocket.disconnect"})

        with pytest.raises(_RelayClosed):
            await _relay_client_to_backend(mock_client_ws, backend)

        backend.close.assert_awaited_once()
        backend.send.assert_not_called()


class TestRelayBackendToClient:
    """_relay_backend_to_client() tests."""

    async def test_forwards_messages_then_closes_client(self) -> None:
        mock_client_ws = AsyncMock()
        backend = _Messages(["msg1", b"\xff"], close_code=4001)

        with pytest.raises(_RelayClosed):
            await _relay_backend_to_client(mock_client_ws, backend)

        mock_client_ws.send_text.assert_awaited_once_with("msg1")
        mock_client_ws.send_bytes.assert_awaited_once_with(b"\xff")
        mock_client_ws.close.assert_awaited_once_with(code=4001)

    async def test_client_already_gone(self) -> None:
        mock_client_ws = AsyncMock()
        mock_client_ws.close.side_effect = RuntimeError("already closed")
        backend = _Messages([])

        with pytest.raises(_RelayClosed):
            await _relay_backend_to_client(mock_client_ws, backend)


class TestCloseCode:
    """_close_code() tests."""

    @pytest.mark.parametrize(
        ("code", "expected"),
        [(None, 1000), (1005, 1000), (1006, 1000), (1015, 1000), (1001, 1001), (4000, 4000)],
    )
    def test_reserved_codes_are_replaced(self, code: int | None, expected: int) -> None:
        assert _close_code(code) == expected
