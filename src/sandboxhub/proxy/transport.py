"""HTTP and WebSocket forwarding to instance backends.

HTTP bodies are streamed in both directions. Upgrades are relayed frame by
frame through the websockets client until either side closes.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncGenerator
from dataclasses import dataclass

import httpx
import websockets
from fastapi import Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.requests import ClientDisconnect
from starlette.websockets import WebSocket, WebSocketDisconnect
from websockets.asyncio.client import ClientConnection

from sandboxhub.config import ProxyConfig
from sandboxhub.core.errors import BadGatewayError, BadRequestError, GatewayTimeoutError
from sandboxhub.logging_schema import LogEvent
from sandboxhub.metrics import (
    PROXY_REQUESTS,
    PROXY_UPSTREAM_DURATION,
    PROXY_WS_ACTIVE_CONNECTIONS,
    PROXY_WS_ERRORS,
)

from .client import HOP_BY_HOP_HEADERS, WS_HOP_BY_HOP_HEADERS, filter_headers

logger = logging.getLogger(__name__)

# Overwritten by the proxy; a client-supplied value is never passed through
_FORWARDED_HEADERS = frozenset(
    {"x-forwarded-host", "x-forwarded-proto", "x-forwarded-port", "x-forwarded-prefix"}
)

_BODYLESS_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True)
class Target:
    """Resolved backend for one inbound connection."""

    host: str
    port: int
    prefix_label: str  # matched prefix, or "default"

    @property
    def authority(self) -> str:
        return f"{self.host}:{self.port}"


def _target_path(scope: dict) -> str:
    path = scope.get("raw_path") or scope.get("path", "/").encode()
    target = path.decode("latin-1") or "/"
    query_string = scope.get("query_string", b"")
    if query_string:
        target = f"{target}?{query_string.decode('latin-1')}"
    return target


def _forwarded_port(host: str, scheme: str) -> str:
    _, sep, port = host.rpartition(":")
    if sep and port.isdigit():
        return port
    return "443" if scheme in ("https", "wss") else "80"


def build_forward_headers(
    headers: list[tuple[str, str]],
    *,
    inbound_host: str,
    scheme: str,
    client_ip: str | None,
    target: Target,
    excluded: frozenset[str],
) -> list[tuple[str, str]]:
    """Backend request headers: inbound headers minus hop-by-hop, plus X-Forwarded-*."""
    forwarded_for = None
    result: list[tuple[str, str]] = []
    for key, value in filter_headers(headers, excluded):
        lower = key.lower()
        if lower in _FORWARDED_HEADERS:
            continue
        if lower == "x-forwarded-for":
            forwarded_for = value
            continue
        result.append((key, value))

    if client_ip:
        forwarded_for = f"{forwarded_for}, {client_ip}" if forwarded_for else client_ip
    if forwarded_for:
        result.append(("x-forwarded-for", forwarded_for))

    result.extend(
        [
            ("x-forwarded-host", inbound_host),
            ("x-forwarded-proto", scheme),
            ("x-forwarded-port", _forwarded_port(inbound_host, scheme)),
            ("x-forwarded-prefix", target.prefix_label),
        ]
    )
    return result


# =============================================================================
# HTTP
# =============================================================================


async def proxy_http(
    request: Request,
    client: httpx.AsyncClient,
    target: Target,
) -> StreamingResponse:
    """Forward one HTTP request and stream the backend response back verbatim.

    Raises:
        BadGatewayError: Backend unreachable or broke the protocol
        GatewayTimeoutError: Backend did not answer within the timeouts
        BadRequestError: Inbound request could not be forwarded as-is
    """
    inbound_host = request.headers.get("host", "")
    target_url = f"http://{target.authority}{_target_path(request.scope)}"
    headers = build_forward_headers(
        request.headers.items(),
        inbound_host=inbound_host,
        scheme=request.url.scheme,
        client_ip=request.client.host if request.client else None,
        target=target,
        excluded=HOP_BY_HOP_HEADERS,
    )
    headers.append(("host", target.authority))
    content = request.stream() if request.method not in _BODYLESS_METHODS else None

    log_extra = {
        "prefix": target.prefix_label,
        "method": request.method,
        "target_url": target_url,
    }
    start = time.perf_counter()

    try:
        upstream_request = client.build_request(
            method=request.method,
            url=target_url,
            headers=headers,
            content=content,
        )
        upstream_response = await client.send(upstream_request, stream=True)
    except httpx.TimeoutException as exc:
        PROXY_REQUESTS.labels(outcome="gateway_timeout").inc()
        logger.warning(
            "Timeout waiting for backend",
            extra={
                "event": LogEvent.UPSTREAM_ERROR,
                "error_type": "timeout",
                "error": str(exc),
                **log_extra,
            },
        )
        raise GatewayTimeoutError(f"Backend on port {target.port} timed out") from exc
    except (httpx.InvalidURL, httpx.LocalProtocolError, ClientDisconnect) as exc:
        PROXY_REQUESTS.labels(outcome="bad_request").inc()
        logger.warning(
            "Malformed inbound request",
            extra={
                "event": LogEvent.BAD_REQUEST,
                "error": str(exc) or type(exc).__name__,
                **log_extra,
            },
        )
        raise BadRequestError(f"Request error: {exc or type(exc).__name__}") from exc
    except httpx.TransportError as exc:
        PROXY_REQUESTS.labels(outcome="bad_gateway").inc()
        logger.warning(
            "Backend unreachable",
            extra={
                "event": LogEvent.UPSTREAM_ERROR,
                "error_type": "connection_error",
                "error": str(exc),
                **log_extra,
            },
        )
        raise BadGatewayError(
            f"Proxy error: {exc}. Make sure the instance is running on port {target.port}"
        ) from exc

    PROXY_UPSTREAM_DURATION.observe(time.perf_counter() - start)
    PROXY_REQUESTS.labels(outcome="forwarded").inc()
    logger.debug(
        "Forwarded request",
        extra={
            "event": LogEvent.PROXY_REQUEST,
            "status": upstream_response.status_code,
            **log_extra,
        },
    )

    async def stream_response() -> AsyncGenerator[bytes]:
        try:
            async for chunk in upstream_response.aiter_raw():
                yield chunk
        except httpx.HTTPError as exc:
            logger.warning(
                "Backend response aborted mid-stream",
                extra={
                    "event": LogEvent.UPSTREAM_ERROR,
                    "error_type": "stream_error",
                    "error": str(exc),
                    **log_extra,
                },
            )
            raise
        finally:
            await upstream_response.aclose()

    response = StreamingResponse(stream_response(), status_code=upstream_response.status_code)
    for key, value in filter_headers(upstream_response.headers.multi_items()):
        response.headers.append(key, value)
    return response


# =============================================================================
# WebSocket
# =============================================================================


# Reserved codes that must never be sent in a close frame
_RESERVED_CLOSE_CODES = frozenset({1005, 1006, 1015})


def _close_code(code: int | None) -> int:
    if code is None or code in _RESERVED_CLOSE_CODES:
        return 1000
    return code


class _RelayClosed(Exception):
    """One direction finished; the peer task is cancelled by the TaskGroup."""


async def _relay_client_to_backend(client_ws: WebSocket, backend_ws: ClientConnection) -> None:
    while True:
        message = await client_ws.receive()
        if message["type"] == "websocket.receive":
            if message.get("text") is not None:
                await backend_ws.send(message["text"])
            elif message.get("bytes") is not None:
                await backend_ws.send(message["bytes"])
        elif message["type"] == "websocket.disconnect":
            await backend_ws.close()
            raise _RelayClosed()


async def _relay_backend_to_client(client_ws: WebSocket, backend_ws: ClientConnection) -> None:
    async for message in backend_ws:
        if isinstance(message, str):
            await client_ws.send_text(message)
        else:
            await client_ws.send_bytes(message)
    # Backend closed cleanly
    with contextlib.suppress(RuntimeError):
        await client_ws.close(code=_close_code(backend_ws.close_code))
    raise _RelayClosed()


async def _deny(websocket: WebSocket, status_code: int, message: str) -> None:
    """Reject an upgrade before accept: HTTP response if the server supports it."""
    if "websocket.http.response" in websocket.scope.get("extensions", {}):
        await websocket.send_denial_response(PlainTextResponse(message, status_code=status_code))
    else:
        await websocket.close(code=1011, reason=message[:120])


async def proxy_websocket(
    websocket: WebSocket,
    config: ProxyConfig,
    target: Target,
) -> None:
    """Open the backend WebSocket, then relay frames until either side closes."""
    inbound_host = websocket.headers.get("host", "")
    scheme = "https" if websocket.url.scheme == "wss" else "http"
    upstream_uri = f"ws://{target.authority}{_target_path(websocket.scope)}"
    headers = build_forward_headers(
        websocket.headers.items(),
        inbound_host=inbound_host,
        scheme=scheme,
        client_ip=websocket.client.host if websocket.client else None,
        target=target,
        excluded=WS_HOP_BY_HOP_HEADERS | {"sec-websocket-protocol"},
    )
    subprotocols = websocket.scope.get("subprotocols") or None
    log_extra = {"prefix": target.prefix_label, "upstream_url": upstream_uri}

    try:
        backend_ws = await websockets.connect(
            upstream_uri,
            additional_headers=headers,
            subprotocols=subprotocols,
            open_timeout=config.timeout_connect,
            ping_interval=config.ws_ping_interval,
            ping_timeout=config.ws_ping_timeout,
            max_size=config.ws_max_size,
            max_queue=config.ws_max_queue,
        )
    except websockets.InvalidHandshake as exc:
        PROXY_WS_ERRORS.labels(error_type="handshake_failed").inc()
        logger.warning(
            "Backend rejected WebSocket handshake",
            extra={
                "event": LogEvent.WS_ERROR,
                "error_type": "handshake_failed",
                "error": str(exc),
                **log_extra,
            },
        )
        await _deny(websocket, 502, f"Backend rejected upgrade: {exc}")
        return
    except (OSError, TimeoutError) as exc:
        PROXY_WS_ERRORS.labels(error_type="connection_failed").inc()
        logger.warning(
            "Failed to connect to backend WebSocket",
            extra={
                "event": LogEvent.WS_ERROR,
                "error_type": "connection_failed",
                "error": str(exc),
                **log_extra,
            },
        )
        await _deny(websocket, 502, f"Proxy error: {exc}")
        return

    await websocket.accept(subprotocol=backend_ws.subprotocol)
    PROXY_WS_ACTIVE_CONNECTIONS.inc()

    try:
        async with backend_ws:
            try:
                async with asyncio.TaskGroup() as tg:
                    tg.create_task(_relay_client_to_backend(websocket, backend_ws))
                    tg.create_task(_relay_backend_to_client(websocket, backend_ws))
            except* _RelayClosed:
                pass
            except* WebSocketDisconnect:
                pass
            except* websockets.ConnectionClosed:
                PROXY_WS_ERRORS.labels(error_type="connection_closed").inc()
    except Exception as exc:
        PROXY_WS_ERRORS.labels(error_type="relay_error").inc()
        logger.error(
            "WebSocket relay error",
            extra={
                "event": LogEvent.WS_ERROR,
                "error_type": "relay_error",
                "error": str(exc),
                **log_extra,
            },
        )
    finally:
        PROXY_WS_ACTIVE_CONNECTIONS.dec()
        with contextlib.suppress(RuntimeError):
            await websocket.close()
