"""Subdomain reverse proxy application.

Every path on every host is forwarded: the Host header selects the backend
port through the live route table, unmatched hosts go to the default port.
The table is reloaded in place on SIGHUP and, optionally, when the route
document's mtime changes.
"""

import asyncio
import contextlib
import logging
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.websockets import WebSocket

from sandboxhub import __version__
from sandboxhub.config import Settings, get_settings
from sandboxhub.core.errors import SandboxHubError
from sandboxhub.logging_schema import LogEvent

from .client import close_http_client, get_http_client
from .routes import DEFAULT_PREFIX_LABEL, HostMatcher, RouteTableHolder
from .transport import Target, proxy_http, proxy_websocket

logger = logging.getLogger(__name__)

async def _watch_routes(holder: RouteTableHolder, interval: float) -> None:
    """Poll the route document and reload when it changes."""
    while True:
        await asyncio.sleep(interval)
        holder.reload_if_changed()


def _install_reload_signal(holder: RouteTableHolder) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGHUP, holder.reload)
    except (NotImplementedError, RuntimeError) as exc:
        # Not the main thread, or a platform without SIGHUP
        logger.warning("SIGHUP reload unavailable: %s", exc)
        return False
    return True


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the proxy application.

    Args:
        settings: Configuration (defaults to get_settings())
        http_client: Backend client; the shared pooled client when omitted
    """
    settings = settings or get_settings()
    config = settings.proxy

    route_path = Path(config.route_file)
    if not route_path.is_absolute():
        route_path = Path(settings.artifacts.project_root) / route_path

    holder = RouteTableHolder(route_path, config.default_port)
    matcher = HostMatcher(config.root_domain)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        holder.load_initial()
        app.state.http_client = http_client or await get_http_client(config)

        signal_installed = _install_reload_signal(holder)
        watcher = None
        if config.watch_interval > 0:
            watcher = asyncio.create_task(_watch_routes(holder, config.watch_interval))

        logger.info(
            "Starting proxy",
            extra={
                "event": LogEvent.APP_STARTED,
                "version": __version__,
                "root_domain": matcher.root_domain,
                "route_file": str(route_path),
                "default_port": config.default_port,
            },
        )

        yield

        logger.info("Shutting down proxy", extra={"event": LogEvent.APP_STOPPED})
        if watcher is not None:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher
        if signal_installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGHUP)
        if http_client is None:
            await close_http_client()

    app = FastAPI(
        title="sandboxhub proxy",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.routes = holder
    app.state.matcher = matcher

    def resolve_target(host: str | None) -> Target:
        prefix = matcher.prefix(host)
        return Target(
            host=config.backend_host,
            port=holder.resolve(prefix),
            prefix_label=prefix or DEFAULT_PREFIX_LABEL,
        )

    @app.exception_handler(SandboxHubError)
    async def proxy_error_handler(_request: Request, exc: SandboxHubError) -> PlainTextResponse:
        """The only responses the proxy synthesizes itself."""
        return PlainTextResponse(
            f"{exc.message}\n",
            status_code=exc.status_code,
            headers={"X-Proxy-Error": exc.code.value},
        )

    async def forward_http(request: Request) -> StreamingResponse:
        target = resolve_target(request.headers.get("host"))
        return await proxy_http(request, request.app.state.http_client, target)

    # methods=None: every method, including WebDAV extensions, reaches the backend
    app.router.add_route("/{path:path}", forward_http, methods=None, include_in_schema=False)

    @app.websocket("/{path:path}")
    async def forward_websocket(websocket: WebSocket, path: str) -> None:
        target = resolve_target(websocket.headers.get("host"))
        await proxy_websocket(websocket, config, target)

    return app
