"""HTTP client management for the subdomain proxy.

Provides a shared httpx AsyncClient for connection pooling and header filtering.
"""

from collections.abc import Iterable

import httpx

from sandboxhub.config import ProxyConfig

# =============================================================================
# Constants
# =============================================================================

# HTTP hop-by-hop headers to remove before forwarding (RFC 7230)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
    }
)

# WebSocket handshake headers the websockets library generates itself
WS_HOP_BY_HOP_HEADERS = HOP_BY_HOP_HEADERS | frozenset(
    {
        "sec-websocket-key",
        "sec-websocket-version",
        "sec-websocket-extensions",
        "sec-websocket-accept",
    }
)

# =============================================================================
# HTTP Client Management
# =============================================================================

_http_client: httpx.AsyncClient | None = None


def build_http_client(config: ProxyConfig, **kwargs) -> httpx.AsyncClient:
    """Create a pooled client with the proxy's timeouts and limits."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=config.timeout_connect,
            read=config.timeout_read,
            write=config.timeout_write,
            pool=config.timeout_pool,
        ),
        limits=httpx.Limits(
            max_connections=config.max_connections,
            max_keepalive_connections=config.max_keepalive,
            keepalive_expiry=config.keepalive_expiry,
        ),
        follow_redirects=False,
        **kwargs,
    )


async def get_http_client(config: ProxyConfig) -> httpx.AsyncClient:
    """Get or create the shared httpx AsyncClient."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = build_http_client(config)
    return _http_client


async def close_http_client() -> None:
    """Close the shared httpx client. Call on application shutdown."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


# =============================================================================
# Helper Functions
# =============================================================================


def filter_headers(
    headers: Iterable[tuple[str, str]],
    excluded: frozenset[str] = HOP_BY_HOP_HEADERS,
) -> list[tuple[str, str]]:
    """Filter out hop-by-hop headers, keeping repeated headers (Set-Cookie)."""
    return [(k, v) for k, v in headers if k.lower() not in excluded]
