"""Proxy process entry point (`sandboxhub-proxy`)."""

import logging

import uvicorn
from prometheus_client import start_http_server

from sandboxhub.config import get_settings
from sandboxhub.logging import setup_logging
from sandboxhub.proxy.app import create_app

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the proxy server."""
    settings = get_settings()
    setup_logging(settings.logging)

    config = settings.proxy
    if config.metrics_port > 0:
        start_http_server(config.metrics_port)
        logger.info("Metrics exporter listening on :%d", config.metrics_port)

    # A bind failure exits the process
    uvicorn.run(
        create_app(settings),
        host=config.host,
        port=config.port,
        log_config=None,
        ws_max_size=config.ws_max_size,
    )


if __name__ == "__main__":
    main()
