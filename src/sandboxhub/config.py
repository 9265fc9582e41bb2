"""Configuration using pydantic-settings.

Configuration hierarchy:
- InstanceConfig: Prefix/port allocation and registry location
- ArtifactsConfig: Generated routing artifacts (route document, compose, nginx)
- RuntimeConfig: Backing process lifecycle (compose CLI or Docker Engine API)
- DockerConfig: Docker Engine API connection
- ProxyConfig: Subdomain reverse proxy
- LoggingConfig: Logging behavior
- Settings: Main config aggregating all sub-configs

Environment variable prefix: SANDBOXHUB_
Example: SANDBOXHUB_PROXY_ROOT_DOMAIN=sandbox.example.com
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class InstanceConfig(BaseSettings):
    """Instance allocation and registry configuration."""

    model_config = SettingsConfigDict(env_prefix="SANDBOXHUB_INSTANCE_")

    registry_file: str = Field(default=".instances.json", description="Registry document path")

    # Prefix allocation
    prefix_length: int = Field(default=16, ge=8)
    min_prefix_length: int = Field(default=8)
    prefix_max_attempts: int = Field(default=100)

    # Port allocation
    default_port: int = Field(default=5174, description="First port handed out on an empty registry")
    max_port: int = Field(default=60000)

    # URLs reported back to callers
    url_scheme: str = Field(default="http")
    local_domain: str = Field(default="localhost")
    subdomain_domain: str = Field(default="sandbox.example.com", description="External wildcard domain")


class ArtifactsConfig(BaseSettings):
    """Generated routing artifact configuration.

    route_file and compose_file are required by every workflow step;
    app_config_file and nginx_file are optional and written best-effort.
    """

    model_config = SettingsConfigDict(env_prefix="SANDBOXHUB_ARTIFACTS_")

    project_root: str = Field(default=".")
    route_file: str = Field(default="config/subdomain-proxy.json")
    compose_file: str = Field(default="docker-compose.yml")
    app_config_file: str | None = Field(default="config/app-config.json")
    nginx_file: str | None = Field(default=None, description="Edge nginx config (disabled if unset)")

    # Compose topology
    network_name: str = Field(default="sandbox-network")
    build_context: str = Field(default="./packages/demo-app")
    dockerfile: str = Field(default="Dockerfile")
    container_port: int = Field(default=5174, description="Port the app listens on inside the container")

    # Edge TLS (existing certificate files, passed through)
    ssl_certificate: str = Field(default="/etc/nginx/ssl/cert.pem")
    ssl_certificate_key: str = Field(default="/etc/nginx/ssl/key.pem")


class RuntimeConfig(BaseSettings):
    """Backing process lifecycle configuration."""

    model_config = SettingsConfigDict(env_prefix="SANDBOXHUB_RUNTIME_")

    backend: str = Field(default="compose", description="compose (CLI) or docker (Engine API)")

    # Resource naming
    container_prefix: str = Field(default="sandbox-app-")
    service_prefix: str = Field(default="app-")

    # Shell-outs
    docker_binary: str = Field(default="docker")
    command_timeout: float = Field(default=60.0)  # seconds
    max_output_bytes: int = Field(default=10 * 1024 * 1024)  # 10MB
    startup_grace: float = Field(default=3.0)  # seconds (wait after compose up)

    # Proxy reload
    proxy_process_pattern: str = Field(
        default="sandboxhub[-.]proxy",
        description="pgrep -f pattern identifying running proxy processes",
    )


class DockerConfig(BaseSettings):
    """Docker Engine API configuration (runtime backend=docker)."""

    model_config = SettingsConfigDict(env_prefix="SANDBOXHUB_DOCKER_")

    host: str = Field(
        default="unix:///var/run/docker.sock",
        description="Docker daemon socket or TCP address",
    )
    api_timeout: float = Field(default=30.0)  # seconds
    stop_timeout: int = Field(default=10)  # seconds (grace before SIGKILL)


class ProxyConfig(BaseSettings):
    """Subdomain reverse proxy configuration.

    Scale guide (N = concurrently active instances):
      10  -> max_connections=100
      50  -> max_connections=300
      100 -> max_connections=500
    """

    model_config = SettingsConfigDict(env_prefix="SANDBOXHUB_PROXY_")

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # Routing
    root_domain: str = Field(default="localhost")
    default_port: int = Field(default=5174, description="Backend for unmatched hosts")
    backend_host: str = Field(default="localhost")
    route_file: str = Field(default="config/subdomain-proxy.json")

    # HTTP timeouts
    timeout_connect: float = Field(default=60.0)  # seconds
    timeout_read: float = Field(default=60.0)  # seconds
    timeout_write: float = Field(default=60.0)  # seconds
    timeout_pool: float = Field(default=5.0)  # seconds

    max_connections: int = Field(default=100)
    max_keepalive: int = Field(default=20)
    keepalive_expiry: float = Field(default=30.0)  # seconds

    # WebSocket settings
    ws_ping_interval: float | None = Field(default=20.0)  # seconds
    ws_ping_timeout: float | None = Field(default=20.0)  # seconds
    ws_max_size: int = Field(default=16 * 1024 * 1024)  # 16MB
    ws_max_queue: int = Field(default=64)

    # Reload via polling the route file mtime (0 disables, SIGHUP always works)
    watch_interval: float = Field(default=0.0)  # seconds

    metrics_port: int = Field(default=0, description="Prometheus exporter port (0 disables)")


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Supports both text and JSON formats for different environments:
    - text: Human-readable for local development
    - json: Structured logging for production (log aggregation)
    """

    model_config = SettingsConfigDict(env_prefix="SANDBOXHUB_LOGGING_")

    level: str = Field(default="INFO")
    format: str = Field(default="text")
    service_name: str = Field(default="sandboxhub")
    rate_limit_seconds: float = Field(default=5.0)  # duplicate suppression window, 0 disables


class Settings(BaseSettings):
    """Main configuration aggregating all sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="SANDBOXHUB_",
        env_nested_delimiter="__",
    )

    instance: InstanceConfig = Field(default_factory=InstanceConfig)
    artifacts: ArtifactsConfig = Field(default_factory=ArtifactsConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
