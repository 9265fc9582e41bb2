"""Pure renderers for routing artifacts.

Each renderer is a function of the registry snapshot plus a generation
timestamp: identical input yields byte-identical output apart from the
embedded timestamp.
"""

import re
from typing import Any

import yaml

from sandboxhub.config import ArtifactsConfig
from sandboxhub.core.models import Registry, RouteDocument
from sandboxhub.core.theme import app_theme_for
from sandboxhub.runtimes.naming import ResourceNaming

# =============================================================================
# Route document
# =============================================================================


def render_route_document(routes: dict[str, int], generated_at: str) -> dict[str, Any]:
    """{"routes": {prefix: port}, "updatedAt": ISO8601}"""
    return RouteDocument(routes=dict(routes), updated_at=generated_at).to_document()


# =============================================================================
# Compose topology
# =============================================================================


def _service_definition(
    prefix: str,
    port: int,
    config: ArtifactsConfig,
    naming: ResourceNaming,
) -> dict[str, Any]:
    container_port = config.container_port
    return {
        "build": {
            "context": config.build_context,
            "dockerfile": config.dockerfile,
        },
        "container_name": naming.container_name(prefix),
        "environment": [
            "NODE_ENV=development",
            f"SUBDOMAIN_PREFIX={prefix}",
            f"PORT={container_port}",
            "HOST=0.0.0.0",
            f"VITE_APP_PREFIX={prefix}",
            "CI=true",
        ],
        "ports": [f"{port}:{container_port}"],
        "networks": [config.network_name],
        "labels": {"sandboxhub.prefix": prefix},
        "restart": "unless-stopped",
        "healthcheck": {
            "test": [
                "CMD",
                "wget",
                "--quiet",
                "--tries=1",
                "--spider",
                f"http://localhost:{container_port}/",
            ],
            "interval": "10s",
            "timeout": "5s",
            "retries": 3,
        },
    }


def render_compose(
    registry: Registry,
    config: ArtifactsConfig,
    naming: ResourceNaming,
    generated_at: str,
) -> str:
    """One compose service per instance on a shared bridge network."""
    compose = {
        "services": {
            naming.service_name(instance.prefix): _service_definition(
                instance.prefix, instance.port, config, naming
            )
            for instance in registry.instances
        },
        "networks": {config.network_name: {"driver": "bridge"}},
    }
    header = f"# Generated by sandboxhub at {generated_at}. Do not edit.\n"
    return header + yaml.safe_dump(compose, default_flow_style=False, sort_keys=False, width=1000)


# =============================================================================
# App config (display metadata consumed by the demo front-end)
# =============================================================================

_DEFAULT_APP_CONFIG = {
    "appName": "Default App",
    "appId": "app-default",
    "theme": {
        "primaryColor": "#6366f1",
        "secondaryColor": "#818cf8",
        "backgroundColor": "#ffffff",
    },
    "features": {"showFeatureA": True, "showFeatureB": True, "showFeatureC": True},
    "apiEndpoint": "http://localhost:3000/api",
    "analytics": {"enabled": False, "trackingId": None},
}


def render_app_config(registry: Registry, generated_at: str) -> dict[str, Any]:
    apps: dict[str, Any] = {}
    for index, instance in enumerate(registry.instances):
        palette = app_theme_for(index)
        apps[instance.prefix] = {
            "appName": f"App Instance {index + 1}",
            "appId": f"app-{instance.prefix}",
            "theme": {
                "primaryColor": palette.primary,
                "secondaryColor": palette.secondary,
                "backgroundColor": palette.background,
            },
            "features": {
                "showFeatureA": index % 2 == 0,
                "showFeatureB": index % 2 == 1,
                "showFeatureC": True,
            },
            "apiEndpoint": f"https://api-{instance.prefix}.example.com",
            "analytics": {
                "enabled": True,
                "trackingId": f"UA-{instance.prefix.upper()}-001",
            },
        }
    apps["default"] = _DEFAULT_APP_CONFIG
    return {"generatedAt": generated_at, "apps": apps}


# =============================================================================
# Edge nginx config (external wildcard domain, TLS passthrough to cert files)
# =============================================================================

_NGINX_PROXY_HEADERS = """\
            proxy_http_version 1.1;
            proxy_set_header Host $host;
            proxy_set_header X-Real-IP $remote_addr;
            proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
            proxy_set_header X-Forwarded-Proto $scheme;
            proxy_set_header X-Forwarded-Host $host;
            proxy_set_header X-Forwarded-Port $server_port;
            proxy_set_header X-Forwarded-Prefix $subdomain_prefix;
            proxy_set_header Upgrade $http_upgrade;
            proxy_set_header Connection $connection_upgrade;"""

_NGINX_TEMPLATE = """\
# Generated by sandboxhub at %(generated_at)s. Do not edit.
events {
    worker_connections 1024;
}

http {
    server_tokens off;
    client_max_body_size 10M;

    map $host $subdomain_prefix {
        default "";
        ~^([^.]+)\\.%(domain_regex)s$ $1;
    }

    map $subdomain_prefix $backend_port {
        default %(default_port)d;
%(port_map)s    }

    map $http_upgrade $connection_upgrade {
        default upgrade;
        '' close;
    }

    server {
        listen 80;
        server_name *.%(domain)s;

        location /.well-known/acme-challenge/ {
            root /var/www/certbot;
        }

        location / {
            return 301 https://$host$request_uri;
        }
    }

    server {
        listen 443 ssl;
        http2 on;
        server_name *.%(domain)s;

        ssl_certificate %(ssl_certificate)s;
        ssl_certificate_key %(ssl_certificate_key)s;
        ssl_protocols TLSv1.2 TLSv1.3;
        ssl_ciphers HIGH:!aNULL:!MD5;
        ssl_session_cache shared:SSL:10m;
        ssl_session_timeout 10m;

        location / {
            proxy_pass http://%(backend_host)s:$backend_port;
%(proxy_headers)s

            proxy_connect_timeout 60s;
            proxy_send_timeout 60s;
            proxy_read_timeout 60s;
        }

        location = /health {
            access_log off;
            default_type text/plain;
            return 200 "healthy\\n";
        }
    }
}
"""


def render_nginx(
    routes: dict[str, int],
    config: ArtifactsConfig,
    domain: str,
    default_port: int,
    backend_host: str,
    generated_at: str,
) -> str:
    port_map = "".join(f"        {prefix} {port};\n" for prefix, port in routes.items())
    return _NGINX_TEMPLATE % {
        "generated_at": generated_at,
        "domain": domain,
        "domain_regex": re.escape(domain),
        "default_port": default_port,
        "port_map": port_map,
        "backend_host": backend_host,
        "ssl_certificate": config.ssl_certificate,
        "ssl_certificate_key": config.ssl_certificate_key,
        "proxy_headers": _NGINX_PROXY_HEADERS,
    }
