"""Tests for routing artifact generation."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from sandboxhub.artifacts import ArtifactGenerator
from sandboxhub.core.errors import ConfigIOError
from sandboxhub.core.models import Instance, InstanceStatus, Registry, Theme

FIXED_TIMESTAMP = "2024-01-01T00:00:00.000Z"


@pytest.fixture
def registry() -> Registry:
    return Registry(
        instances=[
            Instance(
                prefix="abc123xyz00001",
                port=5174,
                container_name="sandbox-app-abc123xyz00001",
                status=InstanceStatus.RUNNING,
                created_at=FIXED_TIMESTAMP,
                theme=Theme(primary_color="#3b82f6"),
            ),
            Instance(
                prefix="def456uvw00002",
                port=5175,
                container_name="sandbox-app-def456uvw00002",
                created_at=FIXED_TIMESTAMP,
                theme=Theme(primary_color="#10b981"),
            ),
        ],
        next_port=5176,
    )


class TestRouteDocument:
    """Route document generation."""

    def test_routes_and_timestamp(self, generator: ArtifactGenerator, registry: Registry) -> None:
        generator.generate(registry)

        doc = json.loads(generator.route_path.read_text())
        assert doc == {
            "routes": {"abc123xyz00001": 5174, "def456uvw00002": 5175},
            "updatedAt": FIXED_TIMESTAMP,
        }

    def test_write_routes_only_touches_route_document(self, generator: ArtifactGenerator) -> None:
        generator.write_routes({"abc123xyz00001": 5174})

        assert generator.load_routes() == {"abc123xyz00001": 5174}
        assert not generator.compose_path.exists()

    def test_load_routes_missing_or_malformed(self, generator: ArtifactGenerator) -> None:
        assert generator.load_routes() is None

        generator.route_path.parent.mkdir(parents=True, exist_ok=True)
        generator.route_path.write_text("{broken")
        assert generator.load_routes() is None


class TestCompose:
    """Compose topology generation."""

    def test_one_service_per_instance(self, generator: ArtifactGenerator, registry: Registry) -> None:
        generator.generate(registry)

        text = generator.compose_path.read_text()
        assert text.startswith(f"# Generated by sandboxhub at {FIXED_TIMESTAMP}")

        compose = yaml.safe_load(text)
        assert list(compose["services"]) == ["app-abc123xyz00001", "app-def456uvw00002"]

        service = compose["services"]["app-def456uvw00002"]
        assert service["container_name"] == "sandbox-app-def456uvw00002"
        assert service["ports"] == ["5175:5174"]
        assert "SUBDOMAIN_PREFIX=def456uvw00002" in service["environment"]
        assert service["networks"] == ["sandbox-network"]
        assert compose["networks"] == {"sandbox-network": {"driver": "bridge"}}

    def test_empty_registry_has_no_services(self, generator: ArtifactGenerator) -> None:
        generator.generate(Registry(next_port=5174))

        compose = yaml.safe_load(generator.compose_path.read_text())
        assert compose["services"] == {}


class TestAppConfigAndNginx:
    """Best-effort artifacts."""

    def test_app_config(self, generator: ArtifactGenerator, registry: Registry) -> None:
        generator.generate(registry)

        config = json.loads(generator.app_config_path.read_text())
        first = config["apps"]["abc123xyz00001"]
        second = config["apps"]["def456uvw00002"]

        assert first["appId"] == "app-abc123xyz00001"
        assert first["features"]["showFeatureA"] is True
        assert second["features"]["showFeatureB"] is True
        assert second["theme"]["primaryColor"] == "#10b981"
        assert "default" in config["apps"]

    def test_nginx_maps_prefix_to_port(self, generator: ArtifactGenerator, registry: Registry) -> None:
        generator.generate(registry)

        conf = generator.nginx_path.read_text()
        assert "abc123xyz00001 5174;" in conf
        assert "def456uvw00002 5175;" in conf
        assert "server_name *.sandbox.example.com;" in conf
        assert r"sandbox\.example\.com" in conf
        assert "return 301 https://$host$request_uri;" in conf
        assert "ssl_certificate /etc/nginx/ssl/cert.pem;" in conf
        assert "X-Forwarded-Prefix $subdomain_prefix" in conf

    def test_optional_write_failure_is_not_fatal(
        self, generator: ArtifactGenerator, registry: Registry
    ) -> None:
        """A blocked app-config path only logs; the core artifacts still land."""
        generator.app_config_path.parent.mkdir(parents=True, exist_ok=True)
        generator.app_config_path.mkdir()  # a directory cannot be replaced by a file

        written = generator.generate(registry)

        assert generator.route_path in written
        assert generator.compose_path in written
        assert generator.app_config_path not in written


class TestDeterminism:
    """Identical input yields identical output."""

    def test_regeneration_is_byte_identical(self, generator: ArtifactGenerator, registry: Registry) -> None:
        generator.generate(registry)
        first = {p: p.read_bytes() for p in _artifacts(generator)}

        generator.generate(registry)
        second = {p: p.read_bytes() for p in _artifacts(generator)}

        assert first == second


class TestFatalFailures:
    """Route document and compose failures abort the step."""

    def test_route_document_failure_raises(self, generator: ArtifactGenerator, registry: Registry) -> None:
        with patch(
            "sandboxhub.artifacts.generator.write_json_atomic",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(ConfigIOError):
                generator.generate(registry)

    def test_compose_failure_raises(self, generator: ArtifactGenerator, registry: Registry) -> None:
        with patch(
            "sandboxhub.artifacts.generator.write_text_atomic",
            side_effect=OSError("read-only file system"),
        ):
            with pytest.raises(ConfigIOError):
                generator.generate(registry)


def _artifacts(generator: ArtifactGenerator) -> list[Path]:
    return [
        generator.route_path,
        generator.compose_path,
        generator.app_config_path,
        generator.nginx_path,
    ]
