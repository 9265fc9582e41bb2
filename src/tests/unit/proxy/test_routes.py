"""Tests for route table loading, host matching and hot reload."""

import json
import os
from pathlib import Path

import pytest

from sandboxhub.core.errors import ConfigIOError
from sandboxhub.proxy.routes import (
    HostMatcher,
    ProxyState,
    RouteTable,
    RouteTableHolder,
    load_route_table,
)


def _write_routes(path: Path, routes: dict[str, int]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"routes": routes, "updatedAt": "2024-01-01T00:00:00.000Z"}))


class TestHostMatcher:
    """HostMatcher.prefix() tests."""

    @pytest.fixture
    def matcher(self) -> HostMatcher:
        return HostMatcher("example.com")

    @pytest.mark.parametrize(
        ("host", "expected"),
        [
            ("abc123xyz00001.example.com", "abc123xyz00001"),
            ("abc123xyz00001.example.com:8080", "abc123xyz00001"),
            ("ABC123XYZ00001.Example.COM", "abc123xyz00001"),
            ("example.com", None),
            ("a.b.example.com", None),
            ("abc123xyz00001.example.org", None),
            ("abc123xyz00001.example.com.evil.net", None),
            ("[::1]:8080", None),
            ("", None),
            (None, None),
        ],
    )
    def test_prefix(self, matcher: HostMatcher, host: str | None, expected: str | None) -> None:
        assert matcher.prefix(host) == expected

    def test_root_domain_dots_are_literal(self) -> None:
        matcher = HostMatcher("example.com")
        assert matcher.prefix("abc123xyz00001.exampleXcom") is None


class TestRouteTable:
    """RouteTable snapshot tests."""

    def test_snapshot_is_read_only(self) -> None:
        table = RouteTable.from_mapping({"abc123xyz00001": 5175})

        with pytest.raises(TypeError):
            table.routes["other"] = 1  # type: ignore[index]

    def test_lookup(self) -> None:
        table = RouteTable.from_mapping({"ABC123xyz00001": 5175})

        assert table.lookup("abc123xyz00001") == 5175
        assert table.lookup("missing") is None
        assert table.lookup(None) is None


class TestLoadRouteTable:
    """load_route_table() tests."""

    def test_loads_document(self, tmp_path: Path) -> None:
        path = tmp_path / "routes.json"
        _write_routes(path, {"abc123xyz00001": 5175})

        table = load_route_table(path)

        assert dict(table.routes) == {"abc123xyz00001": 5175}
        assert table.updated_at == "2024-01-01T00:00:00.000Z"

    @pytest.mark.parametrize("content", ["{oops", '{"routes": {"x": "not-a-port"}}', '{"routes": []}'])
    def test_malformed(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "routes.json"
        path.write_text(content)

        with pytest.raises(ConfigIOError):
            load_route_table(path)


class TestRouteTableHolder:
    """RouteTableHolder reload semantics."""

    def test_missing_document_at_startup_serves_default(self, tmp_path: Path) -> None:
        holder = RouteTableHolder(tmp_path / "missing.json", default_port=5174)
        assert holder.state == ProxyState.LOADING

        holder.load_initial()

        assert holder.state == ProxyState.SERVING
        assert len(holder.table) == 0
        assert holder.resolve("abc123xyz00001") == 5174

    def test_resolve(self, tmp_path: Path) -> None:
        path = tmp_path / "routes.json"
        _write_routes(path, {"abc123xyz00001": 5175})
        holder = RouteTableHolder(path, default_port=5174)
        holder.load_initial()

        assert holder.resolve("abc123xyz00001") == 5175
        assert holder.resolve("unknown") == 5174
        assert holder.resolve(None) == 5174

    def test_reload_swaps_whole_table(self, tmp_path: Path) -> None:
        """Readers holding the old snapshot keep a consistent view."""
        path = tmp_path / "routes.json"
        _write_routes(path, {"abc123xyz00001": 5175})
        holder = RouteTableHolder(path, default_port=5174)
        holder.load_initial()
        before = holder.table

        _write_routes(path, {"def456uvw00002": 5176})
        assert holder.reload() is True

        assert holder.table is not before
        assert dict(before.routes) == {"abc123xyz00001": 5175}
        assert holder.resolve("def456uvw00002") == 5176
        assert holder.resolve("abc123xyz00001") == 5174

    def test_malformed_reload_keeps_previous_table(self, tmp_path: Path) -> None:
        path = tmp_path / "routes.json"
        _write_routes(path, {"abc123xyz00001": 5175})
        holder = RouteTableHolder(path, default_port=5174)
        holder.load_initial()

        path.write_text("{truncated")

        assert holder.reload() is False
        assert holder.state == ProxyState.SERVING
        assert holder.resolve("abc123xyz00001") == 5175

    def test_reload_if_changed(self, tmp_path: Path) -> None:
        path = tmp_path / "routes.json"
        _write_routes(path, {"abc123xyz00001": 5175})
        holder = RouteTableHolder(path, default_port=5174)
        holder.load_initial()

        assert holder.reload_if_changed() is False

        _write_routes(path, {"abc123xyz00001": 5180})
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 5))

        assert holder.reload_if_changed() is True
        assert holder.resolve("abc123xyz00001") == 5180
