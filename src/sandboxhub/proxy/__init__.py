"""Subdomain reverse proxy."""

from sandboxhub.proxy.app import create_app
from sandboxhub.proxy.routes import HostMatcher, ProxyState, RouteTable, RouteTableHolder

__all__ = ["HostMatcher", "ProxyState", "RouteTable", "RouteTableHolder", "create_app"]
