"""Sandbox instance orchestrator and subdomain router."""

__version__ = "0.1.0"
