"""Durable instance registry."""

from sandboxhub.store.registry import RegistryStore

__all__ = ["RegistryStore"]
