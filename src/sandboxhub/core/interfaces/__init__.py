"""Core interfaces."""

from sandboxhub.core.interfaces.runtime import ContainerStatus, InstanceRuntime

__all__ = [
    "ContainerStatus",
    "InstanceRuntime",
]
