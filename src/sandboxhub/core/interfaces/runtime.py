"""Instance runtime interface.

The orchestrator only talks to backing processes through this interface, so
the concrete backend (compose CLI, Docker Engine API, plain subprocesses or a
remote scheduler) can be swapped without touching orchestration logic.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class ContainerStatus(BaseModel):
    """Observed state of a backing process."""

    running: bool
    detail: str = ""

    model_config = {"frozen": True}


class InstanceRuntime(ABC):
    """Interface for backing process lifecycle.

    Implementations: ComposeRuntime, DockerApiRuntime
    """

    @abstractmethod
    async def start(self, service_ref: str) -> None:
        """Start the backing process for a service.

        Args:
            service_ref: Service name in the generated topology

        Raises:
            BackendOperationError: Start failed or timed out
        """
        ...

    @abstractmethod
    async def stop(self, container_name: str) -> None:
        """Stop then remove the backing process.

        An already stopped or absent process counts as success.
        """
        ...

    @abstractmethod
    async def is_running(self, container_name: str) -> bool:
        """Check whether the backing process is running."""
        ...

    @abstractmethod
    async def status(self, container_name: str) -> ContainerStatus:
        """Probe the backing process.

        Raises:
            BackendOperationError: The probe itself could not be performed
        """
        ...

    @abstractmethod
    async def reload_router(self) -> int:
        """Deliver a reload signal to every running reverse proxy.

        Returns:
            Number of processes signalled (0 is a warning, not an error)
        """
        ...

    async def close(self) -> None:
        """Release runtime resources."""
        return None
