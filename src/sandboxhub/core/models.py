"""Instance, registry and route document models.

JSON documents use camelCase keys (containerName, createdAt, nextPort,
updatedAt); Python code uses snake_case attributes. Both names are accepted
on input.
"""

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class InstanceStatus(StrEnum):
    """Cached backing process status.

    Stored value is a hint; the live probe is authoritative.
    """

    STOPPED = "stopped"
    RUNNING = "running"


class _Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> dict:
        """Serialize with camelCase keys for persistence."""
        return self.model_dump(mode="json", by_alias=True)


class Theme(_Document):
    """Display-only theme, chosen by creation order."""

    primary_color: str


class Instance(_Document):
    """A provisioned sandbox instance."""

    prefix: str
    port: int
    container_name: str
    status: InstanceStatus = InstanceStatus.STOPPED
    created_at: str
    theme: Theme


class Registry(_Document):
    """Ordered instance list plus the next port hint."""

    instances: list[Instance] = Field(default_factory=list)
    next_port: int

    def find(self, prefix: str) -> Instance | None:
        for instance in self.instances:
            if instance.prefix == prefix:
                return instance
        return None

    @property
    def prefixes(self) -> list[str]:
        return [instance.prefix for instance in self.instances]

    @property
    def ports(self) -> set[int]:
        return {instance.port for instance in self.instances}

    def routes(self) -> dict[str, int]:
        """Project the registry to a prefix -> port route table."""
        return {instance.prefix: instance.port for instance in self.instances}


class RouteDocument(_Document):
    """Route document consumed by the reverse proxy."""

    routes: dict[str, int] = Field(default_factory=dict)
    updated_at: str = Field(default_factory=lambda: utc_now_iso())


class InstanceView(_Document):
    """Instance as reported to callers of the orchestrator."""

    prefix: str
    port: int
    container_name: str
    status: InstanceStatus
    url: str
    external_url: str
    created_at: str
    theme: Theme


def utc_now_iso() -> str:
    """Current UTC time as ISO 8601 with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
