"""Infrastructure: files, subprocesses, Docker Engine API."""

from sandboxhub.infra.docker import ContainerAPI, DockerClient
from sandboxhub.infra.files import write_json_atomic, write_text_atomic
from sandboxhub.infra.shell import CommandResult, run_command

__all__ = [
    # Docker
    "ContainerAPI",
    "DockerClient",
    # Files
    "write_json_atomic",
    "write_text_atomic",
    # Shell
    "CommandResult",
    "run_command",
]
