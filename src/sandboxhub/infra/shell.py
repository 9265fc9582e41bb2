"""Subprocess execution with hard timeouts and bounded output.

Every shell-out goes through run_command(): a command that exceeds its
timeout is killed and surfaced as CommandTimeoutError, never awaited forever.
Output beyond max_output bytes per stream is drained and discarded.
"""

import asyncio
import logging
import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from sandboxhub.core.errors import BackendOperationError, CommandTimeoutError
from sandboxhub.logging_schema import LogEvent

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0  # seconds
DEFAULT_MAX_OUTPUT = 10 * 1024 * 1024  # 10MB
_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class CommandResult:
    """Completed command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return shlex.join(self.args)

    def check(self) -> "CommandResult":
        """Raise BackendOperationError on non-zero exit."""
        if not self.ok:
            detail = self.stderr.strip() or self.stdout.strip()
            raise BackendOperationError(
                f"Command failed ({self.returncode}): {self.command}: {detail}"
            )
        return self


async def _drain(stream: asyncio.StreamReader | None, limit: int) -> tuple[bytes, bool]:
    if stream is None:
        return b"", False
    buf = bytearray()
    truncated = False
    while chunk := await stream.read(_CHUNK_SIZE):
        room = limit - len(buf)
        if room > 0:
            buf.extend(chunk[:room])
        if len(chunk) > room:
            truncated = True
    return bytes(buf), truncated


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass


async def run_command(
    args: Sequence[str],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    cwd: str | None = None,
    max_output: int = DEFAULT_MAX_OUTPUT,
) -> CommandResult:
    """Run a command without a shell.

    Raises:
        BackendOperationError: The executable could not be started
        CommandTimeoutError: The command exceeded its timeout (process killed)
    """
    argv = tuple(args)
    command = shlex.join(argv)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except OSError as exc:
        raise BackendOperationError(f"Failed to execute {command}: {exc}") from exc

    try:
        async with asyncio.timeout(timeout):
            (stdout, out_truncated), (stderr, err_truncated) = await asyncio.gather(
                _drain(proc.stdout, max_output),
                _drain(proc.stderr, max_output),
            )
            returncode = await proc.wait()
    except TimeoutError as exc:
        _kill(proc)
        await proc.wait()
        logger.warning(
            "Command timed out",
            extra={
                "event": LogEvent.COMMAND_TIMEOUT,
                "command": command,
                "timeout": timeout,
            },
        )
        raise CommandTimeoutError(f"Command timed out after {timeout}s: {command}") from exc
    except asyncio.CancelledError:
        _kill(proc)
        raise

    if out_truncated or err_truncated:
        logger.warning("Command output truncated at %d bytes: %s", max_output, command)

    return CommandResult(
        args=argv,
        returncode=returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        truncated=out_truncated or err_truncated,
    )
