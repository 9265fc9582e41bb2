"""Reverse proxy reload trigger.

Locates running proxy processes by command-line pattern and sends SIGHUP to
each. Finding no process is a warning, not an error.
"""

import logging
import os
import signal

from sandboxhub.config import RuntimeConfig
from sandboxhub.infra.shell import run_command
from sandboxhub.logging_schema import LogEvent

logger = logging.getLogger(__name__)

# pgrep exit status when nothing matched
_PGREP_NO_MATCH = 1


class ProxyReloader:
    """Send the reload signal to every running proxy process."""

    def __init__(self, config: RuntimeConfig, sig: signal.Signals = signal.SIGHUP) -> None:
        self._pattern = config.proxy_process_pattern
        self._timeout = config.command_timeout
        self._signal = sig

    async def find_pids(self) -> list[int]:
        result = await run_command(["pgrep", "-f", self._pattern], timeout=self._timeout)
        if result.returncode == _PGREP_NO_MATCH:
            return []
        result.check()

        own_pid = os.getpid()
        return [
            int(line)
            for line in result.stdout.split()
            if line.isdigit() and int(line) != own_pid
        ]

    async def reload(self) -> int:
        """Signal all matching processes.

        Returns:
            Number of processes signalled
        """
        pids = await self.find_pids()
        if not pids:
            logger.warning(
                "No proxy process found, skipping reload",
                extra={"event": LogEvent.RELOAD_SKIPPED, "pattern": self._pattern},
            )
            return 0

        signalled = 0
        for pid in pids:
            try:
                os.kill(pid, self._signal)
            except ProcessLookupError:
                logger.warning("Proxy process exited before reload: %d", pid)
                continue
            except PermissionError:
                logger.warning("Not permitted to signal proxy process: %d", pid)
                continue
            signalled += 1
            logger.info(
                "Sent reload signal to proxy pid %d",
                pid,
                extra={"event": LogEvent.RELOAD_SENT, "pid": pid, "signal": self._signal.name},
            )
        return signalled
