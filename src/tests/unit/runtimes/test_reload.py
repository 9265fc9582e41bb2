"""Unit tests for ProxyReloader."""

import os
import signal
from unittest.mock import AsyncMock, patch

import pytest

from sandboxhub.config import RuntimeConfig
from sandboxhub.core.errors import BackendOperationError
from sandboxhub.infra.shell import CommandResult
from sandboxhub.runtimes import ProxyReloader


def _pgrep(returncode: int, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(args=("pgrep",), returncode=returncode, stdout=stdout, stderr=stderr)


class TestProxyReloader:
    """Tests for ProxyReloader."""

    @pytest.fixture
    def reloader(self) -> ProxyReloader:
        return ProxyReloader(RuntimeConfig(proxy_process_pattern="sandboxhub-proxy"))

    async def test_signals_every_match(self, reloader: ProxyReloader) -> None:
        """SIGHUP goes to every matching pid."""
        with (
            patch("sandboxhub.runtimes.reload.run_command", new_callable=AsyncMock) as run,
            patch("sandboxhub.runtimes.reload.os.kill") as kill,
        ):
            run.return_value = _pgrep(0, "101\n202\n")

            count = await reloader.reload()

        assert count == 2
        kill.assert_any_call(101, signal.SIGHUP)
        kill.assert_any_call(202, signal.SIGHUP)
        assert run.call_args.args[0] == ["pgrep", "-f", "sandboxhub-proxy"]

    async def test_no_process_is_a_warning(self, reloader: ProxyReloader) -> None:
        """pgrep exit 1 (no match) is a no-op, not an error."""
        with (
            patch("sandboxhub.runtimes.reload.run_command", new_callable=AsyncMock) as run,
            patch("sandboxhub.runtimes.reload.os.kill") as kill,
        ):
            run.return_value = _pgrep(1)

            assert await reloader.reload() == 0

        kill.assert_not_called()

    async def test_excludes_own_pid(self, reloader: ProxyReloader) -> None:
        with (
            patch("sandboxhub.runtimes.reload.run_command", new_callable=AsyncMock) as run,
            patch("sandboxhub.runtimes.reload.os.kill") as kill,
        ):
            run.return_value = _pgrep(0, f"{os.getpid()}\n303\n")

            assert await reloader.reload() == 1

        kill.assert_called_once_with(303, signal.SIGHUP)

    async def test_vanished_process_is_skipped(self, reloader: ProxyReloader) -> None:
        with (
            patch("sandboxhub.runtimes.reload.run_command", new_callable=AsyncMock) as run,
            patch("sandboxhub.runtimes.reload.os.kill") as kill,
        ):
            run.return_value = _pgrep(0, "101\n202\n")
            kill.side_effect = [ProcessLookupError(), None]

            assert await reloader.reload() == 1

    async def test_pgrep_failure_raises(self, reloader: ProxyReloader) -> None:
        with patch("sandboxhub.runtimes.reload.run_command", new_callable=AsyncMock) as run:
            run.return_value = _pgrep(2, stderr="pgrep: invalid option")

            with pytest.raises(BackendOperationError):
                await reloader.reload()
