"""Asyncio subprocess adapter.

Implements ProcessSpawnPort with asyncio.create_subprocess_exec, piping
stdout and stderr back to the coordinator.
"""

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence

from testmux.core.errors import SpawnError
from testmux.core.ports import ChildProcess, ProcessSpawnPort

logger = logging.getLogger(__name__)


class AsyncioChildProcess(ChildProcess):
    """Wraps an asyncio.subprocess.Process."""

    def __init__(self, process: asyncio.subprocess.Process):
        assert process.stdout is not None and process.stderr is not None
        self._process = process
        self.stdout = process.stdout
        self.stderr = process.stderr

    @property
    def pid(self) -> int | None:
        return self._process.pid

    async def wait(self) -> int:
        return await self._process.wait()

    def kill(self) -> None:
        if self._process.returncode is not None:
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            pass
        logger.debug(f"Killed pid {self._process.pid}")


class AsyncioProcessSpawner(ProcessSpawnPort):
    """Starts child test processes with piped output."""

    def __init__(self, cwd: str | None = None):
        """Initialize the spawner.

        Args:
            cwd: Working directory for children (default: current directory).
        """
        self.cwd = cwd

    async def spawn(
        self,
        command: Sequence[str],
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
    ) -> ChildProcess:
        """Start a child process with stdout/stderr pipes."""
        if not command:
            raise SpawnError("empty command")

        argv = [*command, *args]
        child_env = {**os.environ, **env} if env else None
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=child_env,
            )
        except OSError as e:
            raise SpawnError(f"failed to start {command[0]}: {e}") from e

        logger.debug(f"Spawned pid {process.pid}: {' '.join(argv)}")
        return AsyncioChildProcess(process)
