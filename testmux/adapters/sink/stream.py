"""Sink adapters for the merged report stream and the diagnostic stream.

StreamSink writes to a binary file object (stdout or stderr).
CommandReportSink pipes the merged stream into a reporter command,
which renders it to the console.
"""

import asyncio
import logging
import shlex
from typing import BinaryIO

from testmux.core.errors import SpawnError
from testmux.core.ports import SinkPort

logger = logging.getLogger(__name__)


class StreamSink(SinkPort):
    """Writes bytes to a binary stream without blocking the event loop."""

    def __init__(self, stream: BinaryIO, close_stream: bool = False):
        """Initialize the sink.

        Args:
            stream: Binary stream, e.g. sys.stdout.buffer.
            close_stream: Close the underlying stream on close().
                Leave False for the process's own stdout/stderr.
        """
        self.stream = stream
        self.close_stream = close_stream
        self.closed = False

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise ValueError("write to closed sink")
        await asyncio.to_thread(self._write, data)

    def _write(self, data: bytes) -> None:
        self.stream.write(data)
        self.stream.flush()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await asyncio.to_thread(self.stream.flush)
        if self.close_stream:
            self.stream.close()


class CommandReportSink(SinkPort):
    """Feeds the merged stream to a reporter process's stdin.

    The reporter is started lazily on the first write and inherits the
    console for its own output.
    """

    def __init__(self, command: str):
        """Initialize the sink.

        Args:
            command: Reporter command line, split with shlex.
        """
        self.argv = shlex.split(command)
        if not self.argv:
            raise ValueError("report command must not be empty")
        self._process: asyncio.subprocess.Process | None = None
        self.exit_code: int | None = None

    async def _ensure_started(self) -> asyncio.subprocess.Process:
        if self._process is None:
            try:
                self._process = await asyncio.create_subprocess_exec(
                    *self.argv, stdin=asyncio.subprocess.PIPE
                )
            except OSError as e:
                raise SpawnError(f"failed to start reporter {self.argv[0]}: {e}") from e
            logger.debug(f"Started reporter pid {self._process.pid}")
        return self._process

    async def write(self, data: bytes) -> None:
        process = await self._ensure_started()
        assert process.stdin is not None
        process.stdin.write(data)
        await process.stdin.drain()

    async def close(self) -> None:
        process = await self._ensure_started()
        assert process.stdin is not None
        if not process.stdin.is_closing():
            process.stdin.close()
            try:
                await process.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                pass
        self.exit_code = await process.wait()
        if self.exit_code != 0:
            logger.info(f"Reporter exited with code {self.exit_code}")
