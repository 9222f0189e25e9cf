"""Command-line build tool adapter.

Implements BuildPort by running the configured build command as a
subprocess. Watch mode builds once, then rebuilds whenever the watched
sources change, aggregating changes over the watch interval.
"""

import asyncio
import logging
import shlex
from collections.abc import Awaitable, Callable

from testmux.adapters.triggers.file_watcher import FileChangeWatcher
from testmux.core.models import BuildConfig, BuildResult
from testmux.core.ports import BuildPort, SinkPort

logger = logging.getLogger(__name__)


class CommandBuildAdapter(BuildPort):
    """Runs a build command; its combined output goes to a diagnostic sink."""

    def __init__(self, output: SinkPort | None = None):
        """Initialize the build adapter.

        Args:
            output: Where build tool output is written (None discards it).
        """
        self.output = output

    async def build(self, config: BuildConfig) -> BuildResult:
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        command_line = shlex.join(config.command)
        logger.debug(f"Building: {command_line}")

        try:
            process = await asyncio.create_subprocess_exec(
                *config.command,
                cwd=config.working_dir,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            return BuildResult(
                success=False,
                error=f"failed to start {config.command[0]}: {e}",
                duration_seconds=loop.time() - start_time,
            )

        output, _ = await process.communicate()
        elapsed = loop.time() - start_time

        if output and self.output is not None:
            try:
                await self.output.write(output)
            except Exception as e:
                logger.warning(f"Could not write build output: {e}")

        if process.returncode != 0:
            return BuildResult(
                success=False,
                error=f"{command_line} exited with code {process.returncode}",
                duration_seconds=elapsed,
            )
        return BuildResult(success=True, duration_seconds=elapsed)

    async def watch(
        self,
        config: BuildConfig,
        interval_ms: int,
        on_complete: Callable[[BuildResult], Awaitable[None]],
    ) -> None:
        changed = asyncio.Event()
        watcher = FileChangeWatcher(config.watch_paths)
        if config.watch_paths:
            watcher.start(asyncio.get_running_loop(), lambda _path: changed.set())
        else:
            logger.warning(f"No watch paths for {shlex.join(config.command)}, building once")

        try:
            while True:
                changed.clear()
                await on_complete(await self.build(config))
                await changed.wait()
                # Let a burst of saves settle before rebuilding
                await asyncio.sleep(interval_ms / 1000)
        finally:
            watcher.stop()
