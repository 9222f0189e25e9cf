"""Port interfaces for the testmux run coordinator.

These abstract base classes define the boundaries between the core
coordinator and its collaborators. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - DiscoveryPort: Resolve test files under a category root
   - BuildPort: One-shot and continuous builds
   - ProcessSpawnPort: Start child test processes
   - SinkPort: Ordered report stream and diagnostic stream
   - TriggerSourcePort: External change signals for watch mode

2. **Driving Ports** (adapters/external systems call into core)
   - RunPort: Entry point for single-shot and watch runs
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path

from .models import BuildConfig, BuildResult, RunSummary, TriggerEvent


# ============================================================================
# DRIVEN PORTS (Core calls out to adapters)
# ============================================================================


class DiscoveryPort(ABC):
    """Port for finding test files on disk."""

    @abstractmethod
    def discover(self, root: Path, pattern: str) -> list[Path]:
        """Resolve the test files under a root.

        Args:
            root: Directory (or single file) to search.
            pattern: Glob pattern of the category's file-naming convention.

        Returns:
            Sorted list of matching file paths. Empty if nothing matches.
            Duplicates need not be removed by the caller.
        """


class BuildPort(ABC):
    """Port for the build tool that produces test binaries."""

    @abstractmethod
    async def build(self, config: BuildConfig) -> BuildResult:
        """Run a single build.

        Args:
            config: Build invocation.

        Returns:
            BuildResult; a failed build is reported, never raised.
        """

    @abstractmethod
    async def watch(
        self,
        config: BuildConfig,
        interval_ms: int,
        on_complete: Callable[[BuildResult], Awaitable[None]],
    ) -> None:
        """Build continuously until cancelled.

        Args:
            config: Build invocation.
            interval_ms: Aggregation window for source changes.
            on_complete: Awaited once per finished build, successful or not.
        """


class ChildProcess(ABC):
    """A spawned child process with piped output."""

    stdout: asyncio.StreamReader
    stderr: asyncio.StreamReader

    @property
    @abstractmethod
    def pid(self) -> int | None:
        """OS process id, if known."""

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit.

        Returns:
            Exit code. Resolves exactly once per process; repeated calls
            return the same code.
        """

    @abstractmethod
    def kill(self) -> None:
        """Kill the process if it is still running. Never raises."""


class ProcessSpawnPort(ABC):
    """Port for starting child test processes."""

    @abstractmethod
    async def spawn(
        self,
        command: Sequence[str],
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
    ) -> ChildProcess:
        """Start a child process.

        Args:
            command: Executable and fixed leading arguments.
            args: Additional arguments (e.g. the spec file list).
            env: Extra environment variables layered on the current env.

        Returns:
            The running ChildProcess.

        Raises:
            SpawnError: If the process cannot be started.
        """


class SinkPort(ABC):
    """Port for an output byte stream."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write bytes to the stream."""

    @abstractmethod
    async def close(self) -> None:
        """Flush and close the stream."""


class TriggerSourcePort(ABC):
    """Port for an external change signal feeding watch mode."""

    @abstractmethod
    async def listen(self, publish: Callable[[TriggerEvent], None]) -> None:
        """Publish trigger events until cancelled.

        Args:
            publish: Non-blocking callback receiving each event.

        Raises:
            WatchChannelError: If the underlying transport fails.
        """


# ============================================================================
# DRIVING PORTS (External systems call into core)
# ============================================================================


class RunPort(ABC):
    """Port for starting test runs."""

    @abstractmethod
    async def execute_once(self) -> RunSummary:
        """Run every non-empty category once and close the report stream.

        Returns:
            RunSummary of what was run and skipped.
        """

    @abstractmethod
    async def execute_watch(self) -> None:
        """Run continuously, re-running on change signals.

        Returns only when cancelled.

        Raises:
            WatchChannelError: If a trigger source transport fails.
        """
