"""Category runners.

Turn "run this category" into child-process invocations. Each child's
stdout becomes an OutputSegment owned by the multiplexer; its stderr is
forwarded straight to the diagnostic sink, unordered.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence

from .errors import SpawnError
from .models import BuildResult, CategoryKind, OutputSegment, RunCategory
from .multiplexer import OrderedMultiplexer
from .ports import BuildPort, ChildProcess, ProcessSpawnPort, SinkPort

logger = logging.getLogger(__name__)


class CategoryRunner:
    """Shared child-process handling for both runner kinds."""

    expected_kind: CategoryKind

    def __init__(
        self,
        category: RunCategory,
        multiplexer: OrderedMultiplexer,
        spawner: ProcessSpawnPort,
        diagnostics: SinkPort,
        env: Mapping[str, str] | None = None,
    ):
        if category.kind is not self.expected_kind:
            raise ValueError(
                f"{type(self).__name__} cannot run {category.kind.value} "
                f"category {category.category_id}"
            )
        self.category = category
        self.multiplexer = multiplexer
        self.spawner = spawner
        self.diagnostics = diagnostics
        self.env = dict(env) if env else None
        self.exit_codes: list[int] = []

    async def _run_child(
        self, segment: OutputSegment, args: Sequence[str] = ()
    ) -> int | None:
        """Spawn the category command and pipe its output.

        The segment is always finished, even when the spawn or the output
        stream fails, so the multiplexer never stalls on it. A child whose
        output can no longer be read, or whose run is cancelled, is killed.

        Returns:
            The child's exit code, or None if it could not be started or
            its output was lost.
        """
        try:
            child = await self.spawner.spawn(self.category.command, args, self.env)
        except SpawnError as e:
            logger.error(f"Could not start {self.category.category_id} tests: {e}")
            segment.finish()
            return None

        stderr_task = asyncio.create_task(self._forward_diagnostics(child))
        try:
            await segment.pump_from(child.stdout)
            exit_code = await child.wait()
        except asyncio.CancelledError:
            child.kill()
            stderr_task.cancel()
            raise
        except Exception as e:
            logger.error(
                f"Lost output of {self.category.category_id} tests "
                f"(pid {child.pid}): {e}",
                exc_info=True,
            )
            segment.finish()
            child.kill()
            stderr_task.cancel()
            await asyncio.gather(stderr_task, return_exceptions=True)
            return None
        await stderr_task

        self.exit_codes.append(exit_code)
        if exit_code != 0:
            logger.info(
                f"{self.category.category_id} tests exited with code {exit_code}"
            )
        return exit_code

    async def _forward_diagnostics(self, child: ChildProcess) -> None:
        """Copy the child's stderr to the diagnostic sink."""
        write_failed = False
        while True:
            try:
                chunk = await child.stderr.read(65536)
            except Exception as e:
                logger.warning(f"Lost stderr of {self.category.category_id}: {e}")
                return
            if not chunk:
                return
            if write_failed:
                continue
            try:
                await self.diagnostics.write(chunk)
            except Exception as e:
                write_failed = True
                logger.warning(
                    f"Dropping stderr of {self.category.category_id}: {e}"
                )


class BuildCategoryRunner(CategoryRunner):
    """Runner for categories compiled by the build tool.

    Every successful build spawns the test binary. The first completed
    build writes into a slot reserved at startup, fixing the category's
    position in the report; later builds each open a fresh segment.
    """

    expected_kind = CategoryKind.BUILD

    def __init__(
        self,
        category: RunCategory,
        multiplexer: OrderedMultiplexer,
        builder: BuildPort,
        spawner: ProcessSpawnPort,
        diagnostics: SinkPort,
        watch: bool = False,
        watch_interval_ms: int = 1000,
        env: Mapping[str, str] | None = None,
    ):
        super().__init__(category, multiplexer, spawner, diagnostics, env)
        self.builder = builder
        self.watch = watch
        self.watch_interval_ms = watch_interval_ms
        self.builds_succeeded = 0
        self.builds_failed = 0
        self._first_slot: OutputSegment | None = None
        self._first_slot_used = False
        self._children: set[asyncio.Task[int | None]] = set()

    def reserve_first_slot(self) -> OutputSegment:
        """Submit the segment the first completed build will write to."""
        if self._first_slot is None:
            self._first_slot = self.multiplexer.open_segment(
                label=f"{self.category.category_id}:first"
            )
        return self._first_slot

    async def run(self) -> list[int]:
        """Build once (or continuously in watch mode) and run the tests.

        Returns:
            Exit codes of every child process started, in start order.
        """
        assert self.category.build is not None
        try:
            if self.watch:
                await self.builder.watch(
                    self.category.build, self.watch_interval_ms, self.on_build_complete
                )
            else:
                result = await self.builder.build(self.category.build)
                await self.on_build_complete(result)
            if self._children:
                await asyncio.gather(*self._children)
        finally:
            # Never leave a reserved slot open or a child running behind an
            # aborted run
            self._release_first_slot()
            for task in list(self._children):
                task.cancel()
        return list(self.exit_codes)

    async def on_build_complete(self, result: BuildResult) -> None:
        """Handle one finished build: spawn on success, log on failure."""
        category_id = self.category.category_id
        if not result.success:
            self.builds_failed += 1
            logger.error(f"Build failed for {category_id}: {result.error}")
            self._release_first_slot()
            return

        self.builds_succeeded += 1
        logger.info(
            f"Build #{self.builds_succeeded} for {category_id} succeeded "
            f"in {result.duration_seconds:.2f}s"
        )

        segment = self._next_segment()
        task = asyncio.create_task(self._run_child(segment))
        self._children.add(task)
        task.add_done_callback(self._children.discard)

    def _next_segment(self) -> OutputSegment:
        if not self._first_slot_used:
            self._first_slot_used = True
            return self.reserve_first_slot()
        return self.multiplexer.open_segment(
            label=f"{self.category.category_id}:{self.builds_succeeded}"
        )

    def _release_first_slot(self) -> None:
        """Finish the reserved slot empty if no build has claimed it."""
        if self._first_slot is not None and not self._first_slot_used:
            self._first_slot_used = True
            self._first_slot.finish()


class SpecCategoryRunner(CategoryRunner):
    """Runner for interpreted spec files: one child, file list as arguments."""

    expected_kind = CategoryKind.SPEC

    async def run(self) -> int | None:
        """Run the spec files once.

        Returns:
            The child's exit code; None if there was nothing to run or
            the child could not be started.
        """
        if self.category.is_empty:
            logger.debug(f"No files for {self.category.category_id}, skipping")
            return None

        segment = self.multiplexer.open_segment(label=self.category.category_id)
        return await self._run_child(
            segment, [str(path) for path in self.category.files]
        )
