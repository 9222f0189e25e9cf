"""Run coordination for single-shot and watch modes.

This module wires the category runners, the ordered multiplexer, the
readiness prober and the watch scheduler into the two run modes.
"""

import asyncio
import logging
from collections.abc import MutableMapping, Sequence
from typing import Any

from .discovery import publish_test_files
from .errors import ReadinessError
from .models import (
    CategoryKind,
    ReadinessReport,
    RunCategory,
    RunSummary,
    ServiceCheck,
    TriggerEvent,
    TriggerSource,
)
from .multiplexer import OrderedMultiplexer
from .ports import BuildPort, ProcessSpawnPort, RunPort, SinkPort, TriggerSourcePort
from .readiness import ReadinessProber
from .runners import BuildCategoryRunner, SpecCategoryRunner
from .watch_scheduler import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_HEARTBEAT_PAYLOAD,
    WatchScheduler,
)

logger = logging.getLogger(__name__)


class RunCoordinator(RunPort):
    """Implements the single-shot and watch run modes.

    This service orchestrates:
    - Publishing the test-file list for the build tool
    - Reserving each build category's report position up front
    - Gating spec runs on dependent-service readiness
    - Debounced, non-overlapping spec re-runs in watch mode
    """

    def __init__(
        self,
        categories: Sequence[RunCategory],
        sink: SinkPort,
        diagnostics: SinkPort,
        builder: BuildPort,
        spawner: ProcessSpawnPort,
        prober: ReadinessProber,
        services: Sequence[ServiceCheck] = (),
        trigger_sources: Sequence[TriggerSourcePort] = (),
        test_files_env_var: str = "TESTMUX_TEST_FILES",
        test_files_delimiter: str = ",",
        build_watch_interval_ms: int = 1000,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        heartbeat_payload: str = DEFAULT_HEARTBEAT_PAYLOAD,
        environ: MutableMapping[str, str] | None = None,
    ):
        self.categories = tuple(categories)
        self.sink = sink
        self.diagnostics = diagnostics
        self.builder = builder
        self.spawner = spawner
        self.prober = prober
        self.services = tuple(services)
        self.trigger_sources = tuple(trigger_sources)
        self.test_files_env_var = test_files_env_var
        self.test_files_delimiter = test_files_delimiter
        self.build_watch_interval_ms = build_watch_interval_ms
        self.debounce_seconds = debounce_seconds
        self.heartbeat_payload = heartbeat_payload
        self.environ = environ
        self.scheduler: WatchScheduler | None = None
        self.last_readiness: ReadinessReport | None = None

    async def execute_once(self) -> RunSummary:
        """Run every non-empty category once, then close the report stream."""
        self._publish_test_files()
        multiplexer = OrderedMultiplexer(self.sink)

        skipped: dict[str, str] = {}
        exit_codes: dict[str, tuple[int, ...]] = {}
        build_runners: list[BuildCategoryRunner] = []
        spec_categories: list[RunCategory] = []

        for category in self.categories:
            if category.is_empty:
                skipped[category.category_id] = "no files"
            elif category.kind is CategoryKind.BUILD:
                build_runners.append(self._build_runner(category, multiplexer, watch=False))
            else:
                spec_categories.append(category)

        # Fix build categories' report positions before anything can finish
        for runner in build_runners:
            runner.reserve_first_slot()

        async def run_build(runner: BuildCategoryRunner) -> None:
            exit_codes[runner.category.category_id] = tuple(await runner.run())

        async def run_spec(category: RunCategory) -> None:
            try:
                exit_code = await self._run_spec(category, multiplexer)
            except ReadinessError as e:
                logger.error(f"Skipping {category.category_id} tests: {e}")
                skipped[category.category_id] = str(e)
                return
            exit_codes[category.category_id] = (
                () if exit_code is None else (exit_code,)
            )

        try:
            await asyncio.gather(
                *(run_build(runner) for runner in build_runners),
                *(run_spec(category) for category in spec_categories),
            )
            await multiplexer.drain()
        finally:
            await self.sink.close()

        ran = tuple(
            c.category_id
            for c in self.categories
            if c.category_id not in skipped
        )
        logger.info(f"Run completed: ran {list(ran)}, skipped {list(skipped)}")
        return RunSummary(
            categories_run=ran,
            categories_skipped=skipped,
            exit_codes=exit_codes,
        )

    async def execute_watch(self) -> None:
        """Run continuously until cancelled or a trigger source fails."""
        self._publish_test_files()
        multiplexer = OrderedMultiplexer(self.sink)

        build_runners = [
            self._build_runner(category, multiplexer, watch=True)
            for category in self.categories
            if category.kind is CategoryKind.BUILD and not category.is_empty
        ]
        for runner in build_runners:
            runner.reserve_first_slot()

        tasks: list[asyncio.Task[Any]] = [
            asyncio.create_task(runner.run()) for runner in build_runners
        ]

        spec_categories = [
            c for c in self.categories if c.kind is CategoryKind.SPEC and not c.is_empty
        ]
        if spec_categories:

            async def run_specs() -> None:
                for category in spec_categories:
                    try:
                        await self._run_spec(category, multiplexer)
                    except ReadinessError as e:
                        logger.error(f"Skipping {category.category_id} tests: {e}")

            self.scheduler = WatchScheduler(
                run=run_specs,
                debounce_seconds=self.debounce_seconds,
                heartbeat_payload=self.heartbeat_payload,
            )
            tasks.append(asyncio.create_task(self.scheduler.run_forever()))
            for source in self.trigger_sources:
                tasks.append(asyncio.create_task(source.listen(self.scheduler.publish)))
            self.scheduler.publish(TriggerEvent(source=TriggerSource.STARTUP))

        if not tasks:
            logger.warning("Nothing to watch: every category is empty")
            return

        logger.info(f"Watching {len(build_runners)} build categories and "
                    f"{len(spec_categories)} spec categories")
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                error = None if task.cancelled() else task.exception()
                if error is not None:
                    raise error
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if self.scheduler is not None:
                # Fail fast: an in-flight spec run is cancelled, its child killed
                await self.scheduler.stop(cancel=True)

    async def _run_spec(
        self, category: RunCategory, multiplexer: OrderedMultiplexer
    ) -> int | None:
        """Check readiness, then run one spec category.

        Raises:
            ReadinessError: If a required service is unreachable.
        """
        if self.services:
            report = await self.prober.check(self.services)
            self.last_readiness = report
            if not report.ready:
                raise ReadinessError(report)

        runner = SpecCategoryRunner(
            category, multiplexer, self.spawner, self.diagnostics
        )
        return await runner.run()

    def _build_runner(
        self, category: RunCategory, multiplexer: OrderedMultiplexer, watch: bool
    ) -> BuildCategoryRunner:
        return BuildCategoryRunner(
            category,
            multiplexer,
            self.builder,
            self.spawner,
            self.diagnostics,
            watch=watch,
            watch_interval_ms=self.build_watch_interval_ms,
        )

    def _publish_test_files(self) -> None:
        publish_test_files(
            self.categories,
            self.test_files_env_var,
            self.test_files_delimiter,
            environ=self.environ,
        )
