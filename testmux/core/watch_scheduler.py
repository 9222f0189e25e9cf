"""Watch-mode scheduler.

Collapses bursts of change signals into a bounded, non-overlapping
sequence of re-runs:

- every trigger source publishes into one internal event queue (fan-in)
- the queue consumer debounces triggers with a fixed quiet window
- at most one run is in flight and at most one more is pending
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .models import ScheduleState, TriggerEvent, TriggerSource

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_HEARTBEAT_PAYLOAD = "heartbeat"


class WatchScheduler:
    """Debounced, re-entrancy-guarded runner of a single run function.

    State transitions:
        IDLE --trigger--> RUNNING
        RUNNING --trigger--> RUNNING_WITH_PENDING
        RUNNING_WITH_PENDING --trigger--> RUNNING_WITH_PENDING
        RUNNING --complete--> IDLE
        RUNNING_WITH_PENDING --complete--> RUNNING (queued run starts)
    """

    def __init__(
        self,
        run: Callable[[], Awaitable[Any]],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        heartbeat_payload: str = DEFAULT_HEARTBEAT_PAYLOAD,
    ):
        """Initialize the scheduler.

        Args:
            run: Coroutine function performing one run. Exceptions are logged.
            debounce_seconds: Quiet window collapsing bursts of triggers.
            heartbeat_payload: Dev-server payload that never triggers a run.
        """
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must be non-negative")

        self._run = run
        self.debounce_seconds = debounce_seconds
        self.heartbeat_payload = heartbeat_payload
        self.state = ScheduleState.IDLE

        self._events: asyncio.Queue[TriggerEvent] = asyncio.Queue()
        self._timer: asyncio.TimerHandle | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._stopping = False

        self.triggers_received = 0
        self.triggers_coalesced = 0
        self.heartbeats_ignored = 0
        self.runs_started = 0
        self.runs_completed = 0

    def publish(self, event: TriggerEvent) -> None:
        """Hand an event to the scheduler. Non-blocking.

        Dev-server heartbeats are dropped here.
        """
        if (
            event.source is TriggerSource.DEV_SERVER
            and event.payload == self.heartbeat_payload
        ):
            self.heartbeats_ignored += 1
            return
        self._events.put_nowait(event)

    async def run_forever(self) -> None:
        """Consume published events until cancelled."""
        try:
            while True:
                event = await self._events.get()
                self.triggers_received += 1
                logger.debug(
                    f"Trigger from {event.source.value}"
                    + (f": {event.payload}" if event.payload else "")
                )
                self._debounce()
        finally:
            self._cancel_timer()

    async def wait_idle(self) -> None:
        """Wait until no run is in flight or pending."""
        await self._idle.wait()

    async def stop(self, cancel: bool = False) -> None:
        """Stop scheduling runs and settle the in-flight one.

        A queued run is dropped and later triggers are ignored, so no run
        starts once this returns.

        Args:
            cancel: Cancel the in-flight run instead of waiting for it.
        """
        self._stopping = True
        self._cancel_timer()
        if self.state is ScheduleState.RUNNING_WITH_PENDING:
            self.state = ScheduleState.RUNNING

        while self._run_task is not None and not self._run_task.done():
            task = self._run_task
            if cancel:
                task.cancel()
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    def _debounce(self) -> None:
        """Restart the quiet window; trigger() fires when it expires."""
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self.trigger)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def trigger(self) -> None:
        """Debounced entry point: start a run or queue one."""
        self._timer = None
        if self._stopping:
            logger.debug("Scheduler stopped, ignoring trigger")
            return

        if self.state is ScheduleState.IDLE:
            self.state = ScheduleState.RUNNING
            self._start_run()
        elif self.state is ScheduleState.RUNNING:
            self.state = ScheduleState.RUNNING_WITH_PENDING
            self.triggers_coalesced += 1
            logger.info("Run in progress, queueing another run")
        elif self.state is ScheduleState.RUNNING_WITH_PENDING:
            self.triggers_coalesced += 1
        else:
            raise RuntimeError(f"Unknown schedule state: {self.state}")

    def _start_run(self) -> None:
        self._idle.clear()
        self.runs_started += 1
        self._run_task = asyncio.create_task(self._execute(self.runs_started))

    async def _execute(self, run_number: int) -> None:
        logger.info(f"Starting watch run #{run_number}")
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        try:
            await self._run()
        except asyncio.CancelledError:
            self.state = ScheduleState.IDLE
            self._idle.set()
            raise
        except Exception as e:
            logger.error(f"Error in watch run #{run_number}: {e}", exc_info=True)

        self.runs_completed += 1
        logger.info(
            f"Watch run #{run_number} completed in {loop.time() - start_time:.2f}s"
        )
        self._on_run_complete()

    def _on_run_complete(self) -> None:
        if self.state is ScheduleState.RUNNING_WITH_PENDING:
            # Clear pending before starting so a trigger during the next
            # run queues again instead of being lost
            self.state = ScheduleState.RUNNING
            self._start_run()
        elif self.state is ScheduleState.RUNNING:
            self.state = ScheduleState.IDLE
            self._run_task = None
            self._idle.set()
        elif self.state is ScheduleState.IDLE:
            raise RuntimeError("Run completed while scheduler was idle")
        else:
            raise RuntimeError(f"Unknown schedule state: {self.state}")
