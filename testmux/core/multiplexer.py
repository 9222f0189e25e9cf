"""Ordered output multiplexer.

Serializes the stdout of concurrently running test processes into a
single sink. Segments are forwarded strictly in submission order and
never interleaved: a pending FIFO plus one active slot, advanced only
when the active segment signals completion.
"""

import asyncio
import logging
from collections import deque

from .models import OutputSegment
from .ports import SinkPort

logger = logging.getLogger(__name__)


class OrderedMultiplexer:
    """Single-active-segment FIFO in front of a sink.

    The sink is never closed here; the top-level run closes it once every
    category has reported completion.
    """

    def __init__(self, sink: SinkPort):
        """Initialize the multiplexer.

        Args:
            sink: The ordered report stream. Only this multiplexer writes to it.
        """
        self.sink = sink
        self._pending: deque[OutputSegment] = deque()
        self._active: OutputSegment | None = None
        self._forwarder: asyncio.Task[None] | None = None
        self._next_sequence = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def active(self) -> OutputSegment | None:
        """The segment currently being forwarded, if any."""
        return self._active

    @property
    def pending_count(self) -> int:
        """Number of submitted segments waiting for the active slot."""
        return len(self._pending)

    @property
    def submitted_count(self) -> int:
        """Total segments submitted so far."""
        return self._next_sequence

    def submit(self, segment: OutputSegment) -> OutputSegment:
        """Queue a segment for forwarding. Returns immediately.

        Args:
            segment: A segment not yet submitted anywhere.

        Returns:
            The same segment, with its sequence number assigned.

        Raises:
            ValueError: If the segment was already submitted.
        """
        if segment.sequence is not None:
            raise ValueError(f"segment already submitted: {segment!r}")

        segment.sequence = self._next_sequence
        self._next_sequence += 1
        self._pending.append(segment)
        self._idle.clear()
        logger.debug(f"Submitted segment #{segment.sequence} ({segment.label})")

        if self._active is None:
            self._promote()
        return segment

    def open_segment(self, label: str = "") -> OutputSegment:
        """Create a fresh segment and submit it."""
        return self.submit(OutputSegment(label=label))

    async def drain(self) -> None:
        """Wait until no segment is active or pending."""
        await self._idle.wait()

    def _promote(self) -> None:
        """Move the head of the pending list into the active slot."""
        if not self._pending:
            self._active = None
            self._forwarder = None
            self._idle.set()
            return

        self._active = self._pending.popleft()
        self._forwarder = asyncio.create_task(self._forward(self._active))

    async def _forward(self, segment: OutputSegment) -> None:
        """Copy the active segment to the sink until it completes."""
        sink_failed = False
        try:
            async for chunk in segment:
                if sink_failed:
                    continue
                try:
                    await self.sink.write(chunk)
                except Exception as e:
                    # Keep consuming so the ordering slot is still released
                    sink_failed = True
                    logger.error(
                        f"Sink write failed for segment #{segment.sequence} "
                        f"({segment.label}): {e}",
                        exc_info=True,
                    )
        except asyncio.CancelledError:
            logger.debug(f"Forwarding of segment #{segment.sequence} cancelled")
            self._active = None
            self._forwarder = None
            raise

        logger.debug(
            f"Segment #{segment.sequence} ({segment.label}) completed, "
            f"{segment.bytes_fed} bytes"
        )
        self._promote()

    async def close(self) -> None:
        """Cancel forwarding. Pending segments are dropped."""
        forwarder = self._forwarder
        self._pending.clear()
        if forwarder is not None and not forwarder.done():
            forwarder.cancel()
            try:
                await forwarder
            except asyncio.CancelledError:
                pass
        self._active = None
        self._forwarder = None
        self._idle.set()
