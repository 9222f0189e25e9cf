"""Domain models for the testmux run coordinator.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType


class CategoryKind(Enum):
    """How a run category produces its test process."""

    BUILD = "build"  # compiled by the build tool, then the binary is run
    SPEC = "spec"  # spec files handed to an interpreter-style runner


@dataclass(frozen=True)
class BuildConfig:
    """Build tool invocation for a build-based category."""

    command: tuple[str, ...]
    working_dir: Path = Path(".")
    watch_paths: tuple[Path, ...] = ()

    def __post_init__(self) -> None:
        """Validate build config invariants on creation."""
        if not self.command:
            raise ValueError("build command must not be empty")


@dataclass(frozen=True)
class RunCategory:
    """A class of test artifacts, resolved once at startup.

    For BUILD categories ``command`` is the test binary spawned after each
    successful build; for SPEC categories it is the runner command that
    receives the file list as arguments.
    """

    category_id: str
    kind: CategoryKind
    root: Path
    files: tuple[Path, ...]
    command: tuple[str, ...]
    build: BuildConfig | None = None

    def __post_init__(self) -> None:
        """Validate category invariants on creation."""
        if not self.category_id or not self.category_id.strip():
            raise ValueError("category_id must be a non-empty string")
        if not self.command:
            raise ValueError(f"category {self.category_id} has no command")
        if self.kind is CategoryKind.BUILD and self.build is None:
            raise ValueError(
                f"build-based category {self.category_id} requires a build config"
            )

    @property
    def is_empty(self) -> bool:
        """True when discovery found no files for this category."""
        return not self.files


@dataclass(frozen=True)
class BuildResult:
    """Outcome of one build cycle."""

    success: bool
    error: str | None = None
    duration_seconds: float = 0.0

    def __post_init__(self) -> None:
        """A failed build always carries an error message."""
        if not self.success and not self.error:
            raise ValueError("failed BuildResult requires an error message")


class OutputSegment:
    """One producer's stdout, forwarded to the sink as an opaque unit.

    The producer writes with feed()/finish() (or pump_from() for a stream
    reader); the multiplexer consumes it with ``async for``. Once submitted,
    the segment belongs to the multiplexer until it signals end-of-stream.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self.sequence: int | None = None  # assigned on submission
        self.bytes_fed = 0
        self.completed = False
        self._finished = False
        self._chunks: asyncio.Queue[bytes | None] = asyncio.Queue()

    def __repr__(self) -> str:
        return (
            f"OutputSegment(label={self.label!r}, sequence={self.sequence}, "
            f"completed={self.completed})"
        )

    @property
    def finished(self) -> bool:
        """True once the producer has signalled end-of-stream."""
        return self._finished

    def feed(self, data: bytes) -> None:
        """Append a chunk of output."""
        if self._finished:
            raise ValueError(f"cannot feed finished segment {self.label!r}")
        if data:
            self.bytes_fed += len(data)
            self._chunks.put_nowait(data)

    def finish(self) -> None:
        """Signal end-of-stream. Safe to call more than once."""
        if self._finished:
            return
        self._finished = True
        self._chunks.put_nowait(None)

    async def pump_from(
        self, reader: asyncio.StreamReader, chunk_size: int = 65536
    ) -> None:
        """Copy a stream reader into this segment, then finish it."""
        try:
            while True:
                chunk = await reader.read(chunk_size)
                if not chunk:
                    break
                self.feed(chunk)
        finally:
            self.finish()

    def __aiter__(self) -> "OutputSegment":
        return self

    async def __anext__(self) -> bytes:
        chunk = await self._chunks.get()
        if chunk is None:
            self.completed = True
            raise StopAsyncIteration
        return chunk


class ScheduleState(Enum):
    """Watch-mode scheduler states.

    - IDLE: no run in flight
    - RUNNING: exactly one run in flight, nothing queued
    - RUNNING_WITH_PENDING: one run in flight and one more queued
    """

    IDLE = "idle"
    RUNNING = "running"
    RUNNING_WITH_PENDING = "running_with_pending"


class TriggerSource(Enum):
    """Where a watch-mode trigger came from."""

    STARTUP = "startup"
    FILE_CHANGE = "file_change"
    DEV_SERVER = "dev_server"


@dataclass(frozen=True)
class TriggerEvent:
    """A single external change signal."""

    source: TriggerSource
    payload: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ServiceCheck:
    """A dependent service probed before the spec category runs."""

    service_id: str
    port: int
    host: str = "localhost"
    required: bool = True
    remediation: str = ""

    def __post_init__(self) -> None:
        """Validate service check invariants on creation."""
        if not self.service_id or not self.service_id.strip():
            raise ValueError("service_id must be a non-empty string")
        if self.port <= 0 or self.port > 65535:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True)
class ReadinessReport:
    """Reachability of each probed service, in request order.

    Computed fresh on every check and never cached.
    """

    results: tuple[tuple[ServiceCheck, bool], ...]

    def as_dict(self) -> Mapping[str, bool]:
        """Service id to reachability."""
        return MappingProxyType(
            {check.service_id: reachable for check, reachable in self.results}
        )

    @property
    def unreachable(self) -> tuple[ServiceCheck, ...]:
        """Every service that could not be reached."""
        return tuple(check for check, reachable in self.results if not reachable)

    @property
    def blocking(self) -> tuple[ServiceCheck, ...]:
        """Unreachable services that are required."""
        return tuple(check for check in self.unreachable if check.required)

    @property
    def ready(self) -> bool:
        """True if every required service is reachable."""
        return not self.blocking


@dataclass(frozen=True)
class RunSummary:
    """What a single-shot run did.

    Informational only: the coordinator never turns this into an
    aggregate exit code.
    """

    categories_run: tuple[str, ...]
    categories_skipped: Mapping[str, str]  # category id -> reason
    exit_codes: Mapping[str, tuple[int, ...]]  # category id -> child exit codes

    def __post_init__(self) -> None:
        """Convert mappings to read-only proxies."""
        if isinstance(self.categories_skipped, dict):
            object.__setattr__(
                self, "categories_skipped", MappingProxyType(self.categories_skipped)
            )
        if isinstance(self.exit_codes, dict):
            object.__setattr__(self, "exit_codes", MappingProxyType(self.exit_codes))
