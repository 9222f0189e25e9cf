"""Error taxonomy for the run coordinator.

Spawn errors are contained per category (build failures travel as a
failed BuildResult); discovery and watch-channel errors are fatal;
readiness errors abort only the spec category.
"""

from .models import ReadinessReport


class TestmuxError(Exception):
    """Base class for all coordinator errors."""

    __test__ = False  # not a pytest test class


class DiscoveryError(TestmuxError):
    """An input path matches no known category root."""


class SpawnError(TestmuxError):
    """A child test process could not be started."""


class ReadinessError(TestmuxError):
    """A required dependent service is unreachable."""

    def __init__(self, report: ReadinessReport):
        self.report = report
        names = ", ".join(check.service_id for check in report.blocking)
        super().__init__(f"required services unreachable: {names}")


class WatchChannelError(TestmuxError):
    """The dev-server notification channel failed."""
