"""Core coordinator logic for testmux.

This package contains zero external dependencies: the ordered
multiplexer, readiness prober, watch scheduler, category runners and
run coordinator. All collaborators (build tool, process spawning,
file watching, report rendering) are reached through ports.
"""

from .models import (
    BuildConfig,
    BuildResult,
    CategoryKind,
    OutputSegment,
    ReadinessReport,
    RunCategory,
    RunSummary,
    ScheduleState,
    ServiceCheck,
    TriggerEvent,
    TriggerSource,
)

__all__ = [
    "BuildConfig",
    "BuildResult",
    "CategoryKind",
    "OutputSegment",
    "ReadinessReport",
    "RunCategory",
    "RunSummary",
    "ScheduleState",
    "ServiceCheck",
    "TriggerEvent",
    "TriggerSource",
]
