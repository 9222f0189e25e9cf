"""Fake/mock implementations of core ports for testing.

These in-memory implementations allow the coordinator core to be tested
without external dependencies:

- FakeSinkPort: Captured report and diagnostic bytes
- FakeProcessSpawnPort: Scripted child processes
- FakeBuildPort: Scripted build results
- FakeDiscoveryPort: Canned file lists per root
- FakeTriggerSource: Manually emitted trigger events
- FakeReadinessProber: Scripted port reachability
"""

from .build import FakeBuildPort
from .discovery import FakeDiscoveryPort
from .readiness import FakeReadinessProber
from .sink import FakeSinkPort
from .spawn import FakeChildProcess, FakeProcessSpawnPort, ProcessScript
from .triggers import FakeTriggerSource

__all__ = [
    "FakeBuildPort",
    "FakeChildProcess",
    "FakeDiscoveryPort",
    "FakeProcessSpawnPort",
    "FakeReadinessProber",
    "FakeSinkPort",
    "FakeTriggerSource",
    "ProcessScript",
]
