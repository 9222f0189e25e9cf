"""Tests for readiness probing and required/advisory gating."""

import asyncio
import logging
import socket
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from testmux.core.models import ReadinessReport, ServiceCheck
from testmux.core.readiness import ReadinessProber


def closed_port() -> int:
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest_asyncio.fixture
async def open_port() -> AsyncIterator[int]:
    """A local port with a listening server."""

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port
    server.close()
    await server.wait_closed()


@pytest.fixture
def prober() -> ReadinessProber:
    """Create a prober targeting the loopback interface."""
    return ReadinessProber(default_host="127.0.0.1")


@pytest.mark.asyncio
async def test_check_port_open(prober: ReadinessProber, open_port: int) -> None:
    """A listening port is reachable."""
    assert await prober.check_port(open_port) is True


@pytest.mark.asyncio
async def test_check_port_closed(prober: ReadinessProber) -> None:
    """A refused connection resolves to False instead of raising."""
    assert await prober.check_port(closed_port()) is False


@pytest.mark.asyncio
async def test_check_port_unknown_host(prober: ReadinessProber) -> None:
    """Host resolution errors resolve to False."""
    assert await prober.check_port(80, host="testmux-no-such-host.invalid") is False


@pytest.mark.asyncio
async def test_probe_ports_preserves_request_order(
    prober: ReadinessProber, open_port: int
) -> None:
    """One open and two closed ports give [True, False, False]."""
    results = await prober.probe_ports([open_port, closed_port(), closed_port()])
    assert results == [True, False, False]

    results = await prober.probe_ports([closed_port(), open_port])
    assert results == [False, True]


@pytest.mark.asyncio
async def test_check_blocks_when_required_service_down(
    prober: ReadinessProber, open_port: int
) -> None:
    """An unreachable required service makes the report not ready."""
    services = [
        ServiceCheck("graph-database", closed_port(), "127.0.0.1", required=True),
        ServiceCheck("dev-server", open_port, "127.0.0.1", required=True),
        ServiceCheck("browser-automation", open_port, "127.0.0.1", required=False),
    ]

    report = await prober.check(services)

    assert report.ready is False
    assert [check.service_id for check in report.blocking] == ["graph-database"]
    assert dict(report.as_dict()) == {
        "graph-database": False,
        "dev-server": True,
        "browser-automation": True,
    }


@pytest.mark.asyncio
async def test_check_advisory_failure_does_not_block(
    prober: ReadinessProber, open_port: int
) -> None:
    """Advisory services are reported but never gate the run."""
    services = [
        ServiceCheck("graph-database", open_port, "127.0.0.1", required=True),
        ServiceCheck("dev-server", open_port, "127.0.0.1", required=True),
        ServiceCheck("browser-automation", closed_port(), "127.0.0.1", required=False),
    ]

    report = await prober.check(services)

    assert report.ready is True
    assert [check.service_id for check in report.unreachable] == ["browser-automation"]
    assert report.blocking == ()


@pytest.mark.asyncio
async def test_check_required_down_blocks_regardless_of_advisory(
    prober: ReadinessProber, open_port: int
) -> None:
    """Required gating ignores the advisory service's state."""
    for advisory_port in (open_port, closed_port()):
        services = [
            ServiceCheck("graph-database", open_port, "127.0.0.1", required=True),
            ServiceCheck("dev-server", closed_port(), "127.0.0.1", required=True),
            ServiceCheck("browser-automation", advisory_port, "127.0.0.1", required=False),
        ]
        report = await prober.check(services)
        assert report.ready is False


@pytest.mark.asyncio
async def test_check_logs_remediation_per_unreachable_service(
    prober: ReadinessProber, caplog: pytest.LogCaptureFixture
) -> None:
    """Each unreachable service yields one diagnostic naming it."""
    services = [
        ServiceCheck(
            "graph-database", closed_port(), "127.0.0.1",
            required=True, remediation="Start the graph database.",
        ),
        ServiceCheck(
            "browser-automation", closed_port(), "127.0.0.1",
            required=False, remediation="Start the browser server.",
        ),
    ]

    with caplog.at_level(logging.WARNING, logger="testmux.core.readiness"):
        await prober.check(services)

    messages = [record.getMessage() for record in caplog.records]
    assert len(messages) == 2
    assert "graph-database" in messages[0] and "Start the graph database." in messages[0]
    assert "(required)" in messages[0]
    assert "browser-automation" in messages[1] and "(advisory)" in messages[1]


@pytest.mark.asyncio
async def test_check_is_never_cached(prober: ReadinessProber) -> None:
    """A service coming up between checks is seen by the next check."""
    server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    service = ServiceCheck("dev-server", port, "127.0.0.1")

    first = await prober.check([service])
    server.close()
    await server.wait_closed()
    second = await prober.check([service])

    assert first.ready is True
    assert second.ready is False


def test_report_with_no_services_is_ready() -> None:
    """Nothing to check means nothing blocks."""
    report = ReadinessReport(results=())
    assert report.ready is True
    assert dict(report.as_dict()) == {}


def test_service_check_validates_port() -> None:
    """Ports outside 1..65535 are rejected."""
    with pytest.raises(ValueError):
        ServiceCheck("bad", 0)
    with pytest.raises(ValueError):
        ServiceCheck("bad", 70000)
