"""Readiness probing for services the spec category depends on.

One TCP connect per port, all issued concurrently. A failed probe
resolves to False and never raises past this module.
"""

import asyncio
import logging
from collections.abc import Sequence

from .models import ReadinessReport, ServiceCheck

logger = logging.getLogger(__name__)


class ReadinessProber:
    """Checks whether dependent services accept TCP connections."""

    def __init__(self, default_host: str = "localhost"):
        self.default_host = default_host

    async def check_port(self, port: int, host: str | None = None) -> bool:
        """Probe a single port.

        Relies on the connection attempt's own timeout and error semantics.

        Args:
            port: TCP port to connect to.
            host: Host to probe (defaults to default_host).

        Returns:
            True if a connection was established, False otherwise.
        """
        target = host or self.default_host
        try:
            _, writer = await asyncio.open_connection(target, port)
        except (OSError, ValueError) as e:
            logger.debug(f"Probe {target}:{port} failed: {e}")
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def probe_ports(
        self, ports: Sequence[int], host: str | None = None
    ) -> list[bool]:
        """Probe several ports concurrently.

        Returns:
            One result per port, in request order.
        """
        return list(
            await asyncio.gather(*(self.check_port(port, host) for port in ports))
        )

    async def check(self, services: Sequence[ServiceCheck]) -> ReadinessReport:
        """Probe every service and log one diagnostic per unreachable one.

        All probes resolve before this returns; there is no short-circuit.
        """
        results = await asyncio.gather(
            *(self.check_port(check.port, check.host) for check in services)
        )
        report = ReadinessReport(results=tuple(zip(services, results)))

        for check in report.unreachable:
            kind = "required" if check.required else "advisory"
            message = (
                f"{check.service_id} is not reachable on "
                f"{check.host}:{check.port} ({kind})"
            )
            if check.remediation:
                message += f". {check.remediation}"
            logger.warning(message)

        return report
