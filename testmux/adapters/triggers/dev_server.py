"""Dev-server notification channel.

Streams push notifications from the development server over HTTP, one
payload per line (plain lines or server-sent-event ``data:`` lines).
Heartbeats are published like any other payload; the scheduler filters
them. Losing the channel is fatal: watch mode cannot see rebuild and
reload cycles without it.
"""

import logging
from collections.abc import Callable

import httpx

from testmux.core.errors import WatchChannelError
from testmux.core.models import TriggerEvent, TriggerSource
from testmux.core.ports import TriggerSourcePort

logger = logging.getLogger(__name__)


def parse_payload(line: str) -> str | None:
    """Extract the payload from one line of the stream.

    Returns:
        The payload, or None for blank lines, SSE comments and
        non-data SSE fields.
    """
    line = line.rstrip("\r")
    if not line or line.startswith(":"):
        return None
    if line.startswith("data:"):
        return line[len("data:"):].strip()
    if line.split(":", 1)[0] in ("event", "id", "retry"):
        return None
    return line.strip()


class DevServerChannelSource(TriggerSourcePort):
    """Publishes a DEV_SERVER trigger for every notification received."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        connect_timeout: float = 10.0,
    ):
        """Initialize the channel.

        Args:
            url: Streaming endpoint of the development server.
            client: Optional preconfigured client (closed by the caller).
            connect_timeout: Connect timeout; reads never time out.
        """
        self.url = url
        self._client = client
        self.connect_timeout = connect_timeout
        self.messages_received = 0

    async def listen(self, publish: Callable[[TriggerEvent], None]) -> None:
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.connect_timeout, read=None)
        )
        try:
            logger.info(f"Connecting to dev-server channel {self.url}")
            async with client.stream("GET", self.url) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    payload = parse_payload(line)
                    if payload is None:
                        continue
                    self.messages_received += 1
                    publish(TriggerEvent(source=TriggerSource.DEV_SERVER, payload=payload))
        except httpx.HTTPError as e:
            raise WatchChannelError(f"dev-server channel {self.url} failed: {e}") from e
        finally:
            if owns_client:
                await client.aclose()

        raise WatchChannelError(f"dev-server channel {self.url} closed by server")
