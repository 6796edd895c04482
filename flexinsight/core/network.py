"""Network reachability oracle.

Reachability is probed by opening a TCP connection to the API host.  The
monitor keeps the last observed state and can stream de-duplicated
transitions for the background scheduler.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import AsyncIterator, TypeVar

from flexinsight.config import Settings, get_settings

logger = logging.getLogger("flexinsight.core.network")

T = TypeVar("T")


class NetworkState(enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"

    @property
    def is_available(self) -> bool:
        return self is NetworkState.AVAILABLE


async def distinct_until_changed(source: AsyncIterator[T]) -> AsyncIterator[T]:
    """Drop consecutive duplicates from an async stream."""
    sentinel = object()
    previous: object = sentinel
    async for item in source:
        if item != previous:
            previous = item
            yield item


class NetworkMonitor:
    """TCP-probe reachability checks against the API host.

    Usage::

        monitor = NetworkMonitor.from_settings()
        if await monitor.is_reachable():
            ...
        async for state in monitor.watch():
            ...
    """

    def __init__(
        self,
        host: str,
        port: int = 443,
        timeout: float = 3.0,
        poll_interval: float = 10.0,
    ) -> None:
        """Initialize the monitor.

        Args:
            host:          Host to probe.
            port:          TCP port to probe.
            timeout:       Seconds to wait for the connection.
            poll_interval: Seconds between probes while watching.
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._state = NetworkState.UNKNOWN

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> NetworkMonitor:
        s = settings or get_settings()
        return cls(
            host=s.probe_host,
            port=s.probe_port,
            timeout=s.probe_timeout_seconds,
            poll_interval=s.probe_interval_seconds,
        )

    @property
    def current_state(self) -> NetworkState:
        """Last observed state; UNKNOWN until the first probe."""
        return self._state

    async def _probe(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("Reachability probe to %s:%d failed: %s", self.host, self.port, exc)
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def check(self) -> NetworkState:
        """Probe now and record the result."""
        reachable = await self._probe()
        state = NetworkState.AVAILABLE if reachable else NetworkState.UNAVAILABLE
        if state is not self._state:
            logger.info("Network state: %s → %s", self._state.value, state.value)
        self._state = state
        return state

    async def is_reachable(self) -> bool:
        return (await self.check()).is_available

    async def _poll(self) -> AsyncIterator[NetworkState]:
        while True:
            yield await self.check()
            await asyncio.sleep(self.poll_interval)

    async def watch(self) -> AsyncIterator[NetworkState]:
        """Yield the current state, then each change, polling every ``poll_interval``."""
        async for state in distinct_until_changed(self._poll()):
            yield state
