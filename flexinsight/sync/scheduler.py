"""Periodic and connectivity-triggered background sync."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from flexinsight.core.network import NetworkMonitor
from flexinsight.policy_loader import get_sync_policy
from flexinsight.sync.coordinator import SyncCoordinator

logger = logging.getLogger("flexinsight.sync.scheduler")


class BackgroundSyncScheduler:
    """Run ``sync_if_needed`` on a timer and whenever the network comes back.

    The coordinator's cooldown and in-flight guard make redundant triggers
    harmless, so the two loops do not coordinate with each other.

    Usage::

        scheduler = BackgroundSyncScheduler(coordinator, network)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        network: NetworkMonitor,
        interval: float | timedelta | None = None,
    ) -> None:
        if interval is None:
            interval = get_sync_policy().sync.background_interval_seconds
        if isinstance(interval, timedelta):
            interval = interval.total_seconds()
        self._coordinator = coordinator
        self._network = network
        self.interval = interval
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._periodic(), name="flexinsight-periodic-sync"),
            asyncio.create_task(self._on_reconnect(), name="flexinsight-reconnect-sync"),
        ]
        logger.info("Background sync started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Background sync stopped")

    async def run_once(self) -> bool:
        return await self._coordinator.sync_if_needed()

    async def _periodic(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    async def _on_reconnect(self) -> None:
        first = True
        async for state in self._network.watch():
            # The first emission is the current state, covered by the timer.
            if not first and state.is_available:
                logger.info("Network available again; triggering sync")
                await self.run_once()
            first = False
