"""Sync coordination: cooldown, reachability gating and observable state.

Two entry points share one repository:

* ``sync_manually`` always runs (network permitting) and surfaces every
  outcome through ``state`` as ``Success`` or ``Failure``.
* ``sync_if_needed`` is the background path.  It runs only when no sync is in
  flight, the cooldown has elapsed and the network is reachable, and it
  swallows failures after logging them.

A manual sync may overlap a background sync already in flight.  Both write
through atomic store batches, so the worst case is a redundant fetch.
Only the most recently started sync publishes its outcome.  Cancelling either
path rolls the state back before the cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from flexinsight.cache import TTLCache, invalidate_remote_derived
from flexinsight.core.errors import ApiError, NoConnection, classify_exception, log_error
from flexinsight.core.network import NetworkMonitor
from flexinsight.policy_loader import get_sync_policy
from flexinsight.store.records import now_ms
from flexinsight.sync.repository import WorkoutSyncRepository
from flexinsight.sync.state import Failure, Idle, StateFlow, Success, SyncState, Syncing

logger = logging.getLogger("flexinsight.sync.coordinator")


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one manual sync."""

    success: bool
    synced_at: int | None = None
    error: ApiError | None = None

    @classmethod
    def ok(cls, synced_at: int) -> SyncResult:
        return cls(success=True, synced_at=synced_at)

    @classmethod
    def failed(cls, error: ApiError) -> SyncResult:
        return cls(success=False, error=error)


class SyncCoordinator:
    """Decide when to sync and publish what happened.

    Usage::

        coordinator = SyncCoordinator(repository, network, cache)
        result = await coordinator.sync_manually()
        async for state in coordinator.state.subscribe():
            ...
    """

    def __init__(
        self,
        repository: WorkoutSyncRepository,
        network: NetworkMonitor,
        cache: TTLCache,
        min_interval: float | timedelta | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the coordinator.

        Args:
            repository:   Performs the actual sync.
            network:      Reachability oracle.
            cache:        Cache whose remote-derived families are dropped on success.
            min_interval: Background cooldown; defaults to the policy's
                          ``sync.min_interval_minutes``.
            clock:        Epoch-ms clock.
        """
        if min_interval is None:
            min_interval = get_sync_policy().sync.min_interval_seconds
        if isinstance(min_interval, timedelta):
            min_interval = min_interval.total_seconds()

        self._repository = repository
        self._network = network
        self._cache = cache
        self._min_interval_ms = min_interval * 1000
        self._clock = clock
        self._state: StateFlow[SyncState] = StateFlow(Idle())
        self._last_sync_time: int | None = None
        self._background_lock = asyncio.Lock()
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> StateFlow[SyncState]:
        return self._state

    @property
    def last_sync_time(self) -> int | None:
        """Epoch ms of the last successful sync, or None if there was none."""
        return self._last_sync_time

    def time_since_last_sync(self) -> float:
        """Milliseconds since the last successful sync; ``inf`` if never."""
        if self._last_sync_time is None:
            return math.inf
        return self._clock() - self._last_sync_time

    def _begin(self) -> int:
        self._generation += 1
        self._state.set(Syncing())
        return self._generation

    def _settle(self, generation: int, state: SyncState) -> None:
        """Publish ``state`` unless a newer sync has started since ``generation``."""
        if self._generation == generation:
            self._state.set(state)

    def _complete(self, generation: int) -> SyncResult:
        synced_at = self._clock()
        self._last_sync_time = max(synced_at, self._last_sync_time or 0)
        dropped = invalidate_remote_derived(self._cache)
        logger.info("Sync completed; invalidated %d cached entries", dropped)
        self._settle(generation, Success(synced_at))
        return SyncResult.ok(synced_at)

    # ------------------------------------------------------------------
    # Manual
    # ------------------------------------------------------------------

    async def sync_manually(self) -> SyncResult:
        """Sync now, regardless of cooldown, and publish the outcome.

        Raises:
            asyncio.CancelledError: Re-raised after the state is rolled back
                to what it was before the call.
        """
        previous = self._state.value
        if isinstance(previous, Syncing):
            # Overlapping a background sync, which will not publish over us.
            previous = Idle()
        generation = self._begin()

        try:
            if not await self._network.is_reachable():
                raise NoConnection()
            await self._repository.sync_all_data()
        except asyncio.CancelledError:
            logger.info("Manual sync cancelled")
            self._settle(generation, previous)
            raise
        except Exception as exc:
            error = classify_exception(exc)
            log_error(error, "manual sync")
            self._settle(generation, Failure(error))
            return SyncResult.failed(error)

        return self._complete(generation)

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    async def should_sync(self) -> bool:
        """True when idle, past the cooldown and online."""
        if isinstance(self._state.value, Syncing):
            return False
        if self.time_since_last_sync() < self._min_interval_ms:
            return False
        return await self._network.is_reachable()

    async def sync_if_needed(self) -> bool:
        """Run a background sync if one is due.

        Failures are logged and swallowed, and the state reverts to what it
        was before the attempt.  Cancellation reverts the state the same way
        and then propagates.

        Returns:
            True only when a sync ran and succeeded.
        """
        if self._background_lock.locked():
            return False
        async with self._background_lock:
            if not await self.should_sync():
                logger.debug("Background sync not needed")
                return False

            previous = self._state.value
            generation = self._begin()
            try:
                await self._repository.sync_all_data()
            except asyncio.CancelledError:
                logger.info("Background sync cancelled")
                self._settle(generation, previous)
                raise
            except Exception as exc:
                log_error(classify_exception(exc), "background sync")
                # A manual sync that started meanwhile owns the state now.
                self._settle(generation, previous)
                return False

            self._complete(generation)
            return True

    def sync_on_resume(self) -> asyncio.Task:
        """Schedule ``sync_if_needed`` without waiting for it."""
        task = asyncio.create_task(self.sync_if_needed())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
