"""Remote-to-local sync of workouts, exercise templates and routines.

Sync order for a full run:
1. Exercise templates (muscle-group data for analytics)
2. Workouts, incrementally from change events when the store already has
   data, otherwise by paging through the full workout list
3. Routines (named from the freshly stored templates)

Every remote page becomes exactly one ``StoreBatch``, so a failure or a
cancellation part-way through a page leaves nothing of that page behind.
"""

from __future__ import annotations

import logging
from typing import Callable

from flexinsight.api.client import WorkoutApiClient, to_iso8601
from flexinsight.cache import TTL_FAMILY, CacheKeys, TTLCache, invalidate_remote_derived
from flexinsight.core.errors import ApiError, NoConnection, NotFound, log_error
from flexinsight.core.network import NetworkMonitor
from flexinsight.models.api import (
    EVENT_CREATED,
    EVENT_DELETED,
    EVENT_UPDATED,
    ExerciseHistoryResponse,
    WorkoutResponse,
)
from flexinsight.policy_loader import SyncPolicy, get_sync_policy
from flexinsight.store.base import StoreBatch, WorkoutStore
from flexinsight.store.records import ExerciseTemplate, Routine, RoutineFolder, Workout, now_ms

logger = logging.getLogger("flexinsight.sync.repository")


class WorkoutSyncRepository:
    """Mirror the remote workout log into a ``WorkoutStore``.

    Usage::

        repository = WorkoutSyncRepository(client, store, cache)
        await repository.sync_all_data()
        mapping = await repository.exercise_template_mapping()
    """

    def __init__(
        self,
        client: WorkoutApiClient,
        store: WorkoutStore,
        cache: TTLCache,
        policy: SyncPolicy | None = None,
        network: NetworkMonitor | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the repository.

        Args:
            client:  Remote API client.
            store:   Local store receiving every synced page.
            cache:   Shared TTL cache (template mapping, routines, event names).
            policy:  Page sizes and TTLs; defaults to the loaded sync policy.
            network: Reachability oracle consulted before remote template
                     fetches; None means "assume reachable".
            clock:   Epoch-ms clock stamped on synced rows as ``last_synced``.
        """
        self._client = client
        self._store = store
        self._cache = cache
        self._policy = policy or get_sync_policy()
        self._network = network
        self._clock = clock

    def _ttl(self, key: str) -> float:
        return self._policy.cache_ttl(TTL_FAMILY[key])

    def _page_size(self, endpoint: str) -> int:
        return self._policy.sync.page_size(endpoint)

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def sync_all_data(self) -> None:
        """Sync templates, then workouts, then routines.

        Template failures other than authentication are logged and skipped,
        since analytics can fall back to name heuristics.  Any workout or
        routine failure propagates.

        Raises:
            ApiError: The classified failure that stopped the sync.
        """
        try:
            await self.sync_exercise_templates()
        except ApiError as error:
            if error.is_auth_error:
                raise
            log_error(error, "exercise templates")

        await self.sync_workouts()
        await self.sync_routines()

    # ------------------------------------------------------------------
    # Exercise templates
    # ------------------------------------------------------------------

    async def sync_exercise_templates(self) -> int:
        """Fetch every template page into the store.

        Returns:
            Number of templates written.
        """
        page = 1
        written = 0
        while True:
            response = await self._client.get_exercise_templates(
                page, self._page_size("exercise_templates")
            )
            templates = [t.to_exercise_template() for t in response.exercise_templates or []]
            if not templates:
                break
            await self._store.apply_batch(StoreBatch(templates=templates))
            written += len(templates)
            if page >= response.page_count:
                break
            page += 1
        logger.info("Synced %d exercise templates", written)
        return written

    async def exercise_template_mapping(self) -> dict[str, str]:
        """Return ``template_id → muscle_group`` for every known template.

        Served from the cache when fresh, else rebuilt from stored templates,
        else fetched from the remote API.  When only event-derived template
        names are available and the remote fetch is impossible, an empty
        mapping is returned so callers fall back to name heuristics.

        Raises:
            ApiError: When nothing is known locally and the remote fetch fails.
        """
        cached = self._cache.get(CacheKeys.EXERCISE_TEMPLATES, self._ttl(CacheKeys.EXERCISE_TEMPLATES))
        if cached is not None:
            return cached

        templates = await self._store.exercise_templates()
        if not templates:
            names_from_events = self._cache.get(
                CacheKeys.EXERCISE_TEMPLATES_FROM_EVENTS,
                self._ttl(CacheKeys.EXERCISE_TEMPLATES_FROM_EVENTS),
            )
            try:
                if self._network is not None and not await self._network.is_reachable():
                    raise NoConnection()
                await self.sync_exercise_templates()
            except ApiError as error:
                if names_from_events is None:
                    raise
                log_error(error, "exercise template mapping")
                return {}
            templates = await self._store.exercise_templates()

        mapping = _muscle_groups(templates)
        self._cache.put(CacheKeys.EXERCISE_TEMPLATES, mapping)
        return mapping

    async def template_names(self) -> dict[str, str]:
        """``template_id → name`` from stored templates, then event-derived names."""
        names: dict[str, str] = dict(
            self._cache.get(
                CacheKeys.EXERCISE_TEMPLATES_FROM_EVENTS,
                self._ttl(CacheKeys.EXERCISE_TEMPLATES_FROM_EVENTS),
            )
            or {}
        )
        names.update({t.id: t.name for t in await self._store.exercise_templates()})
        return names

    def _remember_template_names(self, workouts: list[WorkoutResponse]) -> None:
        key = CacheKeys.EXERCISE_TEMPLATES_FROM_EVENTS
        known: dict[str, str] = self._cache.get(key, self._ttl(key)) or {}
        additions = {
            e.exercise_template_id: e.title
            for w in workouts
            for e in w.exercises or []
            if e.exercise_template_id and e.exercise_template_id not in known
        }
        if additions:
            self._cache.put(key, {**known, **additions})

    # ------------------------------------------------------------------
    # Workouts
    # ------------------------------------------------------------------

    async def sync_workouts(self) -> int:
        """Bring the local workout mirror up to date.

        When the store already holds workouts, change events since the most
        recent ``last_synced`` are applied first.  Any non-auth failure on
        that path falls back to paging the full workout list, stopping at the
        first page with no unknown workouts.

        Returns:
            Number of workouts written or deleted.

        Raises:
            ApiError: Authentication failures, and any failure of the
                      pagination path.
        """
        latest = await self._store.most_recent_synced()
        if latest is not None:
            since = to_iso8601(latest.last_synced)
            try:
                return await self._sync_from_events(since)
            except ApiError as error:
                if error.is_auth_error:
                    raise
                log_error(error, "workout events")
                logger.info("Falling back to paginated workout sync")
        return await self._sync_by_pagination(incremental=latest is not None)

    async def _sync_from_events(self, since: str) -> int:
        page = 1
        changed = 0
        while True:
            response = await self._client.get_workout_events(page, self._page_size("events"), since)
            events = response.events or []
            if not events:
                break

            batch = StoreBatch()
            details: list[WorkoutResponse] = []
            synced_at = self._clock()
            for event in events:
                workout_id = event.target_id
                if workout_id is None:
                    continue
                if event.type == EVENT_DELETED:
                    batch.delete_workout(workout_id)
                elif event.type in (EVENT_CREATED, EVENT_UPDATED):
                    detail = await self._fetch_detail(workout_id)
                    if detail is not None:
                        batch.add_workout(*detail.to_records(synced_at))
                        details.append(detail)
                else:
                    logger.debug("Ignoring workout event of type %r", event.type)

            await self._store.apply_batch(batch)
            self._remember_template_names(details)
            changed += len(batch.workouts) + len(batch.deleted_workout_ids)
            if page >= response.page_count:
                break
            page += 1

        logger.info("Applied %d workout changes since %s", changed, since)
        return changed

    async def _sync_by_pagination(self, incremental: bool) -> int:
        page = 1
        written = 0
        while True:
            response = await self._client.get_workouts(page, self._page_size("workouts"))
            summaries = response.workouts or []
            if not summaries:
                break

            if incremental:
                targets = [w for w in summaries if await self._store.get_workout(w.id) is None]
                if not targets:
                    logger.info("Workout page %d holds no new workouts; caught up", page)
                    break
            else:
                targets = summaries

            batch = StoreBatch()
            details: list[WorkoutResponse] = []
            synced_at = self._clock()
            for summary in targets:
                detail = await self._fetch_detail(summary.id)
                if detail is not None:
                    batch.add_workout(*detail.to_records(synced_at))
                    details.append(detail)

            await self._store.apply_batch(batch)
            self._remember_template_names(details)
            written += len(batch.workouts)
            if page >= response.page_count:
                break
            page += 1

        logger.info("Synced %d workouts by pagination", written)
        return written

    async def _fetch_detail(self, workout_id: str) -> WorkoutResponse | None:
        """Fetch one workout; None when it must be skipped.

        Only non-retryable, non-auth failures are skipped.  Retryable ones
        have already exhausted the executor's budget and abort the sync.
        """
        try:
            return await self._client.get_workout(workout_id)
        except ApiError as error:
            if error.is_retryable or error.is_auth_error:
                raise
            log_error(error, f"workout {workout_id}")
            return None

    async def workout(self, workout_id: str) -> Workout:
        """Local workout, fetched from the remote API and stored when missing.

        Raises:
            ApiError: If the workout is not stored and the fetch fails.
        """
        stored = await self._store.get_workout(workout_id)
        if stored is not None:
            return stored
        detail = await self._client.get_workout(workout_id)
        workout, exercises, sets = detail.to_records(self._clock())
        await self._store.upsert_workout(workout, exercises, sets)
        return workout

    async def remote_workout_count(self) -> int:
        return (await self._client.get_workout_count()).workout_count

    # ------------------------------------------------------------------
    # Routines
    # ------------------------------------------------------------------

    async def sync_routines(self) -> int:
        """Fetch every routine page into the store.

        Returns:
            Number of routines written.
        """
        names = await self.template_names()
        page = 1
        written = 0
        while True:
            response = await self._client.get_routines(page, self._page_size("routines"))
            routines = [r.to_routine(names) for r in response.routines or []]
            if not routines:
                break
            await self._store.apply_batch(StoreBatch(routines=routines))
            written += len(routines)
            if page >= response.page_count:
                break
            page += 1
        logger.info("Synced %d routines", written)
        return written

    async def routines(self) -> list[Routine]:
        """Stored routines, cached for the routines TTL."""
        cached = self._cache.get(CacheKeys.ROUTINES, self._ttl(CacheKeys.ROUTINES))
        if cached is not None:
            return cached
        routines = await self._store.routines()
        self._cache.put(CacheKeys.ROUTINES, routines)
        return routines

    async def routine(self, routine_id: str) -> Routine:
        """A routine by ID, from the local mirror or else the remote API.

        Raises:
            ApiError: ``NotFound`` and friends from the remote lookup.
        """
        for routine in await self.routines():
            if routine.id == routine_id:
                return routine
        response = await self._client.get_routine(routine_id)
        return response.to_routine(await self.template_names())

    async def routine_folders(self) -> list[RoutineFolder]:
        folders: list[RoutineFolder] = []
        page = 1
        while True:
            try:
                response = await self._client.get_routine_folders(
                    page, self._page_size("routine_folders")
                )
            except NotFound:
                # The API answers 404 for a page past the last one.
                break
            if not response.folders:
                break
            folders.extend(f.to_routine_folder() for f in response.folders)
            if page >= response.page_count:
                break
            page += 1
        return sorted(folders, key=lambda f: f.index)

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def exercise_history(self, template_id: str) -> ExerciseHistoryResponse:
        return await self._client.get_exercise_history(template_id)

    def clear_cache(self) -> None:
        """Drop cached stats, the template mapping and routines.

        Event-derived template names are kept; they only expire by TTL.
        """
        invalidate_remote_derived(self._cache)


def _muscle_groups(templates: list[ExerciseTemplate]) -> dict[str, str]:
    return {t.id: t.muscle_group for t in templates if t.muscle_group}
