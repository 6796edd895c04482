"""Cached statistics over the local workout store.

Each public method reads the store, hands the records to the pure
``calculator`` functions and caches the derived records under a
``CacheKeys`` family with the policy TTL for that family.  The coordinator
drops these families after every successful sync.
"""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Awaitable, Callable, Mapping

from flexinsight.analytics import calculator
from flexinsight.analytics.models import (
    DailyDurationData,
    DayInfo,
    MuscleGroupProgress,
    PRDetails,
    SingleWorkoutStats,
    VolumeBalance,
    VolumeTrend,
    WeeklyGoalProgress,
    WeeklyProgress,
    WeeklyVolumeData,
    WorkoutStats,
)
from flexinsight.analytics.muscle_groups import resolve_muscle_group
from flexinsight.cache import STATS_PREFIXES, TTL_FAMILY, CacheKeys, TTLCache
from flexinsight.core.errors import ApiError, log_error
from flexinsight.policy_loader import SyncPolicy, get_sync_policy
from flexinsight.store.base import WorkoutStore
from flexinsight.store.records import Exercise, Workout, WorkoutSet, now_ms

logger = logging.getLogger("flexinsight.analytics.stats")

TOP_MUSCLE_GROUPS = 3
BEST_WEEK_WINDOW = 4

TemplateMappingSource = Callable[[], Awaitable[Mapping[str, str]]]


class StatsService:
    """Derived statistics for the dashboard, insights and profile views.

    Usage::

        stats = StatsService(store, cache, repository.exercise_template_mapping)
        overview = await stats.calculate_stats()
        top = await stats.muscle_group_progress(weeks=4)
    """

    def __init__(
        self,
        store: WorkoutStore,
        cache: TTLCache,
        muscle_groups: TemplateMappingSource | None = None,
        clock: Callable[[], int] = now_ms,
        tz: tzinfo | None = None,
        policy: SyncPolicy | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store:         Local workout store.
            cache:         Shared TTL cache.
            muscle_groups: Async source of ``template_id → muscle_group``;
                           None means name heuristics only.
            clock:         Epoch-ms clock.
            tz:            Zone for day bucketing; None is the system zone.
            policy:        TTLs per family; defaults to the loaded sync policy.
        """
        self._store = store
        self._cache = cache
        self._muscle_groups = muscle_groups
        self._clock = clock
        self._tz = tz
        self._policy = policy or get_sync_policy()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _cached(self, key: str, family: str):
        return self._cache.get(key, self._policy.cache_ttl(TTL_FAMILY[family]))

    async def _children(
        self, workouts: list[Workout]
    ) -> tuple[list[Exercise], list[WorkoutSet]]:
        exercises = await self._store.exercises_for_workouts(w.id for w in workouts)
        sets = await self._store.sets_for_exercises(e.id for e in exercises)
        return exercises, sets

    async def _trailing(self, days: int) -> list[Workout]:
        now = self._clock()
        return await self._store.workouts_in_range(calculator.trailing_start(now, days, self._tz), now)

    async def _template_mapping(self) -> Mapping[str, str]:
        if self._muscle_groups is None:
            return {}
        try:
            return await self._muscle_groups()
        except ApiError as error:
            # Name heuristics still give a useful answer offline.
            log_error(error, "muscle group mapping")
            return {}

    def _week_bounds(self) -> tuple[int, int]:
        return calculator.week_range(calculator.local_date(self._clock(), self._tz), self._tz)

    # ------------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------------

    async def calculate_stats(self) -> WorkoutStats:
        """Whole-history totals, streaks and the best of the last four weeks."""
        cached = self._cached(CacheKeys.WORKOUT_STATS, CacheKeys.WORKOUT_STATS)
        if cached is not None:
            return cached

        workouts = await self._store.all_workouts()
        if not workouts:
            stats = WorkoutStats.empty()
            self._cache.put(CacheKeys.WORKOUT_STATS, stats)
            return stats

        exercises, sets = await self._children(workouts)
        count = len(workouts)
        volume = calculator.total_volume(workouts, exercises, sets)
        duration = calculator.total_duration_minutes(workouts)
        today = calculator.local_date(self._clock(), self._tz)

        weeks = await self.weekly_progress(BEST_WEEK_WINDOW)
        best = max(weeks, key=lambda w: w.total_volume, default=None)
        if best is not None and best.total_volume <= 0:
            best = None

        stats = WorkoutStats(
            total_workouts=count,
            total_volume=volume,
            average_volume=volume / count,
            total_sets=len(sets),
            total_duration=duration,
            average_duration=duration // count,
            current_streak=calculator.current_streak(workouts, today, self._tz),
            longest_streak=calculator.longest_streak(workouts, self._tz),
            best_week_volume=best.total_volume if best else 0.0,
            best_week_date=best.week_start_date if best else None,
        )
        self._cache.put(CacheKeys.WORKOUT_STATS, stats)
        logger.debug("Computed stats over %d workouts", count)
        return stats

    async def workout_stats(self, workout_id: str) -> SingleWorkoutStats | None:
        """Duration, set count and volume of one workout; None if unknown."""
        workout = await self._store.get_workout(workout_id)
        if workout is None:
            return None
        _, sets = await self._children([workout])
        return SingleWorkoutStats(
            duration_minutes=calculator.workout_duration_minutes(workout),
            total_sets=len(sets),
            total_volume=sum(calculator.set_volume(s) for s in sets),
        )

    async def member_since(self) -> int | None:
        workouts = await self._store.all_workouts()
        return min((w.start_time for w in workouts), default=None)

    # ------------------------------------------------------------------
    # Personal records
    # ------------------------------------------------------------------

    async def prs_with_details(self, limit: int = 10) -> list[PRDetails]:
        """Most recent PR sets joined with their exercise and workout.

        Sets without a weight, or whose exercise or workout is gone, are
        skipped.
        """
        key = CacheKeys.keyed(CacheKeys.PRS_WITH_DETAILS, limit)
        cached = self._cached(key, CacheKeys.PRS_WITH_DETAILS)
        if cached is not None:
            return cached

        pr_sets = await self._store.recent_prs(limit)
        if not pr_sets:
            return []

        mapping = await self._template_mapping()
        exercises: dict[str, Exercise | None] = {}
        workouts: dict[str, Workout | None] = {}
        details: list[PRDetails] = []
        for workout_set in pr_sets:
            if workout_set.weight is None:
                continue
            if workout_set.exercise_id not in exercises:
                exercises[workout_set.exercise_id] = await self._store.exercise(
                    workout_set.exercise_id
                )
            exercise = exercises[workout_set.exercise_id]
            if exercise is None:
                continue
            if exercise.workout_id not in workouts:
                workouts[exercise.workout_id] = await self._store.get_workout(exercise.workout_id)
            workout = workouts[exercise.workout_id]
            if workout is None:
                continue
            details.append(
                PRDetails(
                    exercise_name=exercise.name,
                    date=workout.start_time,
                    muscle_group=resolve_muscle_group(exercise, mapping) or "Unknown",
                    weight=workout_set.weight,
                    workout_id=workout.id,
                    set_id=workout_set.id,
                )
            )

        self._cache.put(key, details)
        return details

    # ------------------------------------------------------------------
    # Progress series
    # ------------------------------------------------------------------

    async def weekly_progress(self, weeks: int) -> list[WeeklyProgress]:
        key = CacheKeys.keyed(CacheKeys.WEEKLY_PROGRESS, weeks)
        cached = self._cached(key, CacheKeys.WEEKLY_PROGRESS)
        if cached is not None:
            return cached

        workouts = await self._trailing(weeks * 7)
        exercises, sets = await self._children(workouts)
        progress = calculator.weekly_progress(
            workouts, exercises, sets, weeks, self._clock(), self._tz
        )
        self._cache.put(key, progress)
        return progress

    async def weekly_volume_data(self, weeks: int) -> list[WeeklyVolumeData]:
        return calculator.weekly_volume_data(await self.weekly_progress(weeks))

    async def muscle_group_progress(self, weeks: int) -> list[MuscleGroupProgress]:
        """Top three muscle groups by volume over the trailing ``weeks``."""
        key = CacheKeys.keyed(CacheKeys.MUSCLE_GROUP_PROGRESS, weeks)
        cached = self._cached(key, CacheKeys.MUSCLE_GROUP_PROGRESS)
        if cached is not None:
            return cached

        workouts = await self._trailing(weeks * 7)
        if not workouts:
            return []
        exercises, sets = await self._children(workouts)
        mapping = await self._template_mapping()
        progress = calculator.muscle_group_progress(
            exercises,
            sets,
            lambda exercise: resolve_muscle_group(exercise, mapping),
            limit=TOP_MUSCLE_GROUPS,
        )
        self._cache.put(key, progress)
        return progress

    async def volume_balance(self, weeks: int) -> VolumeBalance:
        return calculator.volume_balance(await self.muscle_group_progress(weeks))

    async def volume_trend(self, weeks: int) -> VolumeTrend:
        """Volume of the trailing ``weeks`` against the ``weeks`` before them."""
        key = CacheKeys.keyed(CacheKeys.VOLUME_TREND, weeks)
        cached = self._cached(key, CacheKeys.VOLUME_TREND)
        if cached is not None:
            return cached

        now = self._clock()
        current_start = calculator.trailing_start(now, weeks * 7, self._tz)
        previous_start = calculator.trailing_start(now, weeks * 14, self._tz)
        current = await self._store.workouts_in_range(current_start, now)
        previous = [
            w
            for w in await self._store.workouts_in_range(previous_start, current_start)
            if w.start_time < current_start
        ]
        current_volume = await self._volume(current)
        previous_volume = await self._volume(previous)

        trend = VolumeTrend(
            current_volume=current_volume,
            previous_volume=previous_volume,
            percentage_change=calculator.volume_change(current_volume, previous_volume),
        )
        self._cache.put(key, trend)
        return trend

    async def _volume(self, workouts: list[Workout]) -> float:
        if not workouts:
            return 0.0
        exercises, sets = await self._children(workouts)
        return calculator.total_volume(workouts, exercises, sets)

    async def duration_trend(self, weeks: int) -> list[DailyDurationData]:
        key = CacheKeys.keyed(CacheKeys.DURATION_TREND, weeks)
        cached = self._cached(key, CacheKeys.DURATION_TREND)
        if cached is not None:
            return cached

        now = self._clock()
        start = calculator.trailing_start(now, weeks * 7, self._tz)
        workouts = await self._store.workouts_in_range(start, now)
        trend = calculator.duration_trend(workouts, start, now, self._tz)
        self._cache.put(key, trend)
        return trend

    # ------------------------------------------------------------------
    # Current week
    # ------------------------------------------------------------------

    async def weekly_goal_progress(self, target: int) -> WeeklyGoalProgress:
        """Workouts started this Monday..Sunday against ``target``."""
        start, end = self._week_bounds()
        completed = len(await self._store.workouts_in_range(start, end))
        return WeeklyGoalProgress(
            completed=completed,
            target=target,
            status=calculator.goal_status(completed, target),
        )

    async def week_calendar(self) -> list[DayInfo]:
        start, end = self._week_bounds()
        workouts = await self._store.workouts_in_range(start, end)
        today = calculator.local_date(self._clock(), self._tz)
        return calculator.week_calendar(workouts, today, self._tz)

    def invalidate_stats_cache(self) -> int:
        """Drop every derived-stat family; returns the number of entries dropped."""
        return sum(self._cache.invalidate_prefix(p) for p in STATS_PREFIXES)
