"""Tests for StatsService over the in-memory store."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from flexinsight.analytics import StatsService, WorkoutStats
from flexinsight.cache import CacheKeys, TTLCache
from flexinsight.core.errors import NoConnection
from flexinsight.store.memory import InMemoryWorkoutStore
from flexinsight.tests.conftest import NOW, UTC, FakeClock, ms


@pytest.fixture
def stats(store: InMemoryWorkoutStore, cache: TTLCache, clock: FakeClock, policy) -> StatsService:
    return StatsService(store, cache, clock=clock.millis, tz=UTC, policy=policy)


@pytest_asyncio.fixture
async def history(store: InMemoryWorkoutStore, make_workout) -> None:
    """Three workouts: today (500), yesterday (1000) and ten days ago (500)."""
    await store.upsert_workout(
        *make_workout("today", NOW - timedelta(hours=2), exercises=[("Bench Press", [(100, 5)])])
    )
    await store.upsert_workout(
        *make_workout("yesterday", NOW - timedelta(days=1), exercises=[("Squat", [(100, 10)])])
    )
    await store.upsert_workout(
        *make_workout("older", NOW - timedelta(days=10), exercises=[("Bent Over Row", [(50, 10)])])
    )


class TestOverview:
    @pytest.mark.asyncio
    async def test_empty_store(self, stats: StatsService) -> None:
        assert await stats.calculate_stats() == WorkoutStats.empty()
        assert await stats.member_since() is None

    @pytest.mark.asyncio
    async def test_totals_streaks_and_best_week(self, stats: StatsService, history) -> None:
        result = await stats.calculate_stats()

        assert result.total_workouts == 3
        assert result.total_volume == 2000.0
        assert result.average_volume == pytest.approx(2000.0 / 3)
        assert result.total_sets == 3
        assert result.total_duration == 180
        assert result.average_duration == 60
        assert result.current_streak == 2
        assert result.longest_streak == 2
        assert result.best_week_volume == 1500.0
        assert result.best_week_date is not None

    @pytest.mark.asyncio
    async def test_stats_are_cached_until_ttl(
        self, stats: StatsService, history, store: InMemoryWorkoutStore, make_workout, clock: FakeClock
    ) -> None:
        first = await stats.calculate_stats()
        await store.upsert_workout(*make_workout("late", NOW - timedelta(hours=1)))

        assert await stats.calculate_stats() is first
        clock.advance(minutes=6)
        assert (await stats.calculate_stats()).total_workouts == 4

    @pytest.mark.asyncio
    async def test_invalidate_drops_cached_stats(
        self, stats: StatsService, history, store: InMemoryWorkoutStore, make_workout
    ) -> None:
        await stats.calculate_stats()
        await store.upsert_workout(*make_workout("late", NOW - timedelta(hours=1)))

        assert stats.invalidate_stats_cache() >= 1
        assert (await stats.calculate_stats()).total_workouts == 4

    @pytest.mark.asyncio
    async def test_single_workout(self, stats: StatsService, history) -> None:
        single = await stats.workout_stats("yesterday")
        assert single.duration_minutes == 60
        assert single.total_sets == 1
        assert single.total_volume == 1000.0
        assert await stats.workout_stats("missing") is None

    @pytest.mark.asyncio
    async def test_member_since_is_first_workout(self, stats: StatsService, history) -> None:
        assert await stats.member_since() == ms(NOW - timedelta(days=10))


class TestPersonalRecords:
    @pytest.mark.asyncio
    async def test_details_with_unknown_group(
        self, store: InMemoryWorkoutStore, cache: TTLCache, clock: FakeClock, policy, make_workout
    ) -> None:
        workout, exercises, sets = make_workout(
            "w1",
            NOW - timedelta(days=1),
            exercises=[("Bench Press", [(100, 5), (None, 20)]), ("Juggling", [(5, 10)])],
            template_ids=["T-BENCH", None],
        )
        for workout_set in sets:
            workout_set.is_personal_record = True
        await store.upsert_workout(workout, exercises, sets)
        stats = StatsService(
            store, cache, AsyncMock(return_value={"T-BENCH": "chest"}), clock.millis, UTC, policy
        )

        details = await stats.prs_with_details(limit=10)

        assert {(d.exercise_name, d.muscle_group, d.weight) for d in details} == {
            ("Bench Press", "chest", 100),
            ("Juggling", "Unknown", 5),
        }
        assert all(d.workout_id == "w1" and d.date == workout.start_time for d in details)

    @pytest.mark.asyncio
    async def test_mapping_failure_falls_back_to_names(
        self, store: InMemoryWorkoutStore, cache: TTLCache, clock: FakeClock, policy, make_workout
    ) -> None:
        workout, exercises, sets = make_workout(
            "w1", NOW, exercises=[("Squat", [(140, 3)])], template_ids=["T-SQUAT"]
        )
        sets[0].is_personal_record = True
        await store.upsert_workout(workout, exercises, sets)
        stats = StatsService(
            store, cache, AsyncMock(side_effect=NoConnection()), clock.millis, UTC, policy
        )

        details = await stats.prs_with_details()
        assert details[0].muscle_group == "Legs"

    @pytest.mark.asyncio
    async def test_no_prs(self, stats: StatsService, history) -> None:
        assert await stats.prs_with_details() == []


class TestProgress:
    @pytest.mark.asyncio
    async def test_weekly_progress(self, stats: StatsService, history) -> None:
        weeks = await stats.weekly_progress(2)
        assert [w.total_volume for w in weeks] == [500.0, 1500.0]
        assert [w.workout_count for w in weeks] == [1, 2]
        labels = await stats.weekly_volume_data(2)
        assert [v.week_label for v in labels] == ["W1", "W2"]

    @pytest.mark.asyncio
    async def test_top_three_muscle_groups(
        self, stats: StatsService, store: InMemoryWorkoutStore, make_workout
    ) -> None:
        await store.upsert_workout(
            *make_workout(
                "w1",
                NOW - timedelta(days=1),
                exercises=[
                    ("Bench Press", [(100, 10)]),
                    ("Squat", [(100, 8)]),
                    ("Bent Over Row", [(60, 10)]),
                    ("Bicep Curl", [(20, 10)]),
                ],
            )
        )
        progress = await stats.muscle_group_progress(weeks=4)
        assert [p.muscle_group for p in progress] == ["Chest", "Legs", "Back"]
        assert progress[0].volume == 1000.0

        balance = await stats.volume_balance(weeks=4)
        assert balance.push > 0 and balance.pull > 0 and balance.legs > 0

    @pytest.mark.asyncio
    async def test_windows_start_at_midnight_of_oldest_day(
        self, stats: StatsService, store: InMemoryWorkoutStore, make_workout
    ) -> None:
        # Seven days ago at 13:00 is inside a fixed 7x24h span but before the
        # oldest day of a one-week window.
        edge = NOW - timedelta(days=7) + timedelta(hours=1)
        inside = NOW - timedelta(days=6, hours=11)
        await store.upsert_workout(*make_workout("edge", edge, exercises=[("Squat", [(100, 1)])]))
        await store.upsert_workout(*make_workout("inside", inside, exercises=[("Bench Press", [(100, 1)])]))

        assert [p.muscle_group for p in await stats.muscle_group_progress(weeks=1)] == ["Chest"]
        assert (await stats.weekly_progress(1))[0].workout_count == 1
        assert (await stats.volume_trend(weeks=1)).previous_volume == 100.0

    @pytest.mark.asyncio
    async def test_muscle_groups_empty_window(self, stats: StatsService, cache: TTLCache) -> None:
        assert await stats.muscle_group_progress(weeks=4) == []
        assert CacheKeys.keyed(CacheKeys.MUSCLE_GROUP_PROGRESS, 4) not in cache

    @pytest.mark.asyncio
    async def test_volume_trend(self, stats: StatsService, history) -> None:
        trend = await stats.volume_trend(weeks=1)
        assert trend.current_volume == 1500.0
        assert trend.previous_volume == 500.0
        assert trend.percentage_change == pytest.approx(200.0)

    @pytest.mark.asyncio
    async def test_volume_trend_from_nothing(self, stats: StatsService, store, make_workout) -> None:
        await store.upsert_workout(
            *make_workout("w1", NOW - timedelta(days=1), exercises=[("Squat", [(100, 1)])])
        )
        trend = await stats.volume_trend(weeks=1)
        assert trend.previous_volume == 0.0
        assert trend.percentage_change == 100.0

    @pytest.mark.asyncio
    async def test_duration_trend_has_seven_days(self, stats: StatsService, history) -> None:
        trend = await stats.duration_trend(weeks=2)
        assert [d.day_of_week for d in trend] == ["M", "T", "W", "T", "F", "S", "S"]
        assert trend[0].average_duration == 60


class TestCurrentWeek:
    @pytest.mark.asyncio
    async def test_goal_counts_monday_onwards(self, stats: StatsService, history) -> None:
        # Yesterday was Sunday and belongs to the previous week.
        goal = await stats.weekly_goal_progress(target=3)
        assert goal.completed == 1
        assert goal.status == "Behind"
        assert (await stats.weekly_goal_progress(target=1)).status == "On Track"

    @pytest.mark.asyncio
    async def test_calendar(self, stats: StatsService, history) -> None:
        calendar = await stats.week_calendar()
        assert [d.name for d in calendar] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
        assert calendar[0].date == 23
        assert calendar[0].has_workout and calendar[0].is_completed
        assert not any(d.has_workout for d in calendar[1:])
