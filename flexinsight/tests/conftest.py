"""Shared fixtures and canned API payloads for the sync core tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from flexinsight.api.client import WorkoutApiClient
from flexinsight.cache import TTLCache
from flexinsight.policy_loader import RetryPolicy, SyncPolicy, load_sync_policy
from flexinsight.store.memory import InMemoryWorkoutStore
from flexinsight.store.records import Exercise, Workout, WorkoutSet

UTC = timezone.utc

# Canonical reference time: Monday 2026-02-23 12:00 UTC
NOW = datetime(2026, 2, 23, 12, 0, tzinfo=UTC)
TEST_API_KEY = "test-api-key"
TEST_BASE_URL = "https://api.test/"


def ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class FakeClock:
    """Manually advanced clock readable as epoch ms or as seconds."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now_ms = ms(start)

    def millis(self) -> int:
        return self.now_ms

    def seconds(self) -> float:
        return self.now_ms / 1000.0

    def advance(self, **delta: float) -> None:
        self.now_ms += int(timedelta(**delta).total_seconds() * 1000)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def policy() -> SyncPolicy:
    """The bundled sync policy."""
    return load_sync_policy()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(clock=clock.seconds)


@pytest.fixture
def store() -> InMemoryWorkoutStore:
    return InMemoryWorkoutStore()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Stand-in for asyncio.sleep that records requested delays."""
    return AsyncMock(return_value=None)


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------


@pytest.fixture
def make_workout() -> Callable[..., tuple[Workout, list[Exercise], list[WorkoutSet]]]:
    """Build a workout with one exercise per ``(name, [(weight, reps), ...])`` entry."""

    def _make(
        workout_id: str,
        start: datetime,
        minutes: int | None = 60,
        exercises: list[tuple[str, list[tuple[float | None, int | None]]]] | None = None,
        template_ids: list[str | None] | None = None,
        synced_at: int | None = None,
    ) -> tuple[Workout, list[Exercise], list[WorkoutSet]]:
        start_ms = ms(start)
        workout = Workout(
            id=workout_id,
            start_time=start_ms,
            name=f"Workout {workout_id}",
            end_time=start_ms + minutes * 60_000 if minutes is not None else None,
            last_synced=synced_at if synced_at is not None else start_ms,
        )
        exercise_rows: list[Exercise] = []
        set_rows: list[WorkoutSet] = []
        for position, (name, sets) in enumerate(exercises or []):
            template_id = template_ids[position] if template_ids else None
            exercise = Exercise(
                id=f"{workout_id}_exercise_{position}",
                workout_id=workout_id,
                name=name,
                exercise_template_id=template_id,
            )
            exercise_rows.append(exercise)
            for number, (weight, reps) in enumerate(sets):
                set_rows.append(
                    WorkoutSet(
                        id=f"{exercise.id}_set_{number}",
                        exercise_id=exercise.id,
                        number=number,
                        weight=weight,
                        reps=reps,
                    )
                )
        return workout, exercise_rows, set_rows

    return _make


# ---------------------------------------------------------------------------
# Canned API payloads
# ---------------------------------------------------------------------------


def workout_payload(
    workout_id: str,
    start: datetime = NOW - timedelta(days=1),
    exercises: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "id": workout_id,
        "title": f"Workout {workout_id}",
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=1)).isoformat(),
        "description": None,
        "exercises": exercises
        if exercises is not None
        else [
            {
                "index": 0,
                "title": "Bench Press (Barbell)",
                "exercise_template_id": "T-BENCH",
                "sets": [
                    {"index": 0, "type": "normal", "weight_kg": 100, "reps": 5},
                    {"index": 1, "type": "normal", "weight_kg": 100, "reps": 5},
                ],
            }
        ],
    }


@pytest.fixture
def payload() -> Callable[..., dict[str, Any]]:
    return workout_payload


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def api_client(no_sleep: AsyncMock) -> Callable[[Callable[[httpx.Request], httpx.Response]], WorkoutApiClient]:
    """Factory for a WorkoutApiClient wired to an httpx.MockTransport handler."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> WorkoutApiClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return WorkoutApiClient(
            api_key=TEST_API_KEY,
            base_url=TEST_BASE_URL,
            retry_policy=RetryPolicy(max_retries=3, base_delay_ms=1000, max_delay_ms=30_000),
            http_client=http_client,
            sleep=no_sleep,
        )

    return _make
