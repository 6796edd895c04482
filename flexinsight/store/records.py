"""Canonical local records mirrored from the remote workout log.

These dataclasses are what the local store persists and what the analytics
engine consumes.  All timestamps are UTC epoch milliseconds.

Ownership:
    Workout  ─┬─ Exercise ─┬─ WorkoutSet
              │            └─ ...
              └─ ...
Deleting a workout cascades to its exercises and their sets.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Workout log
# ---------------------------------------------------------------------------


@dataclass
class Workout:
    """One logged training session.

    Attributes:
        id:          Remote workout ID (primary key).
        start_time:  Session start, epoch ms.
        name:        Workout title.
        end_time:    Session end, epoch ms; None while in progress.
        notes:       Free-text description.
        routine_id:  Routine the session was started from, if any.
        last_synced: When this row was last written from the remote API.
        needs_sync:  Local edit pending upload (never set by the sync layer).
    """

    id: str
    start_time: int
    name: str | None = None
    end_time: int | None = None
    notes: str | None = None
    routine_id: str | None = None
    last_synced: int = field(default_factory=now_ms)
    needs_sync: bool = False

    @property
    def duration_ms(self) -> int:
        if self.end_time is None:
            return 0
        return max(self.end_time - self.start_time, 0)


@dataclass
class Exercise:
    """An exercise performed within exactly one workout."""

    id: str
    workout_id: str
    name: str
    exercise_template_id: str | None = None
    notes: str | None = None
    rest_duration: int | None = None  # seconds
    last_synced: int = field(default_factory=now_ms)
    needs_sync: bool = False


@dataclass
class WorkoutSet:
    """A single set belonging to exactly one exercise.

    Volume is ``weight * reps`` when both are present, otherwise 0.
    """

    id: str
    exercise_id: str
    number: int
    weight: float | None = None  # kg
    reps: int | None = None
    rpe: float | None = None
    distance: float | None = None  # metres
    duration: int | None = None  # seconds
    set_type: str | None = None
    is_personal_record: bool = False
    last_synced: int = field(default_factory=now_ms)
    needs_sync: bool = False

    @property
    def volume(self) -> float:
        if self.weight is None or self.reps is None:
            return 0.0
        return float(self.weight) * self.reps


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@dataclass
class ExerciseTemplate:
    id: str
    name: str
    muscle_group: str | None = None


@dataclass
class RoutineExercise:
    template_id: str
    name: str | None = None


@dataclass
class Routine:
    id: str
    name: str
    exercise_count: int = 0
    exercises: list[RoutineExercise] = field(default_factory=list)


@dataclass
class RoutineFolder:
    id: int
    title: str
    index: int = 0
