"""Derived analytics records.

Pure projections of the local workout log.  They are never persisted as a
source of truth, only cached with a TTL, so they are frozen to make sharing a
cached instance between readers safe.  Timestamps are epoch milliseconds;
durations are whole minutes; volumes are kg x reps.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class WorkoutStats:
    """Aggregate statistics over the whole workout history."""

    total_workouts: int
    total_volume: float
    average_volume: float
    total_sets: int
    total_duration: int
    average_duration: int
    current_streak: int
    longest_streak: int
    best_week_volume: float
    best_week_date: int | None

    @classmethod
    def empty(cls) -> WorkoutStats:
        return cls(0, 0.0, 0.0, 0, 0, 0, 0, 0, 0.0, None)


@dataclass(frozen=True)
class SingleWorkoutStats:
    duration_minutes: int
    total_sets: int
    total_volume: float


@dataclass(frozen=True)
class WeeklyProgress:
    """One trailing 7-day window.

    Attributes:
        week_start_date: Local midnight opening the window.
        total_volume:    Volume of workouts started in the window.
        workout_count:   Workouts started in the window.
        average_volume:  total_volume / workout_count (0 when empty).
    """

    week_start_date: int
    total_volume: float
    workout_count: int
    average_volume: float


@dataclass(frozen=True)
class WeeklyVolumeData:
    week_label: str  # "W1" is the oldest week
    volume: float


@dataclass(frozen=True)
class DailyVolumeData:
    date: int  # local midnight
    volume: float
    workout_count: int


@dataclass(frozen=True)
class MuscleGroupProgress:
    muscle_group: str
    volume: float
    sets: int
    intensity: str  # "HI", "MD", "LO"
    volume_share: float = 0.0


@dataclass(frozen=True)
class VolumeTrend:
    current_volume: float
    previous_volume: float
    percentage_change: float


@dataclass(frozen=True)
class DailyDurationData:
    day_of_week: str  # "M", "T", "W", "T", "F", "S", "S"
    average_duration: int


@dataclass(frozen=True)
class PRDetails:
    exercise_name: str
    date: int
    muscle_group: str
    weight: float
    workout_id: str
    set_id: str


@dataclass(frozen=True)
class WeeklyGoalProgress:
    completed: int
    target: int
    status: str  # "On Track" or "Behind"


@dataclass(frozen=True)
class DayInfo:
    name: str  # "Mon".."Sun"
    date: int  # day of month
    timestamp: int  # local midnight
    has_workout: bool
    is_completed: bool
    workout_count: int


@dataclass(frozen=True)
class VolumeBalance:
    """Share of volume per training category; the four shares sum to 1."""

    push: float
    pull: float
    legs: float
    cardio: float
