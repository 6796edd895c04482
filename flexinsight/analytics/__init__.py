"""Workout analytics.

Modules:
    calculator    — Pure volume / duration / streak / trend functions
    muscle_groups — Template-first muscle group resolution with name heuristics
    models        — Frozen derived records (never persisted, only cached)
    stats         — StatsService: store reads + calculator + TTL cache
"""

from flexinsight.analytics.models import (
    DailyDurationData,
    DailyVolumeData,
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
from flexinsight.analytics.stats import StatsService

__all__ = [
    "StatsService",
    "WorkoutStats",
    "SingleWorkoutStats",
    "WeeklyProgress",
    "WeeklyVolumeData",
    "DailyVolumeData",
    "MuscleGroupProgress",
    "VolumeTrend",
    "DailyDurationData",
    "PRDetails",
    "WeeklyGoalProgress",
    "DayInfo",
    "VolumeBalance",
]
