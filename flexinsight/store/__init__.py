"""Local mirror of the remote workout log.

Modules:
    records  — Workout / Exercise / WorkoutSet and reference-data dataclasses
    base     — WorkoutStore interface and the atomic StoreBatch
    memory   — In-process store (default, and used in tests)
    postgres — asyncpg-backed store with cascading foreign keys
"""

from flexinsight.store.base import StoreBatch, WorkoutStore
from flexinsight.store.records import (
    Exercise,
    ExerciseTemplate,
    Routine,
    RoutineExercise,
    RoutineFolder,
    Workout,
    WorkoutSet,
)

__all__ = [
    "WorkoutStore",
    "StoreBatch",
    "Workout",
    "Exercise",
    "WorkoutSet",
    "ExerciseTemplate",
    "Routine",
    "RoutineExercise",
    "RoutineFolder",
]
