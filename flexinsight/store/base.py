"""Local store interface.

The sync layer writes through ``apply_batch`` only, one batch per remote
page, so a page is either fully committed or not at all.  The analytics
layer reads through the query methods.  Implementations must cascade a
workout delete to its exercises and their sets.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable

from flexinsight.store.records import (
    Exercise,
    ExerciseTemplate,
    Routine,
    Workout,
    WorkoutSet,
)

logger = logging.getLogger("flexinsight.store")


@dataclass
class StoreBatch:
    """A unit of writes applied atomically.

    Upserting a workout replaces its children: exercises and sets already
    stored for a workout in ``workouts`` are dropped unless the batch carries
    them again.  Deletions run last and cascade.

    Attributes:
        workouts:            Workouts to insert or replace.
        exercises:           Exercises for those (or already stored) workouts.
        sets:                Sets for those (or already stored) exercises.
        templates:           Exercise templates to insert or replace.
        routines:            Routines to insert or replace.
        deleted_workout_ids: Workouts to delete, with their children.
    """

    workouts: list[Workout] = field(default_factory=list)
    exercises: list[Exercise] = field(default_factory=list)
    sets: list[WorkoutSet] = field(default_factory=list)
    templates: list[ExerciseTemplate] = field(default_factory=list)
    routines: list[Routine] = field(default_factory=list)
    deleted_workout_ids: list[str] = field(default_factory=list)

    def add_workout(
        self,
        workout: Workout,
        exercises: Iterable[Exercise] = (),
        sets: Iterable[WorkoutSet] = (),
    ) -> None:
        self.workouts.append(workout)
        self.exercises.extend(exercises)
        self.sets.extend(sets)

    def delete_workout(self, workout_id: str) -> None:
        self.deleted_workout_ids.append(workout_id)

    @property
    def is_empty(self) -> bool:
        return not (
            self.workouts
            or self.exercises
            or self.sets
            or self.templates
            or self.routines
            or self.deleted_workout_ids
        )

    def summary(self) -> str:
        return (
            f"{len(self.workouts)} workouts, {len(self.exercises)} exercises, "
            f"{len(self.sets)} sets, {len(self.templates)} templates, "
            f"{len(self.routines)} routines, {len(self.deleted_workout_ids)} deletions"
        )


class WorkoutStore(ABC):
    """Keyed record store with range queries and change observation."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    async def apply_batch(self, batch: StoreBatch) -> None:
        """Apply every write in ``batch`` atomically.

        Raises:
            ValueError: If a child row references a parent that neither the
                        store nor the batch contains.  Nothing is written.
        """

    async def upsert_workout(
        self,
        workout: Workout,
        exercises: Iterable[Exercise] = (),
        sets: Iterable[WorkoutSet] = (),
    ) -> None:
        batch = StoreBatch()
        batch.add_workout(workout, exercises, sets)
        await self.apply_batch(batch)

    async def delete_workout(self, workout_id: str) -> bool:
        """Delete a workout and its children.

        Returns:
            True if the workout existed.
        """
        existed = await self.get_workout(workout_id) is not None
        if existed:
            await self.apply_batch(StoreBatch(deleted_workout_ids=[workout_id]))
        return existed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_workout(self, workout_id: str) -> Workout | None: ...

    @abstractmethod
    async def all_workouts(self) -> list[Workout]:
        """Every workout, most recent start first."""

    @abstractmethod
    async def workouts_in_range(self, start_ms: int, end_ms: int) -> list[Workout]:
        """Workouts with ``start_ms <= start_time <= end_ms``, most recent first."""

    @abstractmethod
    async def exercises_for_workouts(self, workout_ids: Iterable[str]) -> list[Exercise]: ...

    @abstractmethod
    async def sets_for_exercises(self, exercise_ids: Iterable[str]) -> list[WorkoutSet]: ...

    @abstractmethod
    async def exercise(self, exercise_id: str) -> Exercise | None: ...

    @abstractmethod
    async def recent_prs(self, limit: int) -> list[WorkoutSet]:
        """Personal-record sets, most recently synced first."""

    @abstractmethod
    async def most_recent_synced(self) -> Workout | None:
        """The workout with the greatest ``last_synced``, or None when empty."""

    @abstractmethod
    async def workout_count(self) -> int: ...

    @abstractmethod
    async def exercise_templates(self) -> list[ExerciseTemplate]: ...

    @abstractmethod
    async def routines(self) -> list[Routine]: ...

    @abstractmethod
    def watch_workouts(self) -> AsyncIterator[list[Workout]]:
        """Yield the workout list now and again after every committed change."""
