"""In-process workout store.

Used when no database DSN is configured, and by the test suite.  A batch is
validated in full before anything is mutated, and the mutation itself runs
under one lock with no await points, so readers see either all of a batch
or none of it.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import AsyncIterator, Iterable

from flexinsight.store.base import StoreBatch, WorkoutStore
from flexinsight.store.records import (
    Exercise,
    ExerciseTemplate,
    Routine,
    Workout,
    WorkoutSet,
)
from flexinsight.sync.state import StateFlow

logger = logging.getLogger("flexinsight.store.memory")


class InMemoryWorkoutStore(WorkoutStore):
    """Dict-backed store with cascade deletes and change notifications.

    Records are copied on the way in and on the way out so callers can never
    mutate stored rows by reference.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._workouts: dict[str, Workout] = {}
        self._exercises: dict[str, Exercise] = {}
        self._sets: dict[str, WorkoutSet] = {}
        self._templates: dict[str, ExerciseTemplate] = {}
        self._routines: dict[str, Routine] = {}
        self._version = StateFlow(0)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def apply_batch(self, batch: StoreBatch) -> None:
        if batch.is_empty:
            return
        with self._lock:
            self._validate(batch)
            for workout in batch.workouts:
                self._drop_children(workout.id)
                self._workouts[workout.id] = copy.copy(workout)
            for exercise in batch.exercises:
                self._exercises[exercise.id] = copy.copy(exercise)
            for workout_set in batch.sets:
                self._sets[workout_set.id] = copy.copy(workout_set)
            for template in batch.templates:
                self._templates[template.id] = copy.copy(template)
            for routine in batch.routines:
                self._routines[routine.id] = copy.deepcopy(routine)
            for workout_id in batch.deleted_workout_ids:
                if self._workouts.pop(workout_id, None) is not None:
                    self._drop_children(workout_id)
            version = self._version.value + 1
        logger.debug("Applied batch: %s", batch.summary())
        self._version.set(version)

    def _validate(self, batch: StoreBatch) -> None:
        deleted = set(batch.deleted_workout_ids)
        replaced = {w.id for w in batch.workouts}
        workout_ids = (set(self._workouts) | replaced) - deleted

        batch_exercises = {e.id for e in batch.exercises}
        for exercise in batch.exercises:
            if exercise.workout_id not in workout_ids:
                raise ValueError(
                    f"Exercise {exercise.id} references unknown workout {exercise.workout_id}"
                )
        # Stored exercises of replaced workouts are about to be dropped.
        surviving = {
            e.id for e in self._exercises.values() if e.workout_id not in replaced | deleted
        }
        for workout_set in batch.sets:
            if workout_set.exercise_id not in batch_exercises | surviving:
                raise ValueError(
                    f"Set {workout_set.id} references unknown exercise {workout_set.exercise_id}"
                )

    def _drop_children(self, workout_id: str) -> None:
        exercise_ids = {e.id for e in self._exercises.values() if e.workout_id == workout_id}
        for exercise_id in exercise_ids:
            del self._exercises[exercise_id]
        for set_id in [s.id for s in self._sets.values() if s.exercise_id in exercise_ids]:
            del self._sets[set_id]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_workout(self, workout_id: str) -> Workout | None:
        with self._lock:
            workout = self._workouts.get(workout_id)
            return copy.copy(workout) if workout else None

    async def all_workouts(self) -> list[Workout]:
        with self._lock:
            return self._sorted_workouts(self._workouts.values())

    async def workouts_in_range(self, start_ms: int, end_ms: int) -> list[Workout]:
        with self._lock:
            return self._sorted_workouts(
                w for w in self._workouts.values() if start_ms <= w.start_time <= end_ms
            )

    async def exercises_for_workouts(self, workout_ids: Iterable[str]) -> list[Exercise]:
        wanted = set(workout_ids)
        with self._lock:
            return [copy.copy(e) for e in self._exercises.values() if e.workout_id in wanted]

    async def sets_for_exercises(self, exercise_ids: Iterable[str]) -> list[WorkoutSet]:
        wanted = set(exercise_ids)
        with self._lock:
            return [copy.copy(s) for s in self._sets.values() if s.exercise_id in wanted]

    async def exercise(self, exercise_id: str) -> Exercise | None:
        with self._lock:
            exercise = self._exercises.get(exercise_id)
            return copy.copy(exercise) if exercise else None

    async def recent_prs(self, limit: int) -> list[WorkoutSet]:
        with self._lock:
            prs = [copy.copy(s) for s in self._sets.values() if s.is_personal_record]
        prs.sort(key=lambda s: (s.last_synced, s.id), reverse=True)
        return prs[:limit]

    async def most_recent_synced(self) -> Workout | None:
        with self._lock:
            if not self._workouts:
                return None
            return copy.copy(max(self._workouts.values(), key=lambda w: w.last_synced))

    async def workout_count(self) -> int:
        with self._lock:
            return len(self._workouts)

    async def exercise_templates(self) -> list[ExerciseTemplate]:
        with self._lock:
            return [copy.copy(t) for t in self._templates.values()]

    async def routines(self) -> list[Routine]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._routines.values()]

    async def watch_workouts(self) -> AsyncIterator[list[Workout]]:
        async for _ in self._version.subscribe():
            yield await self.all_workouts()

    @staticmethod
    def _sorted_workouts(workouts: Iterable[Workout]) -> list[Workout]:
        return sorted((copy.copy(w) for w in workouts), key=lambda w: w.start_time, reverse=True)
