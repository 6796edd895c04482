"""Pydantic schemas for remote workout API responses.

Each response model knows how to normalise itself into the local records in
``flexinsight.store.records``.  Field aliases cover both the documented wire
names (``weight_kg``, ``primary_muscle_group``) and the short forms some
endpoints return (``weight``, ``muscle_group``).
"""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, Field

from flexinsight.models.base import FlexBase, to_epoch_ms
from flexinsight.store.records import (
    Exercise,
    ExerciseTemplate,
    Routine,
    RoutineExercise,
    RoutineFolder,
    Workout,
    WorkoutSet,
    now_ms,
)

EVENT_CREATED = "created"
EVENT_UPDATED = "updated"
EVENT_DELETED = "deleted"


def exercise_id_for(workout_id: str, index: int) -> str:
    return f"{workout_id}_exercise_{index}"


def set_id_for(exercise_id: str, index: int) -> str:
    return f"{exercise_id}_set_{index}"


# ---------------------------------------------------------------------------
# Workouts
# ---------------------------------------------------------------------------


class SetResponse(FlexBase):
    index: int | None = None
    set_type: str | None = Field(default=None, validation_alias=AliasChoices("type", "set_type"))
    weight: float | None = Field(default=None, validation_alias=AliasChoices("weight_kg", "weight"))
    reps: int | None = None
    rpe: float | None = None
    distance: float | None = Field(
        default=None, validation_alias=AliasChoices("distance_meters", "distance")
    )
    duration: int | None = Field(
        default=None, validation_alias=AliasChoices("duration_seconds", "duration")
    )

    def to_set(self, exercise_id: str, position: int, synced_at: int) -> WorkoutSet:
        number = self.index if self.index is not None else position
        return WorkoutSet(
            id=set_id_for(exercise_id, number),
            exercise_id=exercise_id,
            number=number,
            weight=self.weight,
            reps=self.reps,
            rpe=self.rpe,
            distance=self.distance,
            duration=self.duration,
            set_type=self.set_type,
            last_synced=synced_at,
        )


class ExerciseResponse(FlexBase):
    index: int | None = None
    title: str
    exercise_template_id: str | None = None
    notes: str | None = None
    rest_seconds: int | None = None
    sets: list[SetResponse] | None = None

    def to_exercise(self, workout_id: str, position: int, synced_at: int) -> Exercise:
        return Exercise(
            id=exercise_id_for(workout_id, self.index if self.index is not None else position),
            workout_id=workout_id,
            name=self.title,
            exercise_template_id=self.exercise_template_id,
            notes=self.notes,
            rest_duration=self.rest_seconds,
            last_synced=synced_at,
        )


class WorkoutResponse(FlexBase):
    id: str
    title: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    description: str | None = None
    routine_id: str | None = None
    exercises: list[ExerciseResponse] | None = None

    def to_workout(self, synced_at: int | None = None) -> Workout:
        return Workout(
            id=self.id,
            name=self.title,
            start_time=to_epoch_ms(self.start_time),
            end_time=to_epoch_ms(self.end_time) if self.end_time is not None else None,
            notes=self.description,
            routine_id=self.routine_id,
            last_synced=synced_at if synced_at is not None else now_ms(),
        )

    def to_records(
        self, synced_at: int | None = None
    ) -> tuple[Workout, list[Exercise], list[WorkoutSet]]:
        """Flatten this workout into its workout, exercise and set rows."""
        stamp = synced_at if synced_at is not None else now_ms()
        workout = self.to_workout(stamp)
        exercises: list[Exercise] = []
        sets: list[WorkoutSet] = []
        for position, exercise_response in enumerate(self.exercises or []):
            exercise = exercise_response.to_exercise(self.id, position, stamp)
            exercises.append(exercise)
            for set_position, set_response in enumerate(exercise_response.sets or []):
                sets.append(set_response.to_set(exercise.id, set_position, stamp))
        return workout, exercises, sets


class PaginatedWorkoutResponse(FlexBase):
    page: int = 1
    page_count: int = 1
    workouts: list[WorkoutResponse] | None = None


class WorkoutCountResponse(FlexBase):
    workout_count: int


class WorkoutEvent(FlexBase):
    """A created / updated / deleted change to one workout."""

    type: str
    workout_id: str | None = None
    id: str | None = None
    workout: WorkoutResponse | None = None

    @property
    def target_id(self) -> str | None:
        if self.workout_id:
            return self.workout_id
        if self.workout is not None:
            return self.workout.id
        return self.id


class PaginatedWorkoutEventsResponse(FlexBase):
    page: int = 1
    page_count: int = 1
    events: list[WorkoutEvent] | None = None


# ---------------------------------------------------------------------------
# Exercise templates and history
# ---------------------------------------------------------------------------


class ExerciseTemplateResponse(FlexBase):
    id: str
    title: str
    muscle_group: str | None = Field(
        default=None, validation_alias=AliasChoices("muscle_group", "primary_muscle_group")
    )

    def to_exercise_template(self) -> ExerciseTemplate:
        return ExerciseTemplate(id=self.id, name=self.title, muscle_group=self.muscle_group)


class PaginatedExerciseTemplatesResponse(FlexBase):
    page: int = 1
    page_count: int = 1
    exercise_templates: list[ExerciseTemplateResponse] | None = None


class ExerciseHistoryEntry(FlexBase):
    id: str
    workout_id: str
    exercise_template_id: str
    name: str
    date: datetime
    sets: list[SetResponse] | None = None
    volume: float | None = None
    one_rep_max: float | None = None


class ExerciseHistoryResponse(FlexBase):
    exercise_id: str
    history: list[ExerciseHistoryEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Routines
# ---------------------------------------------------------------------------


class RoutineExerciseResponse(FlexBase):
    template_id: str = Field(validation_alias=AliasChoices("template_id", "exercise_template_id"))

    def to_routine_exercise(self, name: str | None = None) -> RoutineExercise:
        return RoutineExercise(template_id=self.template_id, name=name)


class RoutineResponse(FlexBase):
    id: str
    name: str = Field(validation_alias=AliasChoices("name", "title"))
    exercise_count: int | None = None
    exercises: list[RoutineExerciseResponse] | None = None

    def to_routine(self, template_names: dict[str, str] | None = None) -> Routine:
        """Build the local routine, naming exercises from ``template_names``."""
        names = template_names or {}
        exercises = [e.to_routine_exercise(names.get(e.template_id)) for e in self.exercises or []]
        count = self.exercise_count if self.exercise_count is not None else len(exercises)
        return Routine(id=self.id, name=self.name, exercise_count=count, exercises=exercises)


class PaginatedRoutineResponse(FlexBase):
    page: int = 1
    page_count: int = 1
    routines: list[RoutineResponse] | None = None


class RoutineFolderResponse(FlexBase):
    id: int
    title: str
    index: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_routine_folder(self) -> RoutineFolder:
        return RoutineFolder(id=self.id, title=self.title, index=self.index)


class PaginatedRoutineFolderResponse(FlexBase):
    page: int = 1
    page_count: int = 1
    folders: list[RoutineFolderResponse] = Field(
        default_factory=list, validation_alias=AliasChoices("folders", "routine_folders")
    )
