"""PostgreSQL workout store backed by an asyncpg pool.

Every batch runs in one transaction on one pooled connection.  Writes are
idempotent ``INSERT ... ON CONFLICT DO UPDATE`` upserts keyed on the remote
IDs, and the foreign keys carry ``ON DELETE CASCADE`` so deleting a workout
removes its exercises and their sets.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Iterable

import asyncpg

from flexinsight.config import Settings, get_settings
from flexinsight.store.base import StoreBatch, WorkoutStore
from flexinsight.store.records import (
    Exercise,
    ExerciseTemplate,
    Routine,
    RoutineExercise,
    Workout,
    WorkoutSet,
)
from flexinsight.sync.state import StateFlow

logger = logging.getLogger("flexinsight.store.postgres")

SCHEMA = """
CREATE TABLE IF NOT EXISTS workouts (
    id          TEXT PRIMARY KEY,
    name        TEXT,
    start_time  BIGINT NOT NULL,
    end_time    BIGINT,
    notes       TEXT,
    routine_id  TEXT,
    last_synced BIGINT NOT NULL,
    needs_sync  BOOLEAN NOT NULL DEFAULT FALSE,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS workouts_start_time_idx ON workouts (start_time);
CREATE INDEX IF NOT EXISTS workouts_last_synced_idx ON workouts (last_synced);

CREATE TABLE IF NOT EXISTS exercises (
    id                   TEXT PRIMARY KEY,
    workout_id           TEXT NOT NULL REFERENCES workouts (id) ON DELETE CASCADE,
    exercise_template_id TEXT,
    name                 TEXT NOT NULL,
    notes                TEXT,
    rest_duration        INTEGER,
    last_synced          BIGINT NOT NULL,
    needs_sync           BOOLEAN NOT NULL DEFAULT FALSE,
    updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS exercises_workout_id_idx ON exercises (workout_id);

CREATE TABLE IF NOT EXISTS sets (
    id                 TEXT PRIMARY KEY,
    exercise_id        TEXT NOT NULL REFERENCES exercises (id) ON DELETE CASCADE,
    number             INTEGER NOT NULL,
    weight             DOUBLE PRECISION,
    reps               INTEGER,
    rpe                DOUBLE PRECISION,
    distance           DOUBLE PRECISION,
    duration           INTEGER,
    set_type           TEXT,
    is_personal_record BOOLEAN NOT NULL DEFAULT FALSE,
    last_synced        BIGINT NOT NULL,
    needs_sync         BOOLEAN NOT NULL DEFAULT FALSE,
    updated_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS sets_exercise_id_idx ON sets (exercise_id);

CREATE TABLE IF NOT EXISTS exercise_templates (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    muscle_group TEXT,
    updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS routines (
    id             TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    exercise_count INTEGER NOT NULL DEFAULT 0,
    exercises      JSONB NOT NULL DEFAULT '[]',
    updated_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_WORKOUT_COLUMNS = [
    "id", "name", "start_time", "end_time", "notes", "routine_id", "last_synced", "needs_sync",
]
_EXERCISE_COLUMNS = [
    "id", "workout_id", "exercise_template_id", "name", "notes", "rest_duration",
    "last_synced", "needs_sync",
]
_SET_COLUMNS = [
    "id", "exercise_id", "number", "weight", "reps", "rpe", "distance", "duration",
    "set_type", "is_personal_record", "last_synced", "needs_sync",
]
_TEMPLATE_COLUMNS = ["id", "name", "muscle_group"]
_ROUTINE_COLUMNS = ["id", "name", "exercise_count", "exercises"]


def build_upsert_query(
    table: str,
    columns: list[str],
    conflict_columns: list[str],
    update_columns: list[str] | None = None,
) -> str:
    """Build a PostgreSQL INSERT ... ON CONFLICT DO UPDATE (upsert) query.

    Generates idempotent writes that are safe to repeat with the same
    data.  On conflict, updates the non-key columns and bumps ``updated_at``.

    Args:
        table:            Target table name.
        columns:          All columns to insert.
        conflict_columns: Columns that define the UNIQUE constraint.
        update_columns:   Columns to update on conflict (defaults to non-key columns).

    Returns:
        Parameterized SQL string.
    """
    if update_columns is None:
        update_columns = [c for c in columns if c not in conflict_columns]

    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    col_list = ", ".join(columns)
    conflict_target = ", ".join(conflict_columns)

    if update_columns:
        update_set = ", ".join(f"{col} = EXCLUDED.{col}" for col in update_columns)
        update_set += ", updated_at = NOW()"
        do_clause = f"DO UPDATE SET {update_set}"
    else:
        do_clause = "DO NOTHING"

    return (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict_target}) {do_clause}"
    )


def _row(record: Any, columns: list[str]) -> tuple:
    return tuple(getattr(record, c) for c in columns)


def _routine_row(routine: Routine) -> tuple:
    exercises = json.dumps([{"template_id": e.template_id, "name": e.name} for e in routine.exercises])
    return (routine.id, routine.name, routine.exercise_count, exercises)


class PostgresWorkoutStore(WorkoutStore):
    """asyncpg-backed store.

    Usage::

        store = await PostgresWorkoutStore.connect()
        await store.init_schema()
        ...
        await store.close()

    ``watch_workouts`` observes commits made through this instance only.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool
        self._version = StateFlow(0)

    @classmethod
    async def connect(cls, settings: Settings | None = None) -> PostgresWorkoutStore:
        """Create the connection pool from ``Settings.database_url``."""
        s = settings or get_settings()
        if not s.database_url:
            raise ValueError("FLEXINSIGHT_DATABASE_URL is not set")
        pool = await asyncpg.create_pool(s.database_url, min_size=1, max_size=10, command_timeout=30)
        logger.info("Database pool initialized (min=1, max=10)")
        return cls(pool)

    async def close(self) -> None:
        await self._pool.close()
        logger.info("Database pool closed")

    async def init_schema(self) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(SCHEMA)

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[asyncpg.Connection, None]:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def apply_batch(self, batch: StoreBatch) -> None:
        if batch.is_empty:
            return
        try:
            async with self._transaction() as conn:
                if batch.workouts:
                    await conn.executemany(
                        build_upsert_query("workouts", _WORKOUT_COLUMNS, ["id"]),
                        [_row(w, _WORKOUT_COLUMNS) for w in batch.workouts],
                    )
                    # Replacing a workout replaces its children; sets cascade.
                    await conn.execute(
                        "DELETE FROM exercises WHERE workout_id = ANY($1::text[])",
                        [w.id for w in batch.workouts],
                    )
                if batch.exercises:
                    await conn.executemany(
                        build_upsert_query("exercises", _EXERCISE_COLUMNS, ["id"]),
                        [_row(e, _EXERCISE_COLUMNS) for e in batch.exercises],
                    )
                if batch.sets:
                    await conn.executemany(
                        build_upsert_query("sets", _SET_COLUMNS, ["id"]),
                        [_row(s, _SET_COLUMNS) for s in batch.sets],
                    )
                if batch.templates:
                    await conn.executemany(
                        build_upsert_query("exercise_templates", _TEMPLATE_COLUMNS, ["id"]),
                        [_row(t, _TEMPLATE_COLUMNS) for t in batch.templates],
                    )
                if batch.routines:
                    await conn.executemany(
                        build_upsert_query("routines", _ROUTINE_COLUMNS, ["id"]),
                        [_routine_row(r) for r in batch.routines],
                    )
                if batch.deleted_workout_ids:
                    await conn.execute(
                        "DELETE FROM workouts WHERE id = ANY($1::text[])",
                        batch.deleted_workout_ids,
                    )
        except asyncpg.ForeignKeyViolationError as exc:
            raise ValueError(f"Batch references a missing parent row: {exc}") from exc
        logger.debug("Committed batch: %s", batch.summary())
        self._version.set(self._version.value + 1)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self._pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self._pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def get_workout(self, workout_id: str) -> Workout | None:
        row = await self._fetchrow(
            f"SELECT {', '.join(_WORKOUT_COLUMNS)} FROM workouts WHERE id = $1", workout_id
        )
        return Workout(**dict(row)) if row else None

    async def all_workouts(self) -> list[Workout]:
        rows = await self._fetch(
            f"SELECT {', '.join(_WORKOUT_COLUMNS)} FROM workouts ORDER BY start_time DESC"
        )
        return [Workout(**dict(r)) for r in rows]

    async def workouts_in_range(self, start_ms: int, end_ms: int) -> list[Workout]:
        rows = await self._fetch(
            f"SELECT {', '.join(_WORKOUT_COLUMNS)} FROM workouts "
            "WHERE start_time BETWEEN $1 AND $2 ORDER BY start_time DESC",
            start_ms,
            end_ms,
        )
        return [Workout(**dict(r)) for r in rows]

    async def exercises_for_workouts(self, workout_ids: Iterable[str]) -> list[Exercise]:
        rows = await self._fetch(
            f"SELECT {', '.join(_EXERCISE_COLUMNS)} FROM exercises WHERE workout_id = ANY($1::text[])",
            list(workout_ids),
        )
        return [Exercise(**dict(r)) for r in rows]

    async def sets_for_exercises(self, exercise_ids: Iterable[str]) -> list[WorkoutSet]:
        rows = await self._fetch(
            f"SELECT {', '.join(_SET_COLUMNS)} FROM sets WHERE exercise_id = ANY($1::text[])",
            list(exercise_ids),
        )
        return [WorkoutSet(**dict(r)) for r in rows]

    async def exercise(self, exercise_id: str) -> Exercise | None:
        row = await self._fetchrow(
            f"SELECT {', '.join(_EXERCISE_COLUMNS)} FROM exercises WHERE id = $1", exercise_id
        )
        return Exercise(**dict(row)) if row else None

    async def recent_prs(self, limit: int) -> list[WorkoutSet]:
        rows = await self._fetch(
            f"SELECT {', '.join(_SET_COLUMNS)} FROM sets WHERE is_personal_record "
            "ORDER BY last_synced DESC, id DESC LIMIT $1",
            limit,
        )
        return [WorkoutSet(**dict(r)) for r in rows]

    async def most_recent_synced(self) -> Workout | None:
        row = await self._fetchrow(
            f"SELECT {', '.join(_WORKOUT_COLUMNS)} FROM workouts ORDER BY last_synced DESC LIMIT 1"
        )
        return Workout(**dict(row)) if row else None

    async def workout_count(self) -> int:
        row = await self._fetchrow("SELECT COUNT(*) AS n FROM workouts")
        return int(row["n"]) if row else 0

    async def exercise_templates(self) -> list[ExerciseTemplate]:
        rows = await self._fetch(f"SELECT {', '.join(_TEMPLATE_COLUMNS)} FROM exercise_templates")
        return [ExerciseTemplate(**dict(r)) for r in rows]

    async def routines(self) -> list[Routine]:
        rows = await self._fetch(f"SELECT {', '.join(_ROUTINE_COLUMNS)} FROM routines ORDER BY name")
        routines = []
        for r in rows:
            exercises = [RoutineExercise(**e) for e in json.loads(r["exercises"])]
            routines.append(
                Routine(id=r["id"], name=r["name"], exercise_count=r["exercise_count"], exercises=exercises)
            )
        return routines

    async def watch_workouts(self) -> AsyncIterator[list[Workout]]:
        async for _ in self._version.subscribe():
            yield await self.all_workouts()
