"""Pure workout statistics over explicit record collections.

Nothing here touches a store, a cache or the clock: callers pass the
records and the reference time.  All functions degrade to zero-valued results
on empty or partial input rather than raising.

Day bucketing is calendar-aware.  A timestamp's day is its local date in
``tz`` (the system zone when ``tz`` is None), and day boundaries are
computed from calendar dates rather than by subtracting 86 400 000 ms, so
23- and 25-hour days around DST transitions are handled correctly.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Iterable, Sequence

from flexinsight.analytics.models import (
    DailyDurationData,
    DailyVolumeData,
    DayInfo,
    MuscleGroupProgress,
    VolumeBalance,
    WeeklyProgress,
    WeeklyVolumeData,
)
from flexinsight.store.records import Exercise, Workout, WorkoutSet

MS_PER_MINUTE = 60_000

WEEKDAY_LETTERS = ("M", "T", "W", "T", "F", "S", "S")
WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

_PUSH_GROUPS = ("chest", "shoulders", "triceps")
_PULL_GROUPS = ("back", "biceps")
_LEGS_GROUPS = ("legs", "quads", "hamstrings", "glutes", "calves")
_CARDIO_GROUPS = ("cardio",)


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def _local(ts_ms: int, tz: tzinfo | None) -> datetime:
    # Naive local datetime when tz is None; mktime then resolves DST.
    return datetime.fromtimestamp(ts_ms / 1000, tz)


def _midnight_ms(day: date, tz: tzinfo | None) -> int:
    midnight = datetime(day.year, day.month, day.day, tzinfo=tz)
    return round(midnight.timestamp() * 1000)


def local_date(ts_ms: int, tz: tzinfo | None = None) -> date:
    """Calendar date of ``ts_ms`` in ``tz`` (system zone when None)."""
    return _local(ts_ms, tz).date()


def start_of_day(ts_ms: int, tz: tzinfo | None = None) -> int:
    """Epoch ms of local midnight opening the day that contains ``ts_ms``."""
    return _midnight_ms(local_date(ts_ms, tz), tz)


def end_of_day(ts_ms: int, tz: tzinfo | None = None) -> int:
    """Epoch ms of the last millisecond of the local day containing ``ts_ms``."""
    return _midnight_ms(local_date(ts_ms, tz) + timedelta(days=1), tz) - 1


def week_range(today: date, tz: tzinfo | None = None) -> tuple[int, int]:
    """First and last epoch ms of the Monday..Sunday week containing ``today``."""
    monday = today - timedelta(days=today.weekday())
    return _midnight_ms(monday, tz), _midnight_ms(monday + timedelta(days=7), tz) - 1


def trailing_start(now_ms: int, days: int, tz: tzinfo | None = None) -> int:
    """Local midnight opening the oldest of ``days`` calendar days ending today.

    Steps back whole calendar days, so the result stays on midnight when the
    window spans a DST change.
    """
    return _midnight_ms(local_date(now_ms, tz) - timedelta(days=days - 1), tz)


def _workout_days(workouts: Iterable[Workout], tz: tzinfo | None) -> list[date]:
    return sorted({local_date(w.start_time, tz) for w in workouts})


# ---------------------------------------------------------------------------
# Volume and duration
# ---------------------------------------------------------------------------


def set_volume(workout_set: WorkoutSet) -> float:
    """weight x reps, or 0 when either is missing."""
    return workout_set.volume


def volume_by_workout(
    workouts: Iterable[Workout],
    exercises: Iterable[Exercise],
    sets: Iterable[WorkoutSet],
) -> dict[str, float]:
    """Volume per workout ID, with a 0.0 entry for every given workout.

    Sets whose exercise is unknown, or whose exercise belongs to a workout
    outside ``workouts``, are ignored.
    """
    volumes = {w.id: 0.0 for w in workouts}
    exercise_owner = {e.id: e.workout_id for e in exercises if e.workout_id in volumes}
    for workout_set in sets:
        owner = exercise_owner.get(workout_set.exercise_id)
        if owner is not None:
            volumes[owner] += workout_set.volume
    return volumes


def total_volume(
    workouts: Iterable[Workout],
    exercises: Iterable[Exercise],
    sets: Iterable[WorkoutSet],
) -> float:
    """Sum of set volume over every set belonging to one of ``workouts``."""
    return sum(volume_by_workout(workouts, exercises, sets).values())


def workout_duration_minutes(workout: Workout) -> int:
    """Whole minutes between start and end; 0 while the workout is open."""
    return workout.duration_ms // MS_PER_MINUTE


def total_duration_minutes(workouts: Iterable[Workout]) -> int:
    return sum(workout_duration_minutes(w) for w in workouts)


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------


def streak(workouts: Iterable[Workout], tz: tzinfo | None = None) -> int:
    """Consecutive workout days walking back from the most recent workout day.

    Several workouts on one day count once; the walk stops at the first day
    with no workout.
    """
    days = _workout_days(workouts, tz)
    if not days:
        return 0
    count = 0
    expected = days[-1]
    for day in reversed(days):
        if day != expected:
            break
        count += 1
        expected = day - timedelta(days=1)
    return count


def current_streak(
    workouts: Sequence[Workout], today: date, tz: tzinfo | None = None
) -> int:
    """Trailing streak that is still alive on ``today``.

    Returns 0 unless the most recent workout day is ``today`` or the day
    before; otherwise identical to ``streak``.
    """
    days = _workout_days(workouts, tz)
    if not days or days[-1] < today - timedelta(days=1):
        return 0
    return streak(workouts, tz)


def longest_streak(workouts: Iterable[Workout], tz: tzinfo | None = None) -> int:
    """Longest run of consecutive workout days anywhere in the history."""
    days = _workout_days(workouts, tz)
    if not days:
        return 0
    longest = run = 1
    for previous, day in zip(days, days[1:]):
        run = run + 1 if (day - previous).days == 1 else 1
        longest = max(longest, run)
    return longest


# ---------------------------------------------------------------------------
# Trailing-window series
# ---------------------------------------------------------------------------


def weekly_progress(
    workouts: Iterable[Workout],
    exercises: Iterable[Exercise],
    sets: Iterable[WorkoutSet],
    weeks: int,
    now_ms: int,
    tz: tzinfo | None = None,
) -> list[WeeklyProgress]:
    """Exactly ``weeks`` trailing 7-day windows, oldest first.

    The newest window covers the six days before today plus today; windows
    with no workouts yield zero-valued records.

    Args:
        workouts:  Candidate workouts (any outside the windows are ignored).
        exercises: Exercises for those workouts.
        sets:      Sets for those exercises.
        weeks:     Number of windows (<= 0 yields an empty list).
        now_ms:    Reference time.
        tz:        Zone for day bucketing.
    """
    if weeks <= 0:
        return []
    workouts = list(workouts)
    today = local_date(now_ms, tz)
    volumes = volume_by_workout(workouts, exercises, sets)

    bucket_volume = [0.0] * weeks
    bucket_count = [0] * weeks
    for workout in workouts:
        age_days = (today - local_date(workout.start_time, tz)).days
        if 0 <= age_days < weeks * 7:
            bucket = age_days // 7
            bucket_volume[bucket] += volumes[workout.id]
            bucket_count[bucket] += 1

    series: list[WeeklyProgress] = []
    for bucket in reversed(range(weeks)):
        first_day = today - timedelta(days=bucket * 7 + 6)
        count = bucket_count[bucket]
        volume = bucket_volume[bucket]
        series.append(
            WeeklyProgress(
                week_start_date=_midnight_ms(first_day, tz),
                total_volume=volume,
                workout_count=count,
                average_volume=volume / count if count else 0.0,
            )
        )
    return series


def weekly_volume_data(progress: Sequence[WeeklyProgress]) -> list[WeeklyVolumeData]:
    """Chart labels "W1".."Wn" for a weekly series, oldest first."""
    return [WeeklyVolumeData(f"W{i + 1}", p.total_volume) for i, p in enumerate(progress)]


def daily_volume(
    workouts: Iterable[Workout],
    exercises: Iterable[Exercise],
    sets: Iterable[WorkoutSet],
    days: int,
    now_ms: int,
    tz: tzinfo | None = None,
) -> list[DailyVolumeData]:
    """Exactly ``days`` daily buckets ending today, oldest first."""
    if days <= 0:
        return []
    workouts = list(workouts)
    today = local_date(now_ms, tz)
    volumes = volume_by_workout(workouts, exercises, sets)

    bucket_volume: dict[date, float] = defaultdict(float)
    bucket_count: dict[date, int] = defaultdict(int)
    for workout in workouts:
        day = local_date(workout.start_time, tz)
        bucket_volume[day] += volumes[workout.id]
        bucket_count[day] += 1

    series = []
    for offset in reversed(range(days)):
        day = today - timedelta(days=offset)
        series.append(
            DailyVolumeData(
                date=_midnight_ms(day, tz),
                volume=bucket_volume.get(day, 0.0),
                workout_count=bucket_count.get(day, 0),
            )
        )
    return series


def duration_trend(
    workouts: Iterable[Workout],
    start_ms: int,
    end_ms: int,
    tz: tzinfo | None = None,
) -> list[DailyDurationData]:
    """Average whole-minute duration per weekday, Monday through Sunday.

    Only finished workouts starting inside ``[start_ms, end_ms]`` count; an
    open workout has no duration to average.  Weekdays with nothing yield 0.
    """
    durations: list[list[int]] = [[] for _ in range(7)]
    for workout in workouts:
        if workout.end_time is None or not start_ms <= workout.start_time <= end_ms:
            continue
        weekday = local_date(workout.start_time, tz).weekday()
        durations[weekday].append(workout_duration_minutes(workout))

    return [
        DailyDurationData(
            day_of_week=WEEKDAY_LETTERS[weekday],
            average_duration=sum(values) // len(values) if values else 0,
        )
        for weekday, values in enumerate(durations)
    ]


def week_calendar(
    workouts: Iterable[Workout], today: date, tz: tzinfo | None = None
) -> list[DayInfo]:
    """Monday..Sunday of the week containing ``today``."""
    monday = today - timedelta(days=today.weekday())
    by_day: dict[date, list[Workout]] = defaultdict(list)
    for workout in workouts:
        by_day[local_date(workout.start_time, tz)].append(workout)

    calendar = []
    for offset, name in enumerate(WEEKDAY_NAMES):
        day = monday + timedelta(days=offset)
        day_workouts = by_day.get(day, [])
        calendar.append(
            DayInfo(
                name=name,
                date=day.day,
                timestamp=_midnight_ms(day, tz),
                has_workout=bool(day_workouts),
                is_completed=any(w.end_time is not None for w in day_workouts),
                workout_count=len(day_workouts),
            )
        )
    return calendar


# ---------------------------------------------------------------------------
# Muscle groups
# ---------------------------------------------------------------------------


def muscle_group_progress(
    exercises: Iterable[Exercise],
    sets: Iterable[WorkoutSet],
    muscle_group_for: Callable[[Exercise], str | None],
    limit: int | None = None,
) -> list[MuscleGroupProgress]:
    """Volume and set count per muscle group, highest volume first.

    Exercises for which ``muscle_group_for`` returns None are left out.
    Intensity is relative to the mean volume across the returned groups.
    """
    sets_by_exercise: dict[str, list[WorkoutSet]] = defaultdict(list)
    for workout_set in sets:
        sets_by_exercise[workout_set.exercise_id].append(workout_set)

    group_volume: dict[str, float] = defaultdict(float)
    group_sets: dict[str, int] = defaultdict(int)
    for exercise in exercises:
        group = muscle_group_for(exercise)
        if group is None:
            continue
        exercise_sets = sets_by_exercise.get(exercise.id, [])
        group_volume[group] += sum(s.volume for s in exercise_sets)
        group_sets[group] += len(exercise_sets)

    if not group_volume:
        return []
    overall = sum(group_volume.values())
    average = overall / len(group_volume)
    progress = [
        MuscleGroupProgress(
            muscle_group=group,
            volume=volume,
            sets=group_sets[group],
            intensity=relative_intensity(volume, average),
            volume_share=volume / overall if overall else 0.0,
        )
        for group, volume in group_volume.items()
    ]
    progress.sort(key=lambda p: p.volume, reverse=True)
    return progress[:limit] if limit is not None else progress


def volume_balance(progress: Iterable[MuscleGroupProgress]) -> VolumeBalance:
    """Split volume into push / pull / legs / cardio shares.

    A group lands in the first category whose keyword it contains.  Groups
    matching none (e.g. "Core") are ignored.  With no categorised volume the
    shares are an even 0.25 each.
    """
    totals = {"push": 0.0, "pull": 0.0, "legs": 0.0, "cardio": 0.0}
    for entry in progress:
        group = entry.muscle_group.lower()
        if any(k in group for k in _PUSH_GROUPS):
            totals["push"] += entry.volume
        elif any(k in group for k in _PULL_GROUPS):
            totals["pull"] += entry.volume
        elif any(k in group for k in _LEGS_GROUPS):
            totals["legs"] += entry.volume
        elif any(k in group for k in _CARDIO_GROUPS):
            totals["cardio"] += entry.volume

    overall = sum(totals.values())
    if overall <= 0:
        return VolumeBalance(0.25, 0.25, 0.25, 0.25)
    return VolumeBalance(**{k: v / overall for k, v in totals.items()})


# ---------------------------------------------------------------------------
# Classifiers
# ---------------------------------------------------------------------------


def volume_change(current: float, previous: float) -> float:
    """Percentage change; 100 when growing from nothing, 0 when both are 0."""
    if previous > 0:
        return (current - previous) / previous * 100.0
    return 100.0 if current > 0 else 0.0


def goal_status(completed: int, target: int) -> str:
    return "On Track" if completed >= target * 0.7 else "Behind"


def relative_intensity(volume: float, average: float) -> str:
    if volume >= average * 1.5:
        return "HI"
    if volume >= average * 0.7:
        return "MD"
    return "LO"


def absolute_intensity(volume: float) -> str:
    if volume > 5000:
        return "High Intensity"
    if volume > 2000:
        return "Medium Intensity"
    return "Aerobic"
