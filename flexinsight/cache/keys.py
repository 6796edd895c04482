"""Cache key families and the TTL family each one is read with.

Keys ending in ``_`` are prefixes; the concrete key appends a parameter such
as a week count or a limit (``weekly_progress_4``).  Invalidating a prefix
drops every parameterisation at once.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flexinsight.cache.ttl_cache import TTLCache


class CacheKeys:
    WORKOUT_STATS = "workout_stats"
    PRS_WITH_DETAILS = "prs_with_details_"
    MUSCLE_GROUP_PROGRESS = "muscle_group_progress_"
    WEEKLY_PROGRESS = "weekly_progress_"
    VOLUME_TREND = "volume_trend_"
    DURATION_TREND = "duration_trend_"
    EXERCISE_TEMPLATES = "exercise_templates"
    EXERCISE_TEMPLATES_FROM_EVENTS = "exercise_templates_from_events"
    ROUTINES = "routines"

    @staticmethod
    def keyed(prefix: str, param: object) -> str:
        return f"{prefix}{param}"


# Derived statistics recomputed from the local store.
STATS_PREFIXES: tuple[str, ...] = (
    CacheKeys.WORKOUT_STATS,
    CacheKeys.PRS_WITH_DETAILS,
    CacheKeys.MUSCLE_GROUP_PROGRESS,
    CacheKeys.WEEKLY_PROGRESS,
    CacheKeys.VOLUME_TREND,
    CacheKeys.DURATION_TREND,
)

# Single keys rebuilt from remote-sourced tables.  Dropped by exact match:
# EXERCISE_TEMPLATES is a prefix of EXERCISE_TEMPLATES_FROM_EVENTS, and the
# event-derived names must outlive a sync.
REMOTE_DERIVED_KEYS: tuple[str, ...] = (
    CacheKeys.EXERCISE_TEMPLATES,
    CacheKeys.ROUTINES,
)

# Policy TTL family (sync_policy.yaml ``cache_ttl_minutes``) per key family.
TTL_FAMILY: dict[str, str] = {
    CacheKeys.WORKOUT_STATS: "stats",
    CacheKeys.PRS_WITH_DETAILS: "prs",
    CacheKeys.MUSCLE_GROUP_PROGRESS: "progress",
    CacheKeys.WEEKLY_PROGRESS: "progress",
    CacheKeys.VOLUME_TREND: "progress",
    CacheKeys.DURATION_TREND: "progress",
    CacheKeys.EXERCISE_TEMPLATES: "exercise_templates",
    CacheKeys.EXERCISE_TEMPLATES_FROM_EVENTS: "exercise_templates_from_events",
    CacheKeys.ROUTINES: "routines",
}


def invalidate_remote_derived(cache: TTLCache) -> int:
    """Drop derived stats plus the template mapping and routines from ``cache``.

    Returns:
        Number of entries removed.
    """
    dropped = sum(cache.invalidate_prefix(prefix) for prefix in STATS_PREFIXES)
    return dropped + sum(cache.invalidate(key) for key in REMOTE_DERIVED_KEYS)
