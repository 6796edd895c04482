"""Muscle group resolution for exercises.

The template's muscle group from the remote API is authoritative.  When an
exercise has no template, or the template is unknown locally, the group is
guessed from the exercise name with ordered keyword rules; the first rule
that matches wins.
"""

from __future__ import annotations

import re
from typing import Mapping

from flexinsight.store.records import Exercise

# Ordered: "incline press" must hit Chest before Shoulders sees "press", and
# "lateral raise" must not be read as "lat".
_NAME_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Chest", re.compile(r"bench|chest|\bpec|fly|flye|(incline|decline).*press|press.*(incline|decline)")),
    ("Back", re.compile(r"row|pull|\blats?\b|deadlift|shrug|rear delt")),
    ("Legs", re.compile(r"squat|leg|quad|hamstring|calf|calves|lunge|glute|\bhip")),
    ("Shoulders", re.compile(r"shoulder|delt|(overhead|military).*press|lateral raise|front raise")),
    ("Arms", re.compile(r"bicep|tricep|curl|pushdown|\bdips?\b|preacher")),
    ("Core", re.compile(r"\babs?\b|core|crunch|plank|sit-?up|oblique")),
    ("Cardio", re.compile(r"\brun|bike|cardio|walk|elliptical|stair")),
)


def muscle_group_from_name(name: str | None) -> str | None:
    """Guess a muscle group from an exercise name.

    Args:
        name: Exercise title, e.g. "Bench Press (Barbell)".

    Returns:
        One of Chest, Back, Legs, Shoulders, Arms, Core, Cardio, or None.
    """
    if not name:
        return None
    lowered = name.lower()
    for group, pattern in _NAME_RULES:
        if pattern.search(lowered):
            return group
    return None


def resolve_muscle_group(
    exercise: Exercise, template_mapping: Mapping[str, str]
) -> str | None:
    """Template muscle group when known, otherwise the name heuristic."""
    if exercise.exercise_template_id is not None:
        group = template_mapping.get(exercise.exercise_template_id)
        if group:
            return group
    return muscle_group_from_name(exercise.name)
