from __future__ import annotations

import re
from typing import Any, Mapping

# Attribute names differ per source ("FacilityName", "INSTNM", "PlantName", ...).
# These tables are the only place that knows about them.
NAME_HINTS: tuple[str, ...] = (
    "name",
    "title",
    "label",
    "label_name",
    "facility",
    "facility_name",
    "instnm",
    "plant_name",
    "school_name",
    "incident_name",
)

YEAR_HINTS: tuple[str, ...] = (
    "yrblt",
    "yr_built",
    "year_built",
    "built",
    "year",
)

SCORE_EXACT = 3
SCORE_AFFIX = 2
SCORE_CONTAINS = 1

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_field_name(key: str) -> str:
    return _NON_ALNUM.sub("", str(key or "").lower())


def score_field_name(key: str, hints: tuple[str, ...]) -> int:
    """
    Best score of `key` against any hint: exact > prefix/suffix > substring > 0.
    """
    k = normalize_field_name(key)
    if not k:
        return 0
    best = 0
    for hint in hints:
        h = normalize_field_name(hint)
        if not h:
            continue
        if k == h:
            return SCORE_EXACT
        if k.startswith(h) or k.endswith(h):
            best = max(best, SCORE_AFFIX)
        elif h in k:
            best = max(best, SCORE_CONTAINS)
    return best


def pick_field(props: Mapping[str, Any], hints: tuple[str, ...]) -> str | None:
    """
    Choose the attribute most likely to hold the hinted value.

    Empty values are ignored. Ties break on the shortest key, then alphabetically,
    so the result never depends on dict ordering.
    """
    scored: list[tuple[int, int, str]] = []
    for key, value in (props or {}).items():
        if value is None or value == "":
            continue
        s = score_field_name(key, hints)
        if s > 0:
            scored.append((-s, len(key), key))
    if not scored:
        return None
    scored.sort()
    return scored[0][2]


def pick_value(props: Mapping[str, Any], hints: tuple[str, ...]) -> Any | None:
    key = pick_field(props, hints)
    return None if key is None else props[key]
