from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias, Union

from layers.types import Feature

OutcomeKind = Literal["contained", "nearest", "not_found", "failed"]


@dataclass(frozen=True)
class Contained:
    feature: Feature
    tier_label: str | None = None

    kind: OutcomeKind = field(default="contained", init=False)


@dataclass(frozen=True)
class Nearest:
    feature: Feature
    distance_mi: float
    tier_label: str | None = None

    kind: OutcomeKind = field(default="nearest", init=False)


@dataclass(frozen=True)
class NotFound:
    kind: OutcomeKind = field(default="not_found", init=False)


@dataclass(frozen=True)
class Failed:
    reason: str

    kind: OutcomeKind = field(default="failed", init=False)


LookupOutcome: TypeAlias = Union[Contained, Nearest, NotFound, Failed]


def outcome_to_dict(outcome: LookupOutcome) -> dict[str, Any]:
    """
    JSON-friendly view of an outcome (for API payloads and telemetry).
    """
    out: dict[str, Any] = {"kind": outcome.kind}
    if isinstance(outcome, (Contained, Nearest)):
        out["tier"] = outcome.tier_label
        out["featureId"] = outcome.feature.id
        out["properties"] = dict(outcome.feature.props)
    if isinstance(outcome, Nearest):
        out["distanceMi"] = outcome.distance_mi
    if isinstance(outcome, Failed):
        out["reason"] = outcome.reason
    return out
