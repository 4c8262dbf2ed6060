from __future__ import annotations

import math
from typing import Any, Mapping

from catalog.types import CatalogConfig, CatalogSlot, SlotFormat
from lookup.outcomes import Contained, Failed, LookupOutcome, Nearest, NotFound

UNKNOWN = "unknown"


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return UNKNOWN


def half_up(v: float) -> int:
    # Percentiles are displayed rounded half-up (not banker's rounding).
    return int(math.floor(float(v) + 0.5))


def fixed(v: Any, decimals: int) -> str | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f):
        return None
    return f"{f:.{decimals}f}"


def _number(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


class SlotFormatter:
    """
    Renders every outcome variant of one slot as a single line of text.

    Templates come from the catalog (`SlotFormat`); placeholders with no value
    render as "unknown" instead of failing.
    """

    def __init__(
        self,
        label: str,
        fmt: SlotFormat,
        tier_descriptions: Mapping[str | None, str | None] | None = None,
    ):
        self.label = label
        self.fmt = fmt
        self.tier_descriptions = dict(tier_descriptions or {})
        for name in ("contained", "nearest", "notFound", "failed"):
            template = getattr(fmt, name)
            try:
                template.format_map(_SafeDict())
            except (ValueError, IndexError, AttributeError, KeyError) as e:
                raise ValueError(f"{label}: invalid {name} template {template!r}: {e}") from e

    def render(self, outcome: LookupOutcome) -> str:
        ctx = _SafeDict(label=self.label)
        if isinstance(outcome, Failed):
            ctx["reason"] = outcome.reason
            return self.fmt.failed.format_map(ctx)
        if isinstance(outcome, NotFound):
            return self._with_note(self.fmt.notFound.format_map(ctx))

        ctx.update(self._feature_values(outcome.feature.props))
        if outcome.tier_label is not None:
            ctx["tier"] = outcome.tier_label
            desc = self.tier_descriptions.get(outcome.tier_label)
            if desc:
                ctx["tier_description"] = desc

        if isinstance(outcome, Contained):
            return self.fmt.contained.format_map(ctx)
        if isinstance(outcome, Nearest):
            ctx["distance"] = f"{outcome.distance_mi:.2f}"
            return self._with_note(self.fmt.nearest.format_map(ctx))
        raise TypeError(f"Unsupported outcome: {outcome!r}")

    def _with_note(self, text: str) -> str:
        return f"{text} {self.fmt.note}" if self.fmt.note else text

    def _feature_values(self, props: Mapping[str, Any]) -> dict[str, str]:
        fmt = self.fmt
        out: dict[str, str] = {}
        if fmt.kind == "zone":
            v = props.get(fmt.field or "")
            if v is not None and v != "":
                out["value"] = str(v)
        elif fmt.kind == "indicator":
            v = fixed(props.get(fmt.field or ""), fmt.decimals)
            if v is not None:
                out["value"] = v
            if fmt.percentileField:
                pct = _number(props.get(fmt.percentileField))
                if pct is not None:
                    out["percentile"] = str(half_up(pct))
        elif fmt.kind == "class":
            label = props.get("label")
            if label not in (None, ""):
                out["value"] = str(label)
        elif fmt.kind == "intensity":
            if props.get("valueStr"):
                out["value"] = str(props["valueStr"])
            if props.get("label"):
                out["class_label"] = str(props["label"])
        return out


def formatter_for_slot(slot: CatalogSlot) -> SlotFormatter:
    return SlotFormatter(
        slot.label,
        slot.format,
        tier_descriptions={t.label: t.description for t in slot.tiers if t.label},
    )


def build_formatters(config: CatalogConfig) -> dict[str, SlotFormatter]:
    return {slot.key: formatter_for_slot(slot) for slot in config.slots}
