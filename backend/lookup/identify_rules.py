from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

# Raw identify responses differ per service (MapServer `results[].attributes`,
# ImageServer top-level `value`, `pixel.value`, ...). Each profile is an ordered
# list of rules; the first rule that extracts something wins.


@dataclass(frozen=True)
class IdentifyReading:
    value: float | None
    text: str | None
    rule: str


@dataclass(frozen=True)
class IdentifyRule:
    name: str
    extract: Callable[[Mapping[str, Any]], IdentifyReading | None]


def parse_identify(raw: Any, rules: tuple[IdentifyRule, ...]) -> IdentifyReading | None:
    if not isinstance(raw, Mapping):
        return None
    for rule in rules:
        reading = rule.extract(raw)
        if reading is not None:
            return reading
    return None


def as_number(v: Any) -> float | None:
    if v is None or v == "" or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _first_result(raw: Mapping[str, Any]) -> Mapping[str, Any] | None:
    results = raw.get("results")
    if isinstance(results, list) and results and isinstance(results[0], Mapping):
        return results[0]
    return None


def _first_attributes(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    r0 = _first_result(raw)
    attrs = (r0 or {}).get("attributes") or {}
    return attrs if isinstance(attrs, Mapping) else {}


def result_value(raw: Mapping[str, Any]) -> IdentifyReading | None:
    r0 = _first_result(raw)
    v = as_number((r0 or {}).get("value"))
    return None if v is None else IdentifyReading(value=v, text=None, rule="result_value")


def exact_numeric_keys(*keys: str) -> Callable[[Mapping[str, Any]], IdentifyReading | None]:
    def extract(raw: Mapping[str, Any]) -> IdentifyReading | None:
        attrs = _first_attributes(raw)
        for k in keys:
            v = as_number(attrs.get(k))
            if v is not None:
                return IdentifyReading(value=v, text=None, rule=f"exact:{k}")
        return None

    return extract


def fuzzy_numeric_key(pattern: re.Pattern[str]) -> Callable[[Mapping[str, Any]], IdentifyReading | None]:
    def extract(raw: Mapping[str, Any]) -> IdentifyReading | None:
        attrs = _first_attributes(raw)
        for k, raw_v in attrs.items():
            if not pattern.search(str(k)):
                continue
            v = as_number(raw_v)
            if v is not None:
                return IdentifyReading(value=v, text=None, rule=f"fuzzy:{k}")
        return None

    return extract


def text_keys(*keys: str) -> Callable[[Mapping[str, Any]], IdentifyReading | None]:
    def extract(raw: Mapping[str, Any]) -> IdentifyReading | None:
        attrs = _first_attributes(raw)
        for k in keys:
            v = attrs.get(k)
            if v:
                return IdentifyReading(value=None, text=str(v), rule=f"text:{k}")
        return None

    return extract


def pixel_value(raw: Mapping[str, Any]) -> IdentifyReading | None:
    pixel = raw.get("pixel")
    if not isinstance(pixel, Mapping):
        return None
    v = as_number(pixel.get("value"))
    return None if v is None else IdentifyReading(value=v, text=None, rule="pixel_value")


def top_level_value(raw: Mapping[str, Any]) -> IdentifyReading | None:
    v = as_number(raw.get("value"))
    return None if v is None else IdentifyReading(value=v, text=None, rule="top_level_value")


PIXEL_VALUE_KEY = re.compile(r"(pixel ?value|^value$|gray_index|gridcode)$", re.IGNORECASE)

CLASS_TEXT_KEYS = ("ClassName", "Class", "LABEL", "Class_Label", "CLASS_LABEL", "Category")

LANDSLIDE_RULES: tuple[IdentifyRule, ...] = (
    IdentifyRule("result_value", result_value),
    IdentifyRule("exact_numeric", exact_numeric_keys("UniqueValue.Pixel Value", "Raster.Value")),
    IdentifyRule("fuzzy_numeric", fuzzy_numeric_key(PIXEL_VALUE_KEY)),
    IdentifyRule("class_text", text_keys(*CLASS_TEXT_KEYS)),
    IdentifyRule("generic_text", text_keys("CAT")),
    IdentifyRule(
        "generic_numeric",
        exact_numeric_keys("Value", "GRAY_INDEX", "PixelValue", "gridcode", "CLASS_VAL"),
    ),
)

INTENSITY_RULES: tuple[IdentifyRule, ...] = (
    IdentifyRule("pixel_value", pixel_value),
    IdentifyRule("top_level_value", top_level_value),
    IdentifyRule("result_value", result_value),
)

RULE_PROFILES: dict[str, tuple[IdentifyRule, ...]] = {
    "landslide": LANDSLIDE_RULES,
    "intensity": INTENSITY_RULES,
}


# --- class-code tables -------------------------------------------------------

LANDSLIDE_CLASS_LABELS: dict[int, str] = {
    0: "0",
    1: "I",
    2: "II",
    3: "III",
    4: "IV",
    5: "V",
    6: "VI",
    7: "VII",
    8: "VIII",
    9: "IX",
    10: "X",
}

MMI_CLASSES: dict[int, tuple[str, str]] = {
    1: ("I", "Not felt"),
    2: ("II", "Weak"),
    3: ("III", "Weak"),
    4: ("IV", "Light"),
    5: ("V", "Moderate"),
    6: ("VI", "Strong"),
    7: ("VII", "Very Strong"),
    8: ("VIII", "Severe"),
    9: ("IX", "Violent"),
    10: ("X+", "Extreme"),
}


def number_text(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else str(v)


def class_label(reading: IdentifyReading, table: Mapping[int, str]) -> str:
    """
    Display label for a reading: text as-is, integral codes through `table`,
    anything else printed as a number.
    """
    if reading.value is None:
        return reading.text or ""
    v = reading.value
    if float(v).is_integer() and int(v) in table:
        return table[int(v)]
    return number_text(v)


def format_mmi(mmi: float) -> dict[str, Any]:
    int_class = max(1, min(10, math.floor(mmi)))
    roman, desc = MMI_CLASSES.get(int_class, ("?", "Unknown"))
    return {"label": f"{roman} - {desc}", "intClass": int_class, "valueStr": f"{mmi:.1f}"}


def label_reading(reading: IdentifyReading, table_name: str | None) -> dict[str, Any]:
    """
    Attributes for the synthetic feature a pixel-identify lookup reports.
    """
    props: dict[str, Any] = {"value": reading.value, "rule": reading.rule}
    if table_name == "mmi":
        if reading.value is None:
            props["label"] = reading.text or ""
        else:
            props.update(format_mmi(reading.value))
    elif table_name == "landslide":
        props["label"] = class_label(reading, LANDSLIDE_CLASS_LABELS)
    else:
        props["label"] = reading.text if reading.value is None else number_text(reading.value)
    return props
