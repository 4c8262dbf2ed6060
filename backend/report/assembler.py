from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from lookup.outcomes import LookupOutcome, outcome_to_dict


class OutcomeFormatter(Protocol):
    label: str

    def render(self, outcome: LookupOutcome) -> str: ...


@dataclass(frozen=True)
class ReportEntry:
    key: str
    label: str
    outcome: LookupOutcome
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "text": self.text,
            "outcome": outcome_to_dict(self.outcome),
        }


@dataclass(frozen=True)
class Report:
    """
    One query point's composite result, entries in the static declared order.

    `current` is False when a newer aggregation started before this one finished.
    """

    entries: list[ReportEntry] = field(default_factory=list)
    generation: int = 0
    current: bool = True

    @property
    def keys(self) -> list[str]:
        return [e.key for e in self.entries]

    @property
    def text(self) -> str:
        return "\n\n".join(e.text for e in self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "current": self.current,
            "entries": [e.to_dict() for e in self.entries],
            "text": self.text,
        }


class ReportAssembler:
    """
    Maps settled slot outcomes onto the static report order.

    Total by construction: every declared slot key must have a formatter, and
    `assemble` refuses a settled map that misses or adds slots.
    """

    def __init__(self, order: Sequence[str], formatters: Mapping[str, OutcomeFormatter]):
        keys = list(order)
        if len(set(keys)) != len(keys):
            raise ValueError("report order lists a slot more than once")
        missing = [k for k in keys if k not in formatters]
        if missing:
            raise ValueError(f"no formatter for slots: {missing}")
        self._order = tuple(keys)
        self._formatters = dict(formatters)

    @property
    def slot_keys(self) -> tuple[str, ...]:
        return self._order

    def entry(self, key: str, outcome: LookupOutcome) -> ReportEntry:
        fmt = self._formatters[key]
        return ReportEntry(key=key, label=fmt.label, outcome=outcome, text=fmt.render(outcome))

    def assemble(
        self,
        settled: Mapping[str, LookupOutcome],
        *,
        generation: int = 0,
        current: bool = True,
    ) -> Report:
        missing = [k for k in self._order if k not in settled]
        if missing:
            raise ValueError(f"unsettled slots: {missing}")
        extra = sorted(set(settled) - set(self._order))
        if extra:
            raise ValueError(f"undeclared slots: {extra}")

        entries = [self.entry(key, settled[key]) for key in self._order]
        return Report(entries=entries, generation=generation, current=current)
