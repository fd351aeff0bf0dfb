"""Period label helpers.

A period label looks like ``"14.07 - 20.07"`` (start day.month - end
day.month). Only the shape is validated: ``"35.13 - 40.14"`` passes, the same
way the source spreadsheets are read. Ordering uses (month, day) of the start
date and ignores the year, so data spanning a new year sorts January first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, List, Literal, Optional, Tuple

PERIOD_PATTERN = re.compile(r"^\d{2}\.\d{2}\s*-\s*\d{2}\.\d{2}$")

MatchMode = Literal["pattern", "known"]


def is_valid_period_label(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return bool(PERIOD_PATTERN.match(value.strip()))


@dataclass(frozen=True)
class PeriodMatcher:
    """Decides whether a normalized first-column value is a period marker.

    ``pattern`` mode discovers periods from the sheet itself; ``known`` mode
    only accepts labels the caller listed up front.
    """

    mode: MatchMode = "pattern"
    labels: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def pattern(cls) -> "PeriodMatcher":
        return cls(mode="pattern")

    @classmethod
    def known(cls, labels: Iterable[str]) -> "PeriodMatcher":
        return cls(mode="known", labels=frozenset(str(x).strip() for x in labels))

    def is_marker(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        if self.mode == "known":
            return value.strip() in self.labels
        return is_valid_period_label(value)


def is_period_marker(value: Any, known: Optional[Iterable[str]] = None) -> bool:
    matcher = PeriodMatcher.pattern() if known is None else PeriodMatcher.known(known)
    return matcher.is_marker(value)


def _start_key(label: str) -> Tuple[int, int]:
    start = label.split("-", 1)[0].strip()
    day, month = start.split(".")
    return int(month), int(day)


def sort_chronological(periods: Iterable[str]) -> List[str]:
    """Distinct labels ordered by start (month, day); unparseable labels last."""
    seen = set()
    valid: List[str] = []
    other: List[str] = []
    for p in periods:
        if p in seen:
            continue
        seen.add(p)
        (valid if is_valid_period_label(p) else other).append(p)
    valid.sort(key=_start_key)
    return valid + other


def latest(sorted_periods: List[str]) -> Optional[str]:
    """Newest valid label; the sentinel and other unparseable labels are skipped."""
    for label in reversed(sorted_periods):
        if is_valid_period_label(label):
            return label
    return None


def display_order(periods: Iterable[str]) -> List[str]:
    """Most recent first, for pickers and lists. Unparseable labels stay at the end."""
    ordered = sort_chronological(periods)
    valid = [p for p in ordered if is_valid_period_label(p)]
    other = [p for p in ordered if not is_valid_period_label(p)]
    return list(reversed(valid)) + other


def previous_period(sorted_periods: List[str], current: str) -> Optional[str]:
    """The entry right before ``current`` in sort order (not the calendar week before)."""
    try:
        idx = sorted_periods.index(current)
    except ValueError:
        return None
    if idx == 0:
        return None
    return sorted_periods[idx - 1]
