from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from dashboard_core.models import Record


@dataclass(frozen=True)
class RecordFilter:
    project: Optional[str] = None
    period: Optional[str] = None

    def matches(self, record: Record) -> bool:
        if self.project and record.project != self.project:
            return False
        if self.period and record.period != self.period:
            return False
        return True

    def without_period(self) -> "RecordFilter":
        return RecordFilter(project=self.project, period=None)


def _as_optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    return s


def normalize_filters(raw: Optional[dict]) -> RecordFilter:
    raw = raw or {}
    return RecordFilter(
        project=_as_optional_str(raw.get("project")),
        period=_as_optional_str(raw.get("period")),
    )


def apply_filter(records: Iterable[Record], filters: Optional[RecordFilter] = None) -> List[Record]:
    if filters is None:
        return list(records)
    return [r for r in records if filters.matches(r)]
