from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple

import pandas as pd

from dashboard_core.periods import sort_chronological

UNSPECIFIED_PERIOD = "Не указан"

RECORD_COLUMNS = ["link", "views", "si", "er", "project", "period"]


@dataclass(frozen=True)
class Record:
    link: str
    views: float
    si: float
    er: float
    project: str
    period: str = UNSPECIFIED_PERIOD

    def calculated_er(self) -> float:
        """ER as SI / views * 100."""
        if self.views == 0:
            return 0.0
        return self.si / self.views * 100

    def display_er(self) -> float:
        """Stored ER as a percentage, falling back to the calculated one when empty."""
        if self.er == 0:
            return self.calculated_er()
        return self.er * 100

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ParseResult:
    records: Tuple[Record, ...] = field(default_factory=tuple)
    projects: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.records

    def periods(self) -> List[str]:
        return sort_chronological(r.period for r in self.records)

    def to_frame(self) -> pd.DataFrame:
        return records_to_frame(self.records)


def records_to_frame(records) -> pd.DataFrame:
    if not records:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    return pd.DataFrame([asdict(r) for r in records], columns=RECORD_COLUMNS)
