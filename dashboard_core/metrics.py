"""Aggregations over parsed records.

Every function here is pure: ``(records, filters) -> numbers``. ER comes in
two flavours that disagree whenever view counts differ between posts:

- ``derived``: total SI / total views * 100 (the dashboard default)
- ``mean``: arithmetic mean of the stored per-post ER * 100

Callers pick one per call; a single result never mixes them.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np

from dashboard_core.errors import InsufficientData
from dashboard_core.filters import RecordFilter, apply_filter
from dashboard_core.models import Record, records_to_frame
from dashboard_core.periods import is_valid_period_label, latest, previous_period, sort_chronological

ErMethod = Literal["derived", "mean"]
Metric = Literal["views", "si", "er", "posts"]

MIN_FORECAST_PERIODS = 3
FORECAST_BAND = 0.15


def derived_er(views: float, si: float) -> float:
    if views <= 0:
        return 0.0
    return si / views * 100


def mean_er(er_values: Sequence[float]) -> float:
    if len(er_values) == 0:
        return 0.0
    return float(sum(er_values)) / len(er_values) * 100


def pct_change(current: float, previous: float) -> float:
    """Percent change; 0 when there is no positive baseline."""
    if previous is None or previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


@dataclass(frozen=True)
class Totals:
    views: float = 0.0
    si: float = 0.0
    er: float = 0.0
    posts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GroupTotals:
    key: str
    views: float = 0.0
    si: float = 0.0
    er: float = 0.0
    posts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _er_for(views: float, si: float, er_values: Sequence[float], method: ErMethod) -> float:
    if method == "mean":
        return mean_er(er_values)
    if method == "derived":
        return derived_er(views, si)
    raise ValueError(f"Unknown ER method: {method!r}")


def compute_totals(
    records: Iterable[Record],
    filters: Optional[RecordFilter] = None,
    *,
    er_method: ErMethod = "derived",
) -> Totals:
    rows = apply_filter(records, filters)
    views = float(sum(r.views for r in rows))
    si = float(sum(r.si for r in rows))
    return Totals(
        views=views,
        si=si,
        er=_er_for(views, si, [r.er for r in rows], er_method),
        posts=len(rows),
    )


def _group(rows: List[Record], column: str, er_method: ErMethod) -> List[GroupTotals]:
    df = records_to_frame(rows)
    if df.empty:
        return []
    grouped = (
        df.groupby(column, sort=False)
        .agg(views=("views", "sum"), si=("si", "sum"), er_values=("er", list), posts=("link", "size"))
        .reset_index()
    )
    out: List[GroupTotals] = []
    for row in grouped.itertuples(index=False):
        views = float(row.views)
        si = float(row.si)
        out.append(
            GroupTotals(
                key=str(getattr(row, column)),
                views=views,
                si=si,
                er=_er_for(views, si, row.er_values, er_method),
                posts=int(row.posts),
            )
        )
    return out


def compute_project_breakdown(
    records: Iterable[Record],
    filters: Optional[RecordFilter] = None,
    *,
    er_method: ErMethod = "derived",
) -> List[GroupTotals]:
    """Per-project totals in order of first appearance."""
    return _group(apply_filter(records, filters), "project", er_method)


def top_projects(
    records: Iterable[Record],
    filters: Optional[RecordFilter] = None,
    *,
    metric: Metric = "views",
    limit: int = 5,
    er_method: ErMethod = "derived",
) -> List[GroupTotals]:
    groups = compute_project_breakdown(records, filters, er_method=er_method)
    groups.sort(key=lambda g: getattr(g, metric), reverse=True)
    return groups[: max(0, limit)]


def compute_period_breakdown(
    records: Iterable[Record],
    filters: Optional[RecordFilter] = None,
    *,
    er_method: ErMethod = "derived",
) -> List[GroupTotals]:
    """Per-period totals in chronological order.

    The period filter is ignored on purpose: this is the trend axis, only the
    project filter narrows it.
    """
    base = (filters or RecordFilter()).without_period()
    groups = {g.key: g for g in _group(apply_filter(records, base), "period", er_method)}
    return [groups[p] for p in sort_chronological(groups)]


def period_axis(records: Iterable[Record], filters: Optional[RecordFilter] = None) -> List[str]:
    """Chronological list of valid period labels for the (project-filtered) records."""
    base = (filters or RecordFilter()).without_period()
    return [p for p in sort_chronological(r.period for r in apply_filter(records, base)) if is_valid_period_label(p)]


# ---------------- Period comparison ----------------
@dataclass(frozen=True)
class PeriodComparison:
    current_period: str
    previous_period: str
    current: Totals
    previous: Totals
    views_change: float
    si_change: float
    er_change: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "current_period": self.current_period,
            "previous_period": self.previous_period,
            "current": self.current.to_dict(),
            "previous": self.previous.to_dict(),
            "changes": {"views": self.views_change, "si": self.si_change, "er": self.er_change},
        }


def compare_periods(
    records: Sequence[Record],
    filters: Optional[RecordFilter] = None,
    *,
    current: Optional[str] = None,
    er_method: ErMethod = "derived",
) -> Union[PeriodComparison, InsufficientData]:
    filters = filters or RecordFilter()
    axis = period_axis(records, filters)
    current = current or filters.period or latest(axis)
    if current is None:
        return InsufficientData("no periods available", required=2, available=0)
    previous = previous_period(axis, current)
    if previous is None:
        return InsufficientData(f"no period before {current!r}", required=2, available=len(axis))

    cur = compute_totals(records, RecordFilter(project=filters.project, period=current), er_method=er_method)
    prev = compute_totals(records, RecordFilter(project=filters.project, period=previous), er_method=er_method)
    return PeriodComparison(
        current_period=current,
        previous_period=previous,
        current=cur,
        previous=prev,
        views_change=pct_change(cur.views, prev.views),
        si_change=pct_change(cur.si, prev.si),
        er_change=pct_change(cur.er, prev.er),
    )


# ---------------- Forecast ----------------
@dataclass(frozen=True)
class Forecast:
    slope: float
    intercept: float
    r_squared: float
    rmse: float
    next_index: int
    next_value: float
    lower: float
    upper: float
    band: float
    periods: Tuple[str, ...] = field(default_factory=tuple)
    historical: Tuple[Tuple[int, float], ...] = field(default_factory=tuple)

    def fitted(self) -> List[Tuple[int, float]]:
        points = [(x, self.slope * x + self.intercept) for x, _ in self.historical]
        points.append((self.next_index, self.next_value))
        return points

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "slope": self.slope,
            "intercept": self.intercept,
            "r_squared": self.r_squared,
            "rmse": self.rmse,
            "next_index": self.next_index,
            "next_value": self.next_value,
            "confidence": {"lower": self.lower, "upper": self.upper, "band_pct": self.band * 100},
            "periods": list(self.periods),
            "historical": [{"x": x, "y": y} for x, y in self.historical],
            "fitted": [{"x": x, "y": y} for x, y in self.fitted()],
        }


def fit_line(xs: Sequence[float], ys: Sequence[float]) -> Tuple[float, float, float, float]:
    """Ordinary least squares; returns (slope, intercept, r_squared, rmse)."""
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    predicted = slope * x + intercept
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1.0 if ss_tot == 0 else 1 - ss_res / ss_tot
    rmse = math.sqrt(ss_res / len(x))
    return float(slope), float(intercept), r_squared, rmse


def forecast_views(
    records: Sequence[Record],
    filters: Optional[RecordFilter] = None,
    *,
    min_periods: int = MIN_FORECAST_PERIODS,
    band: float = FORECAST_BAND,
) -> Union[Forecast, InsufficientData]:
    """Linear trend of total views per period, projected one period ahead."""
    filters = filters or RecordFilter()
    axis = period_axis(records, filters)
    by_period = {g.key: g.views for g in compute_period_breakdown(records, filters)}
    points = [(idx, by_period.get(p, 0.0)) for idx, p in enumerate(axis)]
    points = [(x, y) for x, y in points if y > 0]
    if len(points) < min_periods:
        return InsufficientData(
            f"forecast needs at least {min_periods} periods with views",
            required=min_periods,
            available=len(points),
        )

    slope, intercept, r_squared, rmse = fit_line([x for x, _ in points], [y for _, y in points])
    next_index = len(axis)
    next_value = slope * next_index + intercept
    return Forecast(
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        rmse=rmse,
        next_index=next_index,
        next_value=next_value,
        lower=next_value * (1 - band),
        upper=next_value * (1 + band),
        band=band,
        periods=tuple(axis),
        historical=tuple(points),
    )


# ---------------- Health ----------------
def health_summary(records: Iterable[Record], filters: Optional[RecordFilter] = None) -> Dict[str, Any]:
    rows = apply_filter(records, filters)
    totals = compute_totals(rows)
    return {
        **totals.to_dict(),
        "unique_links": len({r.link for r in rows}),
        "avg_views_per_post": totals.views / max(totals.posts, 1),
        "projects": len({r.project for r in rows}),
    }

