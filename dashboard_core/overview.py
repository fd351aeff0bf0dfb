from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional, Sequence

from dashboard_core.charts import forecast_chart, to_vega_spec, trend_chart
from dashboard_core.errors import InsufficientData
from dashboard_core.filters import RecordFilter, apply_filter
from dashboard_core.metrics import (
    ErMethod,
    compare_periods,
    compute_period_breakdown,
    compute_project_breakdown,
    compute_totals,
    forecast_views,
    health_summary,
    top_projects,
)
from dashboard_core.models import Record
from dashboard_core.periods import display_order


def compute_dashboard(
    records: Sequence[Record],
    projects: Sequence[str],
    filters: Optional[RecordFilter] = None,
    *,
    er_method: ErMethod = "derived",
    top_n: int = 5,
) -> Dict[str, Any]:
    filters = filters or RecordFilter()
    by_period = compute_period_breakdown(records, filters, er_method=er_method)
    comparison = compare_periods(records, filters, er_method=er_method)
    forecast = forecast_views(records, filters)

    charts: Dict[str, Any] = {}
    if by_period:
        charts["views_trend"] = to_vega_spec(trend_chart(by_period, "views"))
        charts["er_trend"] = to_vega_spec(trend_chart(by_period, "er"))
    if not isinstance(forecast, InsufficientData):
        charts["forecast"] = to_vega_spec(forecast_chart(forecast))

    return {
        "filters": asdict(filters),
        "er_method": er_method,
        "projects": list(projects),
        "periods": display_order(r.period for r in records),
        "totals": compute_totals(records, filters, er_method=er_method).to_dict(),
        "health": health_summary(records, filters),
        "by_project": [g.to_dict() for g in compute_project_breakdown(records, filters, er_method=er_method)],
        "by_period": [g.to_dict() for g in by_period],
        "top_projects": [g.to_dict() for g in top_projects(records, filters, limit=top_n, er_method=er_method)],
        "comparison": comparison.to_dict(),
        "forecast": forecast.to_dict(),
        "records": [r.to_dict() for r in apply_filter(records, filters)],
        "charts": charts,
    }
