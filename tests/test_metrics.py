"""
tests/test_metrics.py

Aggregation engine: totals, breakdowns, comparison and forecast.

All tests are pure Python over hand-built records.
"""

from __future__ import annotations

import pytest

from dashboard_core.errors import InsufficientData
from dashboard_core.filters import RecordFilter, apply_filter, normalize_filters
from dashboard_core.metrics import (
    Forecast,
    PeriodComparison,
    compare_periods,
    compute_period_breakdown,
    compute_project_breakdown,
    compute_totals,
    derived_er,
    fit_line,
    forecast_views,
    health_summary,
    mean_er,
    pct_change,
    top_projects,
)
from dashboard_core.models import UNSPECIFIED_PERIOD
from helpers import period_records, rec

P1, P2, P3, P4 = "02.06 - 08.06", "09.06 - 15.06", "16.06 - 22.06", "23.06 - 29.06"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class TestFilters:
    def test_empty_values_match_all(self) -> None:
        f = normalize_filters({"project": "", "period": None})
        assert f == RecordFilter()

    def test_sheet_names_like_all_are_real_filters(self) -> None:
        f = normalize_filters({"project": "All", "period": " None "})
        assert f == RecordFilter(project="All", period="None")
        records = [rec(1, 1, project="All", period=P1), rec(2, 1, project="B", period=P1)]
        assert len(apply_filter(records, RecordFilter(project="All"))) == 1

    def test_apply(self) -> None:
        records = [rec(1, 1, project="A", period=P1), rec(2, 1, project="B", period=P1), rec(3, 1, project="A", period=P2)]
        assert len(apply_filter(records, RecordFilter(project="A"))) == 2
        assert len(apply_filter(records, RecordFilter(project="A", period=P2))) == 1
        assert len(apply_filter(records, None)) == 3


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


class TestTotals:
    def test_unfiltered_totals(self) -> None:
        records = [rec(100, 50, project="A", period="P1"), rec(200, 100, project="B", period="P1")]
        totals = compute_totals(records)
        assert totals.views == 300
        assert totals.si == 150
        assert totals.er == pytest.approx(50.0)
        assert totals.posts == 2

    def test_er_methods_disagree_and_stay_separate(self) -> None:
        records = [rec(100, 10, er=0.5), rec(900, 10, er=0.1)]
        assert compute_totals(records, er_method="derived").er == pytest.approx(2.0)
        assert compute_totals(records, er_method="mean").er == pytest.approx(30.0)

    def test_zero_views(self) -> None:
        assert derived_er(0, 10) == 0.0
        assert mean_er([]) == 0.0
        assert compute_totals([]).er == 0.0

    def test_unknown_er_method(self) -> None:
        with pytest.raises(ValueError):
            compute_totals([rec(1, 1)], er_method="median")  # type: ignore[arg-type]

    def test_pct_change(self) -> None:
        assert pct_change(150, 100) == pytest.approx(50.0)
        assert pct_change(50, 100) == pytest.approx(-50.0)
        assert pct_change(10, 0) == 0.0


# ---------------------------------------------------------------------------
# Breakdowns
# ---------------------------------------------------------------------------


class TestBreakdowns:
    def test_project_breakdown_keeps_first_appearance_order(self) -> None:
        records = [rec(10, 1, project="B"), rec(20, 4, project="A"), rec(30, 2, project="B")]
        groups = compute_project_breakdown(records)
        assert [g.key for g in groups] == ["B", "A"]
        assert (groups[0].views, groups[0].si, groups[0].posts) == (40, 3, 2)
        assert groups[1].er == pytest.approx(20.0)

    def test_period_breakdown_ignores_period_filter(self) -> None:
        records = [rec(10, 1, period=P2), rec(20, 1, period=P1), rec(5, 1, project="B", period=P3)]
        groups = compute_period_breakdown(records, RecordFilter(project="A", period=P1))
        assert [g.key for g in groups] == [P1, P2]

    def test_unspecified_period_sorts_last(self) -> None:
        records = [rec(1, 1, period=UNSPECIFIED_PERIOD), rec(1, 1, period=P1)]
        assert [g.key for g in compute_period_breakdown(records)] == [P1, UNSPECIFIED_PERIOD]

    def test_top_projects(self) -> None:
        records = [rec(10, 1, project="A"), rec(30, 1, project="B"), rec(20, 1, project="C")]
        assert [g.key for g in top_projects(records, limit=2)] == ["B", "C"]
        assert top_projects([]) == []

    def test_health_summary(self) -> None:
        records = [rec(100, 10, link="x"), rec(300, 10, link="x", project="B")]
        health = health_summary(records)
        assert health["unique_links"] == 1
        assert health["avg_views_per_post"] == pytest.approx(200.0)
        assert health["projects"] == 2


# ---------------------------------------------------------------------------
# Period comparison
# ---------------------------------------------------------------------------


class TestComparePeriods:
    def test_latest_against_previous(self) -> None:
        records = period_records([100, 150], [P1, P2])
        result = compare_periods(records)
        assert isinstance(result, PeriodComparison)
        assert (result.current_period, result.previous_period) == (P2, P1)
        assert result.views_change == pytest.approx(50.0)
        assert result.to_dict()["changes"]["si"] == pytest.approx(50.0)

    def test_previous_is_neighbour_in_sort_order(self) -> None:
        records = period_records([100, 200, 400], [P1, P2, P4])
        result = compare_periods(records, current=P4)
        assert result.previous_period == P2

    def test_single_period_is_insufficient(self) -> None:
        result = compare_periods(period_records([100], [P1]))
        assert isinstance(result, InsufficientData)
        assert result.to_dict()["status"] == "insufficient_data"

    def test_no_records(self) -> None:
        assert isinstance(compare_periods([]), InsufficientData)


# ---------------------------------------------------------------------------
# Forecast
# ---------------------------------------------------------------------------


class TestForecast:
    def test_two_periods_is_insufficient(self) -> None:
        result = forecast_views(period_records([100, 150], [P1, P2]))
        assert isinstance(result, InsufficientData)
        assert result.required == 3
        assert result.available == 2

    def test_linear_series(self) -> None:
        result = forecast_views(period_records([100, 150, 200], [P1, P2, P3]))
        assert isinstance(result, Forecast)
        assert result.next_value == pytest.approx(250.0)
        assert result.r_squared == pytest.approx(1.0)
        assert result.slope == pytest.approx(50.0)
        assert result.lower == pytest.approx(212.5)
        assert result.upper == pytest.approx(287.5)

    def test_zero_view_periods_do_not_count(self) -> None:
        records = period_records([100, 0, 200], [P1, P2, P3])
        assert isinstance(forecast_views(records), InsufficientData)

    def test_project_filter(self) -> None:
        records = period_records([100, 150, 200], [P1, P2, P3]) + period_records([5], [P1], project="B")
        assert isinstance(forecast_views(records, RecordFilter(project="B")), InsufficientData)
        assert isinstance(forecast_views(records, RecordFilter(project="A")), Forecast)

    def test_flat_series_has_perfect_fit(self) -> None:
        slope, intercept, r2, rmse = fit_line([0, 1, 2], [10, 10, 10])
        assert slope == pytest.approx(0.0, abs=1e-9)
        assert intercept == pytest.approx(10.0)
        assert r2 == 1.0
        assert rmse == pytest.approx(0.0, abs=1e-9)

    def test_to_dict(self) -> None:
        payload = forecast_views(period_records([100, 150, 200], [P1, P2, P3])).to_dict()
        assert payload["status"] == "ok"
        assert payload["confidence"]["band_pct"] == pytest.approx(15.0)
        assert len(payload["fitted"]) == 4
