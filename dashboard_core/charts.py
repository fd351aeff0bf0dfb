from __future__ import annotations

from typing import Any, Dict, List, Literal

import altair as alt
import pandas as pd

from dashboard_core.metrics import Forecast, GroupTotals

alt.data_transformers.disable_max_rows()

TrendMetric = Literal["views", "si", "er", "posts"]

_AXIS_FORMAT = {"views": "~s", "si": "~s", "er": ".2f", "posts": "d"}
_TITLES = {"views": "Просмотры", "si": "СИ", "er": "ЕР, %", "posts": "Посты"}


def period_frame(groups: List[GroupTotals]) -> pd.DataFrame:
    df = pd.DataFrame([g.to_dict() for g in groups], columns=["key", "views", "si", "er", "posts"])
    return df.rename(columns={"key": "period"})


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def trend_chart(groups: List[GroupTotals], metric: TrendMetric = "views") -> alt.Chart:
    df = period_frame(groups)
    hover = alt.selection_point(fields=["period"], on="mouseover", empty="all")
    return (
        alt.Chart(df)
        .mark_line(point={"filled": True, "size": 60})
        .encode(
            x=alt.X("period:N", title="Период", sort=df["period"].tolist(), axis=alt.Axis(grid=False)),
            y=alt.Y(f"{metric}:Q", title=_TITLES[metric], axis=alt.Axis(format=_AXIS_FORMAT[metric], gridDash=[4, 4])),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.4)),
            tooltip=[
                alt.Tooltip("period:N", title="Период"),
                alt.Tooltip(f"{metric}:Q", title=_TITLES[metric], format=_AXIS_FORMAT[metric]),
                alt.Tooltip("posts:Q", title="Посты"),
            ],
        )
        .add_params(hover)
        .properties(height=260)
    )


def forecast_chart(forecast: Forecast) -> alt.LayerChart:
    labels = list(forecast.periods) + ["Прогноз"]
    historical = pd.DataFrame(
        [{"x": x, "label": labels[x], "views": y, "series": "Исторические данные"} for x, y in forecast.historical]
    )
    fitted = pd.DataFrame(
        [{"x": x, "label": labels[x], "views": y, "series": "Прогноз"} for x, y in forecast.fitted()]
    )
    band = fitted.assign(
        lower=fitted["views"] * (1 - forecast.band),
        upper=fitted["views"] * (1 + forecast.band),
    )
    x_axis = alt.X("label:N", title="Период", sort=labels)
    band_layer = alt.Chart(band).mark_area(opacity=0.15).encode(x=x_axis, y="lower:Q", y2="upper:Q")
    lines = (
        alt.Chart(pd.concat([historical, fitted], ignore_index=True))
        .mark_line(point=True)
        .encode(
            x=x_axis,
            y=alt.Y("views:Q", title="Просмотры", axis=alt.Axis(format="~s")),
            color=alt.Color("series:N", title=None),
            strokeDash=alt.StrokeDash("series:N", legend=None),
            tooltip=["label", alt.Tooltip("views:Q", format=",.0f"), "series"],
        )
    )
    return alt.layer(band_layer, lines).properties(height=260)
