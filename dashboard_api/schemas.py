from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class DashboardFiltersModel(BaseModel):
    project: Optional[str] = None
    period: Optional[str] = None
    er_method: Literal["derived", "mean"] = "derived"
    top_n: int = Field(default=5, ge=1, le=100)


class PeriodStatsResponse(BaseModel):
    views: float
    si: float
    er: float
    posts: int


class KpiTargetIn(BaseModel):
    project: str
    period: str
    target_views: float = 0.0
    target_si: float = 0.0
    target_er: float = 0.0
