from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Literal

import numpy as np
from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from dashboard_api.schemas import DashboardFiltersModel, KpiTargetIn, PeriodStatsResponse
from dashboard_core.config import get_settings
from dashboard_core.data import ParseCache, parse_workbook
from dashboard_core.errors import EmptyWorkbook, SourceUnreadable
from dashboard_core.export import records_to_csv
from dashboard_core.filters import RecordFilter, apply_filter, normalize_filters
from dashboard_core.kpi import JsonFileStorage, KpiBook
from dashboard_core.metrics import compute_totals
from dashboard_core.models import ParseResult
from dashboard_core.overview import compute_dashboard
from dashboard_core.periods import sort_chronological

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Special Projects Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_cache = ParseCache(settings.cache_ttl_seconds)


async def load_dashboard_data(refresh: bool = False) -> ParseResult:
    async def _load() -> ParseResult:
        return await parse_workbook(settings.source, excluded_sheets=settings.excluded_sheets)

    return await _cache.aget(settings.source, _load, bypass=refresh)


@lru_cache(maxsize=1)
def get_kpi_book() -> KpiBook:
    book = KpiBook(JsonFileStorage(settings.kpi_dir))
    book.load()
    return book


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for numpy objects and non-finite floats."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
            },
        )
    )


def _error(exc: Exception, where: str) -> JSONResponse:
    if isinstance(exc, (SourceUnreadable, EmptyWorkbook)):
        logger.error("%s failed: %s", where, exc)
        return JSONResponse(status_code=503, content={"error": str(exc), "type": type(exc).__name__})
    logger.exception("%s failed", where)
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _period_stats(result: ParseResult, f: RecordFilter, er_method: str) -> dict:
    totals = compute_totals(result.records, f, er_method=er_method)  # type: ignore[arg-type]
    return PeriodStatsResponse(views=totals.views, si=totals.si, er=totals.er, posts=totals.posts).model_dump()


@app.get("/api/periods")
async def periods(refresh: bool = Query(default=False)):
    try:
        result = await load_dashboard_data(refresh)
        return _json(sort_chronological(r.period for r in result.records))
    except Exception as exc:
        return _error(exc, "periods")


@app.get("/api/projects")
async def projects(refresh: bool = Query(default=False)):
    try:
        result = await load_dashboard_data(refresh)
        return _json(list(result.projects))
    except Exception as exc:
        return _error(exc, "projects")


@app.get("/api/dashboard/general/{period}")
async def dashboard_general(
    period: str,
    er_method: Literal["derived", "mean"] = Query(default="derived"),
    refresh: bool = Query(default=False),
):
    try:
        result = await load_dashboard_data(refresh)
        return _json(_period_stats(result, RecordFilter(period=period), er_method))
    except Exception as exc:
        return _error(exc, "dashboard_general")


@app.get("/api/dashboard/project/{sheet}/{period}")
async def dashboard_project(
    sheet: str,
    period: str,
    er_method: Literal["derived", "mean"] = Query(default="derived"),
    refresh: bool = Query(default=False),
):
    try:
        result = await load_dashboard_data(refresh)
        return _json(_period_stats(result, RecordFilter(project=sheet, period=period), er_method))
    except Exception as exc:
        return _error(exc, "dashboard_project")


@app.post("/api/dashboard")
async def dashboard(filters: DashboardFiltersModel, refresh: bool = Query(default=False)):
    try:
        result = await load_dashboard_data(refresh)
        f = normalize_filters(filters.model_dump())
        return _json(
            compute_dashboard(result.records, result.projects, f, er_method=filters.er_method, top_n=filters.top_n)
        )
    except Exception as exc:
        return _error(exc, "dashboard")


@app.post("/api/export")
async def export_csv(filters: DashboardFiltersModel):
    try:
        result = await load_dashboard_data()
        rows = apply_filter(result.records, normalize_filters(filters.model_dump()))
        return Response(
            content=records_to_csv(rows).encode("utf-8"),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": "attachment; filename=export.csv"},
        )
    except Exception as exc:
        return _error(exc, "export")


@app.get("/api/kpi")
def kpi_export(book: KpiBook = Depends(get_kpi_book)):
    return Response(content=book.export_json(), media_type="application/json")


@app.put("/api/kpi")
async def kpi_import(request: Request, book: KpiBook = Depends(get_kpi_book)):
    payload = (await request.body()).decode("utf-8")
    if not book.import_json(payload):
        return JSONResponse(status_code=400, content={"error": "invalid KPI data", "type": "ValidationError"})
    return {"kpis": len(book.kpis), "progress": len(book.progress)}


@app.post("/api/kpi/targets")
def kpi_add_target(target: KpiTargetIn, book: KpiBook = Depends(get_kpi_book)):
    kpi = book.add_target(
        target.project,
        target.period,
        views=target.target_views,
        si=target.target_si,
        er=target.target_er,
    )
    return _json(kpi.model_dump())


@app.get("/api/kpi/progress/{project}/{period}")
def kpi_progress(project: str, period: str, book: KpiBook = Depends(get_kpi_book)):
    """Last recorded progress; read-only."""
    progress = book.progress_for(project, period)
    return _json(
        {
            "progress": progress.model_dump() if progress is not None else None,
            "progress_pct": book.progress_percentage(project, period),
        }
    )


@app.post("/api/kpi/progress/{project}/{period}")
async def kpi_record_progress(project: str, period: str, book: KpiBook = Depends(get_kpi_book)):
    """Recompute totals from the workbook and store them as current progress."""
    try:
        result = await load_dashboard_data()
        totals = compute_totals(result.records, RecordFilter(project=project, period=period))
        book.update_progress(project, period, totals)
        return _json({"current": totals.to_dict(), "progress_pct": book.progress_percentage(project, period)})
    except Exception as exc:
        return _error(exc, "kpi_progress")
