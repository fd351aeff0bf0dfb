"""
dashboard_core/config.py

Environment-driven settings for the dashboard.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Tuple

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_SOURCE = ROOT_DIR / "спецпроекты.xlsx"
DEFAULT_CACHE_TTL_SECONDS = 60 * 60 * 12
DEFAULT_EXCLUDED_SHEETS: Tuple[str, ...] = ("цифоры и нужное",)


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}.") from exc
    if value < 0:
        raise RuntimeError(f"{name} must not be negative, got {raw!r}.")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings read from DASHBOARD_* environment variables.
    """

    source: str
    cache_ttl_seconds: float
    excluded_sheets: Tuple[str, ...]
    kpi_dir: Path
    cors_origins: Tuple[str, ...]
    log_level: str


def load_settings() -> Settings:
    excluded = os.getenv("DASHBOARD_EXCLUDED_SHEETS")
    origins = os.getenv("DASHBOARD_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    return Settings(
        source=os.getenv("DASHBOARD_SOURCE") or str(DEFAULT_SOURCE),
        cache_ttl_seconds=_read_float("DASHBOARD_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS),
        excluded_sheets=_split_csv(excluded) if excluded is not None else DEFAULT_EXCLUDED_SHEETS,
        kpi_dir=Path(os.getenv("DASHBOARD_KPI_DIR") or (ROOT_DIR / ".kpi")),
        cors_origins=_split_csv(origins),
        log_level=(os.getenv("DASHBOARD_LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
