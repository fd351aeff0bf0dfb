"""
dashboard_core/kpi.py

KPI targets and progress snapshots per (project, period).

Storage is injected: anything with ``load(key)`` / ``save(key, value)``
works, so the book itself holds no global state.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError

from dashboard_core.metrics import Totals

logger = logging.getLogger(__name__)

KPI_KEY = "kpi-data"
PROGRESS_KEY = "kpi-progress"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


class KpiTarget(BaseModel):
    id: str = Field(default_factory=_new_id)
    project: str
    period: str
    target_views: float = 0.0
    target_si: float = 0.0
    target_er: float = 0.0
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)


class Progress(BaseModel):
    id: str = Field(default_factory=_new_id)
    project: str
    period: str
    current_views: float = 0.0
    current_si: float = 0.0
    current_er: float = 0.0
    last_updated: str = Field(default_factory=_now)


class KpiSnapshot(BaseModel):
    kpis: List[KpiTarget]
    progress: List[Progress]
    export_date: str = Field(default_factory=_now)


class KpiStorage(Protocol):
    def load(self, key: str) -> Optional[Any]: ...

    def save(self, key: str, value: Any) -> None: ...


class MemoryStorage:
    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def load(self, key: str) -> Optional[Any]:
        raw = self._items.get(key)
        return json.loads(raw) if raw is not None else None

    def save(self, key: str, value: Any) -> None:
        self._items[key] = json.dumps(value, ensure_ascii=False)


class JsonFileStorage:
    """One ``<key>.json`` file per key inside ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def save(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8")


def _ratio_pct(current: float, target: float) -> float:
    if target <= 0:
        return 0.0
    return current / target * 100


class KpiBook:
    def __init__(self, storage: KpiStorage) -> None:
        self.storage = storage
        self.kpis: List[KpiTarget] = []
        self.progress: List[Progress] = []

    # ---- targets ----
    def add_target(self, project: str, period: str, *, views: float = 0.0, si: float = 0.0, er: float = 0.0) -> KpiTarget:
        kpi = KpiTarget(project=project, period=period, target_views=views, target_si=si, target_er=er)
        self.kpis.append(kpi)
        self.sync()
        return kpi

    def update_target(self, kpi_id: str, **updates: Any) -> Optional[KpiTarget]:
        for idx, kpi in enumerate(self.kpis):
            if kpi.id == kpi_id:
                updated = kpi.model_copy(update={**updates, "updated_at": _now()})
                self.kpis[idx] = updated
                self.sync()
                return updated
        return None

    def delete_target(self, kpi_id: str) -> bool:
        before = len(self.kpis)
        self.kpis = [k for k in self.kpis if k.id != kpi_id]
        if len(self.kpis) == before:
            return False
        self.sync()
        return True

    def target_for(self, project: str, period: str) -> Optional[KpiTarget]:
        return next((k for k in self.kpis if k.project == project and k.period == period), None)

    # ---- progress ----
    def progress_for(self, project: str, period: str) -> Optional[Progress]:
        return next((p for p in self.progress if p.project == project and p.period == period), None)

    def update_progress(self, project: str, period: str, totals: Totals) -> Progress:
        values = {"current_views": totals.views, "current_si": totals.si, "current_er": totals.er}
        existing = self.progress_for(project, period)
        if existing is not None:
            updated = existing.model_copy(update={**values, "last_updated": _now()})
            self.progress = [updated if p.id == existing.id else p for p in self.progress]
        else:
            updated = Progress(project=project, period=period, **values)
            self.progress.append(updated)
        self.storage.save(PROGRESS_KEY, [p.model_dump() for p in self.progress])
        return updated

    def progress_percentage(self, project: str, period: str) -> Dict[str, float]:
        kpi = self.target_for(project, period)
        progress = self.progress_for(project, period)
        if kpi is None or progress is None:
            return {"views": 0.0, "si": 0.0, "er": 0.0}
        return {
            "views": _ratio_pct(progress.current_views, kpi.target_views),
            "si": _ratio_pct(progress.current_si, kpi.target_si),
            "er": _ratio_pct(progress.current_er, kpi.target_er),
        }

    # ---- persistence ----
    def sync(self) -> None:
        self.storage.save(KPI_KEY, [k.model_dump() for k in self.kpis])
        self.storage.save(PROGRESS_KEY, [p.model_dump() for p in self.progress])

    def load(self) -> None:
        try:
            kpis = self.storage.load(KPI_KEY)
            progress = self.storage.load(PROGRESS_KEY)
            if kpis is not None:
                self.kpis = [KpiTarget.model_validate(k) for k in kpis]
            if progress is not None:
                self.progress = [Progress.model_validate(p) for p in progress]
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Failed to load KPI data: %s", exc)

    def export_json(self) -> str:
        return KpiSnapshot(kpis=self.kpis, progress=self.progress).model_dump_json()

    def import_json(self, text: str) -> bool:
        try:
            snapshot = KpiSnapshot.model_validate_json(text)
        except ValidationError as exc:
            logger.warning("Failed to import KPI data: %s", exc)
            return False
        self.kpis = list(snapshot.kpis)
        self.progress = list(snapshot.progress)
        self.sync()
        return True
