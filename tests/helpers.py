from __future__ import annotations

from io import BytesIO
from typing import Iterable, List, Optional, Sequence

from openpyxl import Workbook

from dashboard_core.models import Record

HEADER = ["Ссылка", "Просмотры", "СИ", "ЕР"]


def build_workbook(sheets: Sequence[tuple]) -> Workbook:
    """sheets: (name, rows) pairs; rows are lists written from row 1."""
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets:
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(list(row))
    return wb


def workbook_bytes(sheets: Sequence[tuple]) -> bytes:
    buf = BytesIO()
    build_workbook(sheets).save(buf)
    return buf.getvalue()


def rec(
    views: float,
    si: float,
    *,
    project: str = "A",
    period: str = "14.07 - 20.07",
    er: float = 0.0,
    link: Optional[str] = None,
) -> Record:
    return Record(
        link=link or f"https://t.me/{project}/{period}/{views}",
        views=views,
        si=si,
        er=er,
        project=project,
        period=period,
    )


def period_records(totals: Iterable[float], labels: List[str], *, project: str = "A") -> List[Record]:
    return [rec(v, v / 10, project=project, period=p) for v, p in zip(totals, labels)]


