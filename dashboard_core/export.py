from __future__ import annotations

from io import StringIO
from typing import Iterable, List

import pandas as pd

from dashboard_core.cells import to_number
from dashboard_core.models import UNSPECIFIED_PERIOD, Record

CSV_HEADER = ["Ссылка", "Просмотры", "СИ", "ЕР", "Спецпроект", "Период"]


def _quote(value: str) -> str:
    return '"' + str(value).replace('"', '""') + '"'


def _number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return format(value, ".15g")


def record_to_csv_line(record: Record) -> str:
    return ",".join(
        [
            _quote(record.link),
            _number(record.views),
            _number(record.si),
            f"{record.er * 100:.2f}",
            _quote(record.project),
            _quote(record.period),
        ]
    )


def records_to_csv(records: Iterable[Record]) -> str:
    """CSV with ER as a percentage fixed to two decimals and quoted text fields."""
    lines = [",".join(CSV_HEADER)]
    lines.extend(record_to_csv_line(r) for r in records)
    return "\n".join(lines) + "\n"


def records_from_csv(text: str) -> List[Record]:
    """Read an export back; ER is divided by 100 again."""
    df = pd.read_csv(StringIO(text), dtype=str, keep_default_na=False)
    missing = [c for c in CSV_HEADER if c not in df.columns]
    if missing:
        raise ValueError(f"CSV is missing columns: {missing}")
    return [
        Record(
            link=row["Ссылка"],
            views=to_number(row["Просмотры"]),
            si=to_number(row["СИ"]),
            er=to_number(row["ЕР"]) / 100,
            project=row["Спецпроект"],
            period=row["Период"] or UNSPECIFIED_PERIOD,
        )
        for row in df.to_dict(orient="records")
    ]
