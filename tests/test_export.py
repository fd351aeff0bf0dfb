from __future__ import annotations

import pytest

from dashboard_core.export import CSV_HEADER, records_from_csv, records_to_csv
from dashboard_core.filters import RecordFilter, apply_filter
from dashboard_core.metrics import compute_totals
from helpers import rec


def test_header_and_line_format() -> None:
    text = records_to_csv([rec(1500, 75, er=0.05, link="https://t.me/c/1", project="Альфа", period="14.07 - 20.07")])
    lines = text.strip().split("\n")
    assert lines[0] == ",".join(CSV_HEADER)
    assert lines[1] == '"https://t.me/c/1",1500,75,5.00,"Альфа","14.07 - 20.07"'


def test_quotes_inside_text_are_escaped() -> None:
    text = records_to_csv([rec(1, 1, link='say "hi"')])
    assert '"say ""hi"""' in text


def test_round_trip_keeps_totals() -> None:
    records = [
        rec(100, 50, er=0.123, project="A", period="07.07 - 13.07"),
        rec(250.5, 12, er=0.04, project="B", period="14.07 - 20.07"),
        rec(300, 0, er=0.0, project="A", period="14.07 - 20.07"),
    ]
    filtered = apply_filter(records, RecordFilter(period="14.07 - 20.07"))
    restored = records_from_csv(records_to_csv(filtered))
    before, after = compute_totals(filtered), compute_totals(restored)
    assert (after.views, after.si) == (before.views, before.si)
    assert [r.er for r in restored] == pytest.approx([0.04, 0.0])
    assert [r.project for r in restored] == ["B", "A"]


def test_missing_columns() -> None:
    with pytest.raises(ValueError):
        records_from_csv("a,b\n1,2\n")
