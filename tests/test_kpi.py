from __future__ import annotations

import json

import pytest

from dashboard_core.kpi import KPI_KEY, JsonFileStorage, KpiBook, MemoryStorage
from dashboard_core.metrics import Totals

PERIOD = "14.07 - 20.07"


@pytest.fixture()
def book() -> KpiBook:
    return KpiBook(MemoryStorage())


class TestTargets:
    def test_add_and_lookup(self, book: KpiBook) -> None:
        kpi = book.add_target("A", PERIOD, views=1000, si=100, er=10)
        assert book.target_for("A", PERIOD) == kpi
        assert book.target_for("A", "other") is None

    def test_update_and_delete(self, book: KpiBook) -> None:
        kpi = book.add_target("A", PERIOD, views=1000)
        updated = book.update_target(kpi.id, target_views=2000)
        assert updated is not None and updated.target_views == 2000
        assert book.update_target("missing", target_views=1) is None
        assert book.delete_target(kpi.id) is True
        assert book.delete_target(kpi.id) is False


class TestProgress:
    def test_percentage(self, book: KpiBook) -> None:
        book.add_target("A", PERIOD, views=1000, si=0, er=5)
        book.update_progress("A", PERIOD, Totals(views=500, si=20, er=2.5, posts=3))
        assert book.progress_percentage("A", PERIOD) == {"views": 50.0, "si": 0.0, "er": 50.0}

    def test_missing_target_or_progress(self, book: KpiBook) -> None:
        assert book.progress_percentage("A", PERIOD) == {"views": 0.0, "si": 0.0, "er": 0.0}

    def test_update_replaces_existing_snapshot(self, book: KpiBook) -> None:
        first = book.update_progress("A", PERIOD, Totals(views=1))
        second = book.update_progress("A", PERIOD, Totals(views=2))
        assert first.id == second.id
        assert len(book.progress) == 1
        assert book.progress_for("A", PERIOD).current_views == 2


class TestPersistence:
    def test_export_import_round_trip(self, book: KpiBook) -> None:
        book.add_target("A", PERIOD, views=10)
        book.update_progress("A", PERIOD, Totals(views=5))
        other = KpiBook(MemoryStorage())
        assert other.import_json(book.export_json()) is True
        assert other.kpis == book.kpis
        assert other.progress == book.progress

    def test_import_rejects_garbage(self, book: KpiBook) -> None:
        assert book.import_json("{not json") is False
        assert book.import_json(json.dumps({"kpis": []})) is False

    def test_file_storage(self, tmp_path) -> None:
        storage = JsonFileStorage(tmp_path / "kpi")
        book = KpiBook(storage)
        book.add_target("A", PERIOD, views=10)
        assert (tmp_path / "kpi" / f"{KPI_KEY}.json").exists()

        reloaded = KpiBook(storage)
        reloaded.load()
        assert reloaded.target_for("A", PERIOD) is not None
