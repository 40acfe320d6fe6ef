"""
Integration Tests - Seed command
"""
from pathlib import Path

import pytest
from sqlalchemy import func, select

from src.database.models import Sale
from src.ingestion import seed_db
from src.ingestion.sales_loader import LoadStatus


class TestResolveCsvPath:
    """Tests for CSV path resolution"""

    def test_relative_path_is_under_project_root(self):
        assert seed_db.resolve_csv_path("data/sales.csv") == seed_db.PROJECT_ROOT / "data" / "sales.csv"

    def test_absolute_path_is_kept(self, tmp_path):
        path = tmp_path / "export.csv"

        assert seed_db.resolve_csv_path(str(path)) == path

    def test_default_comes_from_settings(self):
        expected = Path(seed_db.settings.ingestion.csv_path)

        assert seed_db.resolve_csv_path().parts[-len(expected.parts):] == expected.parts


class TestSeedSales:
    """Tests for the seed command"""

    async def test_creates_schema_and_loads(self, tmp_path, database_url, write_sales_csv, sale_row, test_engine):
        path = write_sales_csv([sale_row() for _ in range(12)])

        result = await seed_db.seed_sales(path, url=database_url)

        assert result.status == LoadStatus.COMPLETED
        async with test_engine.connect() as conn:
            count = (await conn.execute(select(func.count(Sale.id)))).scalar_one()
        assert count == 12

    async def test_missing_file_returns_none(self, monkeypatch, tmp_path):
        monkeypatch.setattr(seed_db, "resolve_csv_path", lambda csv_path=None: tmp_path / "missing.csv")

        assert await seed_db.main() is None

    def test_run_exits_nonzero_on_failure(self, monkeypatch):
        async def broken_main():
            raise ConnectionError("database unreachable")

        monkeypatch.setattr(seed_db, "configure_logging", lambda: None)
        monkeypatch.setattr(seed_db, "main", broken_main)

        with pytest.raises(SystemExit) as excinfo:
            seed_db.run()

        assert excinfo.value.code == 1

    def test_run_succeeds_when_file_missing(self, monkeypatch, tmp_path):
        monkeypatch.setattr(seed_db, "configure_logging", lambda: None)
        monkeypatch.setattr(seed_db, "resolve_csv_path", lambda csv_path=None: tmp_path / "missing.csv")

        seed_db.run()
