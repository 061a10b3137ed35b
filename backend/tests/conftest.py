"""Shared pytest fixtures for the import backend."""

import io

import pytest
from openpyxl import Workbook


@pytest.fixture
def make_xlsx():
    """Build an in-memory .xlsx from {sheet_name: [row, ...]}."""

    def _make(sheets):
        wb = Workbook()
        wb.remove(wb.active)
        for name, rows in sheets.items():
            ws = wb.create_sheet(title=name)
            for row in rows:
                ws.append(list(row))
        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()

    return _make


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient backed by a throwaway SQLite database."""
    from fastapi.testclient import TestClient

    from src.api import db
    from src.api.main import app

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'import.db'}")
    db.reset_engine()
    with TestClient(app) as c:
        yield c
    db.reset_engine()
