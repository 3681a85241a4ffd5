"""Shared test fixtures for the SheetIntake test suite."""

from pathlib import Path
from typing import Any, Optional

import openpyxl
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from backend.core.storage import SqlStorage
from backend.core.template_store import TemplateStore
from backend.core.validation_cache import ValidationCache


def write_workbook(path: Path, rows: list[list[Any]], sheet_name: str = "Sheet1") -> Path:
    """Create an .xlsx file with the given rows. First row is the header."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_name
    for row in rows:
        ws.append(row)
    wb.save(path)
    wb.close()
    return path


# Name:TEXT, Age:INT, Country:TEXT restricted to india / usa
TEMPLATE_ROWS = [
    ["Name", "Age", "Country"],
    ["TEXT", "INT", "TEXT"],
    [None, None, "India, USA"],
]


@pytest.fixture
def template_path(tmp_path) -> Path:
    return write_workbook(tmp_path / "template.xlsx", TEMPLATE_ROWS)


@pytest.fixture
def template_store(template_path) -> TemplateStore:
    return TemplateStore(template_path, reserved_names={"Error", "RowNumber"})


@pytest.fixture
def validation_cache(template_path) -> ValidationCache:
    return ValidationCache(template_path)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield eng
    eng.dispose()


@pytest.fixture
def storage(engine) -> SqlStorage:
    return SqlStorage(engine, "uploaded_data")


def make_upload(tmp_path: Path, rows: list[list[Any]], name: Optional[str] = None) -> Path:
    """Write an upload workbook into tmp_path."""
    return write_workbook(tmp_path / (name or "upload.xlsx"), rows)
