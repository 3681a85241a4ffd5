"""Spreadsheet artifact I/O — reads and writes .xlsx files with openpyxl.

Rows are returned as plain lists of cell values from the first sheet. Trailing
empty cells are dropped so that a row's length reflects its populated width,
and trailing empty rows at the bottom of the sheet are ignored.
"""

import logging
import os
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import openpyxl

logger = logging.getLogger(__name__)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _trim_row(values: Sequence[Any]) -> list[Any]:
    """Drop trailing empty cells from a row."""
    end = len(values)
    while end > 0 and _is_blank(values[end - 1]):
        end -= 1
    return list(values[:end])


def read_rows(file_path: Path) -> list[list[Any]]:
    """Read every row of the first worksheet as a list of cell values."""
    wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    try:
        if not wb.worksheets:
            return []
        ws = wb.worksheets[0]
        rows = [_trim_row(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()

    while rows and not rows[-1]:
        rows.pop()
    return rows


def write_workbook(
    file_path: Path,
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
    sheet_title: str = "Sheet1",
) -> Path:
    """Write headers plus rows into a new single-sheet workbook."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title
    ws.append(list(headers))
    for row in rows:
        ws.append(list(row))
    file_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(file_path)
    wb.close()
    return file_path


def modified_time(file_path: Path) -> Optional[int]:
    """Return the file's modification time in nanoseconds, or None if absent."""
    try:
        return os.stat(file_path).st_mtime_ns
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.error(f"Failed to stat {file_path}: {e}")
        return None
