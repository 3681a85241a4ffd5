"""Tests for spreadsheet artifact I/O."""

import openpyxl

from backend.core.workbook import modified_time, read_rows, write_workbook
from tests.conftest import write_workbook as create_test_workbook


class TestReadRows:
    def test_reads_first_sheet_only(self, tmp_path):
        path = tmp_path / "multi.xlsx"
        wb = openpyxl.Workbook()
        wb.active.append(["A", "B"])
        other = wb.create_sheet("Other")
        other.append(["X"])
        wb.save(path)
        wb.close()
        assert read_rows(path) == [["A", "B"]]

    def test_trailing_empty_cells_trimmed(self, tmp_path):
        path = create_test_workbook(tmp_path / "t.xlsx", [["A", "B", "C"], ["x", None, None]])
        assert read_rows(path) == [["A", "B", "C"], ["x"]]

    def test_interior_gaps_kept(self, tmp_path):
        path = create_test_workbook(tmp_path / "t.xlsx", [["A", "B", "C"], [None, "y", "z"]])
        assert read_rows(path)[1] == [None, "y", "z"]

    def test_trailing_empty_rows_dropped(self, tmp_path):
        path = create_test_workbook(tmp_path / "t.xlsx", [["A"], ["x"], [None], ["  "]])
        assert read_rows(path) == [["A"], ["x"]]


class TestWriteWorkbook:
    def test_writes_headers_and_rows(self, tmp_path):
        path = write_workbook(tmp_path / "out" / "r.xlsx", ["A", "B"], [[1, "x"], [2, None]], "Errors")
        wb = openpyxl.load_workbook(path)
        assert wb.sheetnames == ["Errors"]
        assert [list(r) for r in wb["Errors"].iter_rows(values_only=True)] == [
            ["A", "B"], [1, "x"], [2, None],
        ]
        wb.close()


class TestModifiedTime:
    def test_absent_file(self, tmp_path):
        assert modified_time(tmp_path / "nope.xlsx") is None

    def test_present_file(self, tmp_path):
        path = create_test_workbook(tmp_path / "t.xlsx", [["A"]])
        assert isinstance(modified_time(path), int)
