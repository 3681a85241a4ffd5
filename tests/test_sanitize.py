"""Tests for cell and identifier sanitization."""

from datetime import date, datetime

import pytest

from backend.core.models import ColumnType
from backend.core.sanitize import (
    normalize_for_lookup,
    sanitize_cell,
    sanitize_column_name,
    sanitize_date,
    sanitize_number,
    sanitize_string,
)


class TestSanitizeColumnName:
    def test_strips_disallowed_characters(self):
        assert sanitize_column_name("Row Number") == "RowNumber"
        assert sanitize_column_name("`; DROP TABLE x; --") == "DROPTABLEx"

    def test_truncates_to_64(self):
        assert len(sanitize_column_name("a" * 100)) == 64

    def test_none_and_numbers(self):
        assert sanitize_column_name(None) == ""
        assert sanitize_column_name(2024) == "2024"


class TestSanitizeNumber:
    @pytest.mark.parametrize("raw, expected", [
        ("30", 30.0),
        (" 4.5 ", 4.5),
        ("30kg", 30.0),
        ("-2e3", -2000.0),
        (7, 7.0),
        (1.25, 1.25),
    ])
    def test_parses(self, raw, expected):
        assert sanitize_number(raw) == expected

    @pytest.mark.parametrize("raw", ["thirty", "", None, True, "kg30"])
    def test_unparsable_is_none(self, raw):
        assert sanitize_number(raw) is None


class TestSanitizeDate:
    def test_datetime_cell(self):
        assert sanitize_date(datetime(2024, 3, 1, 12, 30)) == date(2024, 3, 1)

    def test_iso_string(self):
        assert sanitize_date("2024-03-01") == date(2024, 3, 1)

    def test_day_first_string(self):
        assert sanitize_date("25/12/2023") == date(2023, 12, 25)

    def test_excel_serial(self):
        assert sanitize_date(45352) == date(2024, 3, 1)

    def test_garbage_is_none(self):
        assert sanitize_date("next tuesday") is None
        assert sanitize_date("") is None


class TestSanitizeString:
    def test_trims_and_truncates(self):
        assert sanitize_string("  hello  ", 255) == "hello"
        assert sanitize_string("abcdef", 3) == "abc"

    def test_integral_float_renders_as_int(self):
        assert sanitize_string(42.0, 255) == "42"


class TestSanitizeCell:
    def test_dispatch_by_type(self):
        assert sanitize_cell("30", ColumnType.INT, 255) == 30.0
        assert sanitize_cell("1.5", ColumnType.DOUBLE, 255) == 1.5
        assert sanitize_cell("2024-01-02", ColumnType.DATE, 255) == date(2024, 1, 2)
        assert sanitize_cell(" x ", ColumnType.TEXT, 255) == "x"
        assert sanitize_cell(None, ColumnType.TEXT, 255) is None


class TestNormalizeForLookup:
    def test_lowercases_and_trims(self):
        assert normalize_for_lookup(" India ") == "india"

    def test_integral_numbers(self):
        assert normalize_for_lookup(30.0) == "30"
        assert normalize_for_lookup(2.5) == "2.5"

    def test_none_is_empty(self):
        assert normalize_for_lookup(None) == ""

    def test_dates_iso(self):
        assert normalize_for_lookup(date(2024, 1, 2)) == "2024-01-02"
