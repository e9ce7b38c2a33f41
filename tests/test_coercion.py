"""Tests for tolerant field coercion – pure functions, no database required."""

from datetime import date, datetime

import pytest

from ingestion.etl.coercion import (
    clean_text,
    parse_date,
    parse_datetime,
    parse_enum,
    parse_int,
)
from ingestion.models.patient import Gender, RecordStatus


@pytest.mark.parametrize("raw", ["2024-01-15", "01/15/2024", "15-01-2024", " 2024-01-15 "])
def test_all_date_formats_yield_same_day(raw):
    assert parse_date(raw) == date(2024, 1, 15)


@pytest.mark.parametrize("raw", ["not-a-date", "2024-13-45", "15/01/2024", "", "   ", None])
def test_unparseable_date_is_absent(raw):
    assert parse_date(raw) is None


def test_unparseable_date_logs_warning(caplog):
    with caplog.at_level("WARNING"):
        assert parse_date("not-a-date") is None
    assert "Unable to parse date" in caplog.text


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-03-01T09:30:00", datetime(2024, 3, 1, 9, 30)),
        ("2024-03-01T09:30", datetime(2024, 3, 1, 9, 30)),
        ("2024-03-01 09:30:00", datetime(2024, 3, 1, 9, 30)),
        ("03/01/2024 09:30", datetime(2024, 3, 1, 9, 30)),
        ("03/01/2024", datetime(2024, 3, 1)),
        ("2024-03-01", datetime(2024, 3, 1)),
        ("01-03-2024", datetime(2024, 3, 1)),
        ("2024-01-15T10:30:00.123", datetime(2024, 1, 15, 10, 30, 0, 123000)),
        ("2024-01-15T10:30:00.123456", datetime(2024, 1, 15, 10, 30, 0, 123456)),
        ("2024-01-15 10:30:00.500", datetime(2024, 1, 15, 10, 30, 0, 500000)),
    ],
)
def test_datetime_formats(raw, expected):
    assert parse_datetime(raw) == expected


def test_unparseable_datetime_is_absent():
    assert parse_datetime("yesterday") is None


def test_datetime_with_offset_is_absent():
    """Only local date-times are accepted."""
    assert parse_datetime("2024-01-15T10:30:00+02:00") is None


@pytest.mark.parametrize("raw", ["male", "MALE", " Male "])
def test_enum_ignores_case_and_whitespace(raw):
    assert parse_enum(raw, Gender) is Gender.MALE


def test_unknown_enum_is_absent():
    assert parse_enum("unknown", Gender) is None
    assert parse_enum("", RecordStatus) is None


def test_enum_member_passes_through():
    assert parse_enum(RecordStatus.ARCHIVED, RecordStatus) is RecordStatus.ARCHIVED


@pytest.mark.parametrize(
    "raw, expected",
    [("42", 42), (" 7 ", 7), (12, 12), (3.0, 3), ("abc", None), ("4.5", None), (2.5, None), (True, None), ("", None)],
)
def test_parse_int(raw, expected):
    assert parse_int(raw) == expected


def test_clean_text():
    assert clean_text("  Jane ") == "Jane"
    assert clean_text("   ") is None
    assert clean_text(5551234) == "5551234"
