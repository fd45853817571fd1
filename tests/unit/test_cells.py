from __future__ import annotations

from datetime import date, datetime, timedelta

import numpy as np
import pandas as pd
import pytest

from shopfloor_import.excel.cells import (
    EXCEL_EPOCH,
    column_letter,
    date_key,
    is_blank,
    normalize_cell,
    parse_date,
    parse_number,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.234,56", 1234.56),
        ("12,5", 12.5),
        (" 7 ", 7.0),
        ("1 234,5", 1234.5),
        ("-3,25", -3.25),
        (7, 7),
        (2.5, 2.5),
    ],
)
def test_parse_number_german_notation(raw, expected):
    assert parse_number(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["abc", "", "   ", None, "1,2,3", "nan", "inf", True, "."])
def test_parse_number_rejects(raw):
    assert parse_number(raw) is None


def test_parse_number_keeps_raw_int_type():
    assert parse_number(7) == 7
    assert isinstance(parse_number(7), int)


def test_parse_number_nan_float_is_none():
    assert parse_number(float("nan")) is None


def test_parse_date_german_format_matches_parts():
    parsed = parse_date("05.03.2024")
    assert (parsed.year, parsed.month - 1, parsed.day) == (2024, 2, 5)


def test_parse_date_excel_serial_uses_1899_epoch():
    expected = datetime(1899, 12, 30) + timedelta(days=45000)
    assert parse_date(45000) == expected
    assert expected.date() == date(2023, 3, 15)


def test_parse_date_fractional_serial_keeps_time():
    parsed = parse_date(45000.5)
    assert parsed == EXCEL_EPOCH + timedelta(days=45000.5)
    assert parsed.hour == 12


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-01-15", datetime(2024, 1, 15)),
        ("15/01/2024", datetime(2024, 1, 15)),
        ("1.2.2024", datetime(2024, 2, 1)),
        (" 15.01.2024 ", datetime(2024, 1, 15)),
    ],
)
def test_parse_date_patterns(raw, expected):
    assert parse_date(raw) == expected


def test_parse_date_native_values_pass_through():
    dt = datetime(2024, 1, 15, 8, 30)
    assert parse_date(dt) is dt
    assert parse_date(date(2024, 1, 15)) == datetime(2024, 1, 15)
    assert parse_date(pd.Timestamp("2024-01-15")) == datetime(2024, 1, 15)


def test_parse_date_generic_fallback():
    assert parse_date("2024-01-15T10:00:00") == datetime(2024, 1, 15, 10, 0)


@pytest.mark.parametrize("raw", [None, "", "kein Datum", "31.02.2024", True, float("nan"), "now", "today", "Today"])
def test_parse_date_invalid_is_none(raw):
    assert parse_date(raw) is None


@pytest.mark.parametrize("index, letter", [(0, "A"), (25, "Z"), (26, "AA"), (51, "AZ"), (52, "BA"), (701, "ZZ"), (702, "AAA")])
def test_column_letter(index, letter):
    assert column_letter(index) == letter


def test_column_letter_negative_raises():
    with pytest.raises(ValueError):
        column_letter(-1)


def test_date_key_drops_time():
    assert date_key(datetime(2024, 1, 15, 23, 59)) == "2024-01-15"
    assert date_key(date(2024, 1, 15)) == "2024-01-15"


def test_is_blank():
    assert is_blank(None)
    assert is_blank("")
    assert not is_blank(" ")
    assert not is_blank(0)


def test_normalize_cell():
    assert normalize_cell(np.float64("nan")) is None
    assert normalize_cell(np.int64(3)) == 3
    assert isinstance(normalize_cell(np.int64(3)), int)
    assert normalize_cell(4.0) == 4
    assert isinstance(normalize_cell(4.0), int)
    assert normalize_cell(4.5) == 4.5
    assert normalize_cell(pd.Timestamp("2024-01-15")) == datetime(2024, 1, 15)
    assert normalize_cell(pd.NaT) is None
    assert normalize_cell("x") == "x"
