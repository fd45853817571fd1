from __future__ import annotations

from datetime import datetime

from shopfloor_import.models.column_mapping import ColumnMapping
from shopfloor_import.models.config_models import RowFilter
from shopfloor_import.models.field_schema import FieldType
from shopfloor_import.services.validation import select_rows, summarize, validate_rows

TYPES = {"machine_name": FieldType.STRING, "date": FieldType.DATE, "hours": FieldType.NUMBER}
MAPPING = ColumnMapping.by_index({"machine_name": 0, "date": 1, "hours": 2})


def test_valid_row_gets_typed_values():
    rows = validate_rows([(" M1 ", "15.01.2024", "3,5")], MAPPING, TYPES)
    assert len(rows) == 1
    row = rows[0]
    assert row.is_valid
    assert row.row_index == 2
    assert row.values == {"machine_name": "M1", "date": datetime(2024, 1, 15), "hours": 3.5}


def test_invalid_cells_collect_messages_per_field():
    rows = validate_rows([("M1", "gestern", "viel")], MAPPING, TYPES)
    assert rows[0].errors == (
        'Zeile 2, Feld "date": Ungültiges Datum "gestern"',
        'Zeile 2, Feld "hours": Ungültiger Zahlenwert "viel"',
    )
    assert rows[0].get("date") is None
    assert rows[0].get("hours") is None


def test_relative_date_words_are_invalid():
    rows = validate_rows([("M1", "today", "1")], MAPPING, TYPES)
    assert rows[0].errors == ('Zeile 2, Feld "date": Ungültiges Datum "today"',)
    assert rows[0].get("date") is None


def test_blank_cells_are_not_errors():
    rows = validate_rows([(None, "", None)], MAPPING, TYPES)
    assert rows[0].is_valid
    assert rows[0].values == {"machine_name": "", "date": None, "hours": None}


def test_malformed_rows_never_change_row_count():
    raw = [(), ("M1",), ("M1", "15.01.2024", "1", "extra"), ("x", object(), "1,2,3")]
    rows = validate_rows(raw, MAPPING, TYPES)
    assert len(rows) == len(raw)
    assert [r.row_index for r in rows] == [2, 3, 4, 5]
    assert not rows[3].is_valid


def test_untyped_fields_are_strings():
    mapping = ColumnMapping.by_index({"afo_nummer": 0})
    rows = validate_rows([(10,)], mapping, {})
    assert rows[0].values == {"afo_nummer": "10"}


def test_name_based_mapping_over_records():
    mapping = ColumnMapping.by_name({"machine_name": "Ressource", "hours": "TEG [h]"})
    rows = validate_rows([{"Ressource": "M1", "TEG [h]": "2"}], mapping, TYPES)
    assert rows[0].values == {"machine_name": "M1", "hours": 2.0}


def test_summary_and_row_filter():
    rows = validate_rows(
        [("M1", "15.01.2024", "1"), ("M2", "kaputt", "2"), ("M3", "16.01.2024", "x")],
        MAPPING,
        TYPES,
    )
    summary = summarize(rows)
    assert (summary.total_rows, summary.valid_rows, summary.invalid_rows) == (3, 1, 2)
    assert len(summary.errors) == 2
    assert [r.values["machine_name"] for r in select_rows(rows, RowFilter.VALID_ONLY)] == ["M1"]
    assert len(select_rows(rows, RowFilter.ALL)) == 3


def test_preview_errors_caps_list():
    rows = validate_rows([("M", "x", "1")] * 12, MAPPING, TYPES)
    preview = summarize(rows).preview_errors(limit=10)
    assert len(preview) == 11
    assert preview[-1] == "+2 weitere Fehler"
