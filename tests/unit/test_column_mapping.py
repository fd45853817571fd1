from __future__ import annotations

import pytest

from shopfloor_import.models.column_mapping import UNMAPPED, ColumnMapping, is_mapped
from shopfloor_import.models.raw_table import RawTable


HEADERS = ["Ressource", "Datum", "TEG [h]"]


def test_index_mapping_resolves_cells():
    mapping = ColumnMapping.by_index({"machine_name": 0, "date": 1, "hours": UNMAPPED})
    row = ("M1", "15.01.2024", "3,5")
    assert mapping.resolve(row, "machine_name") == "M1"
    assert mapping.resolve(row, "hours") is None
    assert mapping.mapped_keys() == ["machine_name", "date"]
    assert mapping.project(row) == {"machine_name": "M1", "date": "15.01.2024"}


def test_index_out_of_range_reads_none():
    mapping = ColumnMapping.by_index({"machine_name": 7})
    assert mapping.resolve(("M1",), "machine_name") is None


def test_name_mapping_resolves_records():
    mapping = ColumnMapping.by_name({"machine_name": "Ressource", "date": None})
    assert mapping.is_name_based
    assert mapping.resolve({"Ressource": "M1"}, "machine_name") == "M1"
    assert mapping.resolve({"Ressource": "M1"}, "date") is None


def test_with_column_returns_new_mapping():
    original = ColumnMapping.by_index({"date": 1})
    changed = original.with_column("hours", 2)
    assert original.column_for("hours") is None
    assert changed.column_for("hours") == 2
    assert changed.with_column("hours", None).column_for("hours") is None


def test_mapping_is_frozen():
    mapping = ColumnMapping.by_index({"date": 1})
    with pytest.raises(AttributeError):
        mapping.columns = {}  # type: ignore[misc]


def test_name_to_index_and_back():
    named = ColumnMapping.by_name({"machine_name": " Ressource", "hours": "TEG [h]", "date": "Fehlt"})
    indexed = named.to_index(HEADERS)
    assert indexed.columns == {"machine_name": 0, "hours": 2, "date": UNMAPPED}
    assert not indexed.is_name_based
    assert indexed.to_names(HEADERS) == {"machine_name": "Ressource", "hours": "TEG [h]"}


def test_is_mapped():
    assert is_mapped(0)
    assert is_mapped("Datum")
    assert not is_mapped(None)
    assert not is_mapped(UNMAPPED)
    assert not is_mapped("")


def test_raw_table_record_keys_for_empty_and_duplicate_headers():
    table = RawTable(
        file_name="x.xlsx",
        headers=("Datum", "", "Datum", "", "Menge"),
        rows=(("15.01.2024", 1, "16.01.2024", None, 5),),
    )
    assert table.record_keys() == ["Datum", "__EMPTY", "Datum_1", "__EMPTY_1", "Menge"]
    assert table.records() == [{"Datum": "15.01.2024", "__EMPTY": 1, "Datum_1": "16.01.2024", "Menge": 5}]
    assert table.column_letters == ("A", "B", "C", "D", "E")


def test_raw_table_json_safe_records_and_preview():
    from datetime import datetime

    rows = tuple((f"M{i}", datetime(2024, 1, i + 1)) for i in range(7))
    table = RawTable(file_name="x.xlsx", headers=("Ressource", "Datum"), rows=rows)
    assert len(table.preview_rows) == 5
    assert len(table.all_rows) == 7
    assert table.records(json_safe=True)[0] == {"Ressource": "M0", "Datum": "2024-01-01T00:00:00"}
