from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from shopfloor_import.cli.__main__ import main as cli_main
from shopfloor_import.db.memory import MemoryStore
from shopfloor_import.logging.init import reset_logging

"""End-to-end run over real upload files (xlsx + csv) against the in-memory store."""

PRODUCTION_CONFIG = """source_directory: ./data
user_id: werk-1
field_set: production
import:
  scrap_grouping: grouped
"""


@pytest.fixture
def production_files(temp_workdir: Path, make_workbook) -> dict[str, Path]:
    data = temp_workdir / "data"
    (temp_workdir / "config" / "import.yml").write_text(PRODUCTION_CONFIG, encoding="utf-8")
    header = ["Ressource", "Datum", "Rüstzeit", "Serienzeit", "Ausschussmenge", "Betriebsauftrag", "Auftragsnummer", "AFO"]
    xlsx = make_workbook(
        data / "januar.xlsx",
        [
            header,
            ["DMG 1", datetime(2024, 1, 15), 30, 90, 2, "BA-100", "A-1", 10],
            ["DMG 1", 45306, 0, 60, 0, "BA-100", "A-1", 20],
            ["Unbekannt", datetime(2024, 1, 15), 60, 60, 5, "BA-101", "A-2", 10],
            [None, None, None, None, None, None, None, None],
            ["DMG 2", "16.01.2024", 15, 45, 3, None, "A-3", 10],
        ],
    )
    csv = data / "februar.csv"
    csv.write_text(
        ";".join(header) + "\n"
        + 'DMG 2;01.02.2024;"1.200,5";0;1;BA-200;A-9;10\n'
        + "DMG 3;2024-02-02;60;60;0;BA-201;A-10;10\n",
        encoding="utf-8",
    )
    return {"xlsx": xlsx, "csv": csv}


def test_run_imports_all_files(production_files, temp_workdir: Path, capsys):
    reset_logging()
    store = MemoryStore("werk-1")
    with patch("shopfloor_import.cli.__main__.MemoryStore", return_value=store):
        code = cli_main([])
    out = capsys.readouterr().out
    assert code == 0

    line = next(l for l in out.splitlines() if l.startswith("SUMMARY"))
    m = re.search(r"files=(\d+)/(\d+) success=(\d+) failed=(\d+) rows=(\d+)", line)
    assert m is not None
    assert m.groups() == ("2", "2", "2", "0", "6")

    hours = store.stored_hours()
    # 45306 is the Excel serial of 2024-01-15
    assert hours[("DMG 1", "2024-01-15")] == pytest.approx((30 + 90 + 0 + 60) / 60)
    assert hours[("DMG 2", "2024-01-16")] == pytest.approx(1.0)
    assert hours[("DMG 2", "2024-02-01")] == pytest.approx(1200.5 / 60)
    assert hours[("DMG 3", "2024-02-02")] == pytest.approx(2.0)
    assert not any(machine == "Unbekannt" for machine, _ in hours)

    scrap = {(s.machine_name, s.bab_number, s.scrap_date): s.scrap_amount for s in store.scrap_data}
    assert scrap == {
        ("DMG 1", "BA-100", "2024-01-15"): 2.0,
        ("DMG 2", "A-3", "2024-01-16"): 3.0,
        ("DMG 2", "BA-200", "2024-02-01"): 1.0,
    }
    assert sorted(store.machine_targets) == ["DMG 1", "DMG 2", "DMG 3"]
    assert len(store.excel_data) == 6
    assert {r["file_name"] for r in store.excel_data} == {"januar.xlsx", "februar.csv"}
    assert len(store.column_mappings) == 2
    assert store.column_mappings[-1]["afo_nummer"] == "AFO"
