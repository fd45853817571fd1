# Shared pytest fixtures
from __future__ import annotations

import tempfile
from pathlib import Path

import pandas as pd
import pytest

from shopfloor_import.db.memory import MemoryStore


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("SHOPFLOOR_USER_ID", raising=False)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
user_id: tester
field_set: hours
import:
  row_filter: valid_only
  scrap_grouping: grouped
timeouts:
  connect_seconds: 5
  statement_seconds: 15
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def template_rows() -> list[list[object]]:
    """Template layout: TEG [h], Ausschuss, Datum, Internes BA-Kürzel, Ressource, Menge gut."""
    return [
        ["TEG [h]", "Ausschuss", "Datum", "Internes BA-Kürzel", "Ressource", "Menge gut"],
        ["3,5", "2", "15.01.2024", "BA-1", "M1", "100"],
        ["4", "0", "15.01.2024", "BA-1", "M1", "80"],
        ["1,5", "1", "16.01.2024", "BA-2", "M2", "20"],
    ]


@pytest.fixture()
def write_template_csv(temp_workdir: Path, template_rows):
    def _write(name: str = "schicht.csv", rows: list[list[object]] | None = None) -> Path:
        path = temp_workdir / "data" / name
        lines = [";".join(str(c) for c in r) for r in (rows or template_rows)]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


@pytest.fixture()
def make_workbook():
    def _make(path: Path, rows: list[list[object]], sheet_name: str = "Tabelle1") -> Path:
        """Write ``rows`` (header row first) into a single-sheet xlsx."""
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
        return path
    return _make


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore(user_id="tester")
