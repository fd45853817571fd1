from __future__ import annotations

import json
import logging
import re
from io import StringIO
from pathlib import Path

from shopfloor_import.logging.error_log import ErrorLogBuffer
from shopfloor_import.logging.init import (
    APP_LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
)
from shopfloor_import.models.error_record import ERROR_TYPES, ErrorRecord


def _capture_logger(name: str) -> tuple[logging.Logger, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(LabeledFormatter())
    logger = logging.getLogger(name)
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, stream


def test_setup_logging_is_idempotent():
    reset_logging()
    logger = setup_logging()
    assert logger.name == APP_LOGGER_NAME
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert setup_logging() is logger
    assert get_logger() is logger


def test_labeled_prefixes():
    logger, stream = _capture_logger("test_shopfloor_labels")
    logger.info("hello")
    logger.warning("careful")
    logger.error("broken")
    logger.log(SUMMARY_LEVEL, "files=1/1")
    assert stream.getvalue().splitlines() == ["INFO hello", "WARN careful", "ERROR broken", "SUMMARY files=1/1"]


def test_log_summary_writes_to_stdout(capsys):
    reset_logging()
    setup_logging()
    log_summary("files=0/0")
    assert "SUMMARY files=0/0" in capsys.readouterr().out


def test_error_record_json_line_has_fixed_keys():
    rec = ErrorRecord.create("schicht.csv", 4, "VALIDATION_ERROR", 'Zeile 4, Feld "date": Ungültiges Datum "x"')
    data = json.loads(rec.to_json_line())
    assert list(data) == ["timestamp", "file", "row", "error_type", "message"]
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$", data["timestamp"])
    assert "Ungültiges" in rec.to_json_line()
    assert rec.error_type in ERROR_TYPES


def test_error_log_buffer_flush(tmp_path: Path):
    buf = ErrorLogBuffer(logs_dir=tmp_path / "logs")
    assert buf.flush() is None
    buf.append(ErrorRecord.create("a.csv", -1, "FORMAT_ERROR", "CSV-Datei ist leer"))
    buf.extend([ErrorRecord.create("b.csv", 2, "VALIDATION_ERROR", "x")])
    assert len(buf) == 2
    path = buf.flush()
    assert path is not None
    assert re.match(r"^errors-\d{8}-\d{6}\.log$", path.name)
    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["file"] for line in lines] == ["a.csv", "b.csv"]
    assert len(buf) == 0
