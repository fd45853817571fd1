from __future__ import annotations

import json

import jsonschema
import pytest
import yaml

from shopfloor_import.config.loader import SCHEMA_PATH

"""The bundled config schema accepts the shipped sample and rejects typos."""

SCHEMA = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_sample_config_file_is_valid(sample_config_yaml):
    jsonschema.validate(yaml.safe_load(sample_config_yaml), SCHEMA)


@pytest.mark.parametrize(
    "data",
    [
        {"source_directory": "./data", "import": {"row_filter": "valid"}},
        {"source_directory": "./data", "import": {"target_scale": 0}},
        {"source_directory": "./data", "mapping": {"date": 1.5}},
        {"source_directory": "./data", "mapping": {"date": -2}},
        {"source_directory": "./data", "database": {"hostname": "x"}},
        {"source_directory": ""},
    ],
)
def test_schema_rejects(data):
    with pytest.raises(jsonschema.ValidationError):
        jsonschema.validate(data, SCHEMA)
