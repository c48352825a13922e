from __future__ import annotations

import json

import jsonschema
import pytest
import yaml
from jsonschema.exceptions import ValidationError

from card_vault.config.loader import DEFAULT_CONFIG_PATH, SCHEMA_PATH

"""Config schema contract test (config/engine.yml <-> config_schema.json)."""

PROJECT_ROOT = SCHEMA_PATH.parents[2]


def _schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_shipped_sample_config_is_valid():
    data = yaml.safe_load((PROJECT_ROOT / DEFAULT_CONFIG_PATH).read_text(encoding="utf-8"))
    jsonschema.validate(data, _schema())


def test_empty_config_is_valid():
    jsonschema.validate({}, _schema())


@pytest.mark.parametrize("config", [
    {"soap": {"version": "1.3"}},
    {"execution": {"concurrency": 0}},
    {"execution": {"timeout_seconds": 0}},
    {"retry": {"max_attempts": 0}},
    {"success_codes": []},
    {"photo_extensions": ["jpg"]},
    {"database": {"host": "localhost"}},
])
def test_invalid_configs_rejected(config):
    with pytest.raises(ValidationError):
        jsonschema.validate(config, _schema())
