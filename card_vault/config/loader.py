from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    EngineConfig,
    ExecutionConfig,
    IngestConfig,
    RetryConfig,
    SoapConfig,
)

"""Config loader for the card registration engine.

Responsibilities:
- Load YAML config (config/engine.yml by default)
- Validate against the bundled JSON schema
- Apply defaults for anything not given
- Apply environment overrides (VAULT_* variables, usually loaded from .env)
"""

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/engine.yml")

ENV_ENDPOINT_URL = "VAULT_ENDPOINT_URL"
ENV_SOAP_VERSION = "VAULT_SOAP_VERSION"
ENV_CONCURRENCY = "VAULT_CONCURRENCY"
ENV_TIMEOUT_SECONDS = "VAULT_TIMEOUT_SECONDS"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: if the schema file is missing or invalid, or if the
            config data fails validation (unknown keys, wrong types, ...).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    return data.get(key) or {}


def build_config(data: Mapping[str, Any]) -> EngineConfig:
    """Build EngineConfig from already-validated raw data, filling defaults."""
    soap_raw = _section(data, "soap")
    exec_raw = _section(data, "execution")
    retry_raw = _section(data, "retry")
    ingest_raw = _section(data, "ingest")
    base = EngineConfig()

    soap = SoapConfig(
        version=str(soap_raw.get("version", base.soap.version)),
        namespace=soap_raw.get("namespace", base.soap.namespace),
        create_action=soap_raw.get("create_action", base.soap.create_action),
        update_action=soap_raw.get("update_action", base.soap.update_action),
    )
    execution = ExecutionConfig(
        concurrency=int(exec_raw.get("concurrency", base.execution.concurrency)),
        timeout_seconds=float(exec_raw.get("timeout_seconds", base.execution.timeout_seconds)),
    )
    retry = RetryConfig(
        max_attempts=int(retry_raw.get("max_attempts", base.retry.max_attempts)),
        backoff_seconds=float(retry_raw.get("backoff_seconds", base.retry.backoff_seconds)),
        multiplier=float(retry_raw.get("multiplier", base.retry.multiplier)),
        max_backoff_seconds=float(retry_raw.get("max_backoff_seconds", base.retry.max_backoff_seconds)),
    )
    ingest = IngestConfig(
        machine_pattern=ingest_raw.get("machine_pattern", base.ingest.machine_pattern),
        card_data_pattern=ingest_raw.get("card_data_pattern", base.ingest.card_data_pattern),
        resolver_ttl_seconds=float(ingest_raw.get("resolver_ttl_seconds", base.ingest.resolver_ttl_seconds)),
    )
    return EngineConfig(
        endpoint_url=data.get("endpoint_url", base.endpoint_url),
        soap=soap,
        execution=execution,
        retry=retry,
        ingest=ingest,
        success_codes=tuple(data.get("success_codes", base.success_codes)),
        photo_extensions=tuple(e.lower() for e in data.get("photo_extensions", base.photo_extensions)),
        default_company=data.get("default_company", base.default_company),
    )


def apply_env_overrides(data: dict[str, Any], env: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Overlay VAULT_* environment variables onto raw config data (env wins)."""
    env = os.environ if env is None else env
    merged = dict(data)
    if env.get(ENV_ENDPOINT_URL):
        merged["endpoint_url"] = env[ENV_ENDPOINT_URL]
    if env.get(ENV_SOAP_VERSION):
        merged["soap"] = {**_section(merged, "soap"), "version": env[ENV_SOAP_VERSION]}
    execution = dict(_section(merged, "execution"))
    try:
        if env.get(ENV_CONCURRENCY):
            execution["concurrency"] = int(env[ENV_CONCURRENCY])
        if env.get(ENV_TIMEOUT_SECONDS):
            execution["timeout_seconds"] = float(env[ENV_TIMEOUT_SECONDS])
    except ValueError as e:
        raise ConfigError(f"invalid environment override: {e}") from e
    if execution:
        merged["execution"] = execution
    return merged


def load_config(
    path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> EngineConfig:
    """Load, validate and resolve the engine config.

    A missing file is an error only when the path was given explicitly; the
    default location may be absent, in which case defaults + env are used.
    """
    explicit = path is not None
    path = DEFAULT_CONFIG_PATH if path is None else path
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid yaml: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"config root must be a mapping: {path}")
    elif explicit:
        raise ConfigError(f"config file not found: {path}")
    else:
        data = {}

    data = apply_env_overrides(data, env)
    _validate_config_schema(data)
    return build_config(data)
