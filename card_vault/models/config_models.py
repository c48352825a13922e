from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the card registration engine.

These are the typed, frozen views of config/engine.yml after validation by
card_vault.config.loader. Every field has a default so the engine can run
from environment variables alone.
"""

DEFAULT_SUCCESS_CODES = ("0", "1")
DEFAULT_PHOTO_EXTENSIONS = (".jpg", ".jpeg", ".png")


@dataclass(frozen=True)
class SoapConfig:
    """SOAP envelope settings.

    version: "1.1" or "1.2"
    namespace: service namespace used for the action element and SOAPAction
    """
    version: str = "1.1"
    namespace: str = "http://tempuri.org/"
    create_action: str = "AddCard"
    update_action: str = "UpdateCard"


@dataclass(frozen=True)
class ExecutionConfig:
    concurrency: int = 6  # batch worker count
    timeout_seconds: float = 30.0  # per HTTP request


@dataclass(frozen=True)
class RetryConfig:
    """Explicit retry settings. max_attempts=1 means no retry."""
    max_attempts: int = 1
    backoff_seconds: float = 1.0
    multiplier: float = 2.0
    max_backoff_seconds: float = 30.0


@dataclass(frozen=True)
class IngestConfig:
    machine_pattern: str = r"For_Machine_.*\.xlsx$"
    card_data_pattern: str = r"CardDatafileformat_.*\.csv$"
    resolver_ttl_seconds: float = 30.0


@dataclass(frozen=True)
class EngineConfig:
    """Root configuration object for the engine."""
    endpoint_url: str = ""
    soap: SoapConfig = field(default_factory=SoapConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    success_codes: tuple[str, ...] = DEFAULT_SUCCESS_CODES
    photo_extensions: tuple[str, ...] = DEFAULT_PHOTO_EXTENSIONS
    default_company: str = ""  # 空セル時の Company 補完値
