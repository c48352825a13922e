# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path
from unittest.mock import Mock

import pandas as pd
import pytest

from card_vault.logging.init import reset_logging

ENDPOINT = "http://vault.test/VaultService.asmx"


def soap_response(err_code: str = "0", err_message: str = "Success", card_id: str | None = "1001") -> str:
    """Minimal AddCardResponse body as returned by the Vault service."""
    card = f"<CardID>{card_id}</CardID>" if card_id is not None else ""
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body><AddCardResponse xmlns=\"http://tempuri.org/\"><AddCardResult>"
        f"<ErrCode>{err_code}</ErrCode><ErrMessage>{err_message}</ErrMessage>{card}"
        "</AddCardResult></AddCardResponse></soap:Body></soap:Envelope>"
    )


def http_response(status_code: int = 200, text: str | None = None) -> Mock:
    resp = Mock()
    resp.status_code = status_code
    resp.text = soap_response() if text is None else text
    return resp


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        monkeypatch.chdir(p)
        for var in ("VAULT_ENDPOINT_URL", "VAULT_SOAP_VERSION", "VAULT_CONCURRENCY", "VAULT_TIMEOUT_SECONDS"):
            monkeypatch.delenv(var, raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return f"""endpoint_url: {ENDPOINT}
soap:
  version: "1.1"
  namespace: http://tempuri.org/
execution:
  concurrency: 2
  timeout_seconds: 5
retry:
  max_attempts: 1
success_codes: ["0", "1"]
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "engine.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def card_rows() -> list[dict[str, str]]:
    """Three rows shaped like the generated card data CSV."""
    return [
        {"Card No #[Max 10]": "0001234567", "Card Name [Max 50]": "John Doe",
         "Staff No. [Max 10]": "S001", "Department [Max 50]": "IT", "MessHall": "Labota"},
        {"Card No #[Max 10]": "0001234568", "Card Name [Max 50]": "Jane Roe",
         "Staff No. [Max 10]": "S002", "Department [Max 50]": "HR", "MessHall": "Makarti"},
        {"Card No #[Max 10]": "", "Card Name [Max 50]": "No Card",
         "Staff No. [Max 10]": "S003", "Department [Max 50]": "Ops", "MessHall": ""},
    ]


@pytest.fixture()
def write_csv() -> Callable[..., Path]:
    def _write(directory: Path, rows: list[dict[str, str]], name: str = "CardDatafileformat_job1.csv") -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        pd.DataFrame(rows).to_csv(path, index=False, encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def fake_session() -> Mock:
    """requests.Session stand-in answering every POST with ErrCode 0."""
    session = Mock()
    session.post.return_value = http_response()
    return session


@pytest.fixture()
def make_soap_response() -> Callable[..., str]:
    return soap_response


@pytest.fixture()
def make_http_response() -> Callable[..., Mock]:
    return http_response
