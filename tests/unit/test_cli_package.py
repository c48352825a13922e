from __future__ import annotations

import importlib
import sys


def test_importing_cli_package_does_not_load_entrypoint(monkeypatch):
    # python -m card_vault.cli must be the first to import __main__
    monkeypatch.delitem(sys.modules, "card_vault.cli", raising=False)
    monkeypatch.delitem(sys.modules, "card_vault.cli.__main__", raising=False)
    importlib.import_module("card_vault.cli")
    assert "card_vault.cli.__main__" not in sys.modules
