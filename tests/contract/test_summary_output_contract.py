from __future__ import annotations

import re
from pathlib import Path
from unittest.mock import patch

from card_vault.cli.__main__ import main as cli_main

"""SUMMARY line format contract, checked on real CLI output."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY rows=([0-9]+) attempted=([0-9]+) registered=([0-9]+) failed=([0-9]+) "
    r"skipped=([0-9]+) with_photo=([0-9]+) without_photo=([0-9]+) errors=([0-9]+) "
    r"elapsed_sec=([0-9]+\.?[0-9]*)$"
)


def test_summary_pattern_example_line():
    line = (
        "SUMMARY rows=3 attempted=3 registered=2 failed=0 skipped=1 "
        "with_photo=1 without_photo=1 errors=1 elapsed_sec=0.84"
    )
    assert SUMMARY_PATTERN.match(line)


def test_cli_emits_exactly_one_summary_line(write_config, temp_workdir: Path, fake_session, card_rows, write_csv, capsys):
    src = write_csv(temp_workdir / "data", card_rows)
    with patch("card_vault.soap.client.requests.Session", return_value=fake_session):
        cli_main(["execute", str(src)])
    lines = [ln for ln in capsys.readouterr().out.splitlines() if ln.startswith("SUMMARY")]
    assert len(lines) == 1
    m = SUMMARY_PATTERN.match(lines[0])
    assert m, lines[0]
    rows, attempted, registered, failed, skipped = (int(m.group(i)) for i in range(1, 6))
    assert rows == 3
    assert attempted == registered + failed + skipped
    assert (registered, skipped) == (2, 1)
