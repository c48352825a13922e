from __future__ import annotations
import pandas as pd
import pytest
from pathlib import Path
from card_vault.excel.reader import IngestError, SourceResolver, load_source, read_rows, write_template
from card_vault.models.config_models import IngestConfig


def _make_excel(directory: Path, name: str, rows: list[list[object]]) -> Path:
    p = directory / name
    with pd.ExcelWriter(p) as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="Sheet1", header=False, index=False)
    return p


def test_read_csv_keeps_leading_zeros(tmp_path: Path):
    p = tmp_path / "cards.csv"
    p.write_text("Card No,Name\n0001234567,Alice\n0002,Bob\n", encoding="utf-8")
    rows = read_rows(p)
    assert rows == [{"Card No": "0001234567", "Name": "Alice"}, {"Card No": "0002", "Name": "Bob"}]


def test_read_csv_with_bom_and_empty_rows(tmp_path: Path):
    p = tmp_path / "cards.csv"
    p.write_text("\ufeffCardNo,Name\n1,A\n,\n2,B\n", encoding="utf-8")
    rows = read_rows(p)
    assert [r["CardNo"] for r in rows] == ["1", "2"]


def test_read_xlsx_first_sheet_as_text(tmp_path: Path):
    p = _make_excel(tmp_path, "For_Machine_1.xlsx", [
        ["CardNo", "Name", "DOB", "Active"],
        [1234567, "Alice", pd.Timestamp("1990-05-01"), True],
        [None, None, None, None],
        [42.0, "Bob", None, False],
    ])
    rows = read_rows(p)
    assert len(rows) == 2
    assert rows[0] == {"CardNo": "1234567", "Name": "Alice", "DOB": "1990-05-01", "Active": "true"}
    assert rows[1]["CardNo"] == "42"
    assert rows[1]["DOB"] == ""


def test_unsupported_suffix(tmp_path: Path):
    p = tmp_path / "cards.txt"
    p.write_text("x", encoding="utf-8")
    with pytest.raises(IngestError) as e:
        read_rows(p)
    assert e.value.code == "UNSUPPORTED_SOURCE"


def test_read_csv_in_windows_code_page(tmp_path: Path):
    p = tmp_path / "cards.csv"
    p.write_bytes("CardNo,Name\nCARD01,Jos\u00e9\n".encode("cp1252"))
    assert read_rows(p) == [{"CardNo": "CARD01", "Name": "Jos\u00e9"}]


def test_corrupt_workbook_is_unreadable(tmp_path: Path):
    p = tmp_path / "For_Machine_1.xlsx"
    p.write_bytes(b"this is not a workbook")
    with pytest.raises(IngestError) as e:
        read_rows(p)
    assert e.value.code == "UNREADABLE_SOURCE"
    assert "For_Machine_1.xlsx" in e.value.message


def test_zero_byte_csv_has_no_rows(tmp_path: Path):
    p = tmp_path / "cards.csv"
    p.write_bytes(b"")
    with pytest.raises(IngestError) as e:
        read_rows(p)
    assert e.value.code == "NO_ROWS"


def test_directory_prefers_machine_workbook(tmp_path: Path):
    (tmp_path / "CardDatafileformat_job.csv").write_text("CardNo\n1\n", encoding="utf-8")
    machine = _make_excel(tmp_path, "For_Machine_job.xlsx", [["CardNo"], ["2"]])
    assert SourceResolver().resolve(tmp_path) == machine


def test_directory_falls_back_to_card_data_csv(tmp_path: Path):
    csv = tmp_path / "CardDatafileformat_job.csv"
    csv.write_text("CardNo\n1\n", encoding="utf-8")
    (tmp_path / "other.csv").write_text("CardNo\n9\n", encoding="utf-8")
    assert SourceResolver().resolve(tmp_path) == csv


def test_directory_without_outputs_is_no_rows(tmp_path: Path):
    with pytest.raises(IngestError) as e:
        SourceResolver().resolve(tmp_path)
    assert e.value.code == "NO_ROWS"


def test_missing_paths(tmp_path: Path):
    with pytest.raises(IngestError) as e:
        SourceResolver().resolve(tmp_path / "missing.csv")
    assert e.value.code == "CSV_NOT_FOUND"
    with pytest.raises(IngestError) as e:
        SourceResolver().resolve(tmp_path / "missing_dir")
    assert e.value.code == "OUTPUT_NOT_FOUND"


def test_resolver_cache_honours_ttl(tmp_path: Path):
    now = [0.0]
    resolver = SourceResolver(IngestConfig(resolver_ttl_seconds=30), clock=lambda: now[0])
    csv = tmp_path / "CardDatafileformat_a.csv"
    csv.write_text("CardNo\n1\n", encoding="utf-8")
    assert resolver.resolve(tmp_path) == csv

    machine = _make_excel(tmp_path, "For_Machine_a.xlsx", [["CardNo"], ["2"]])
    now[0] = 10.0
    assert resolver.resolve(tmp_path) == csv  # cached
    now[0] = 31.0
    assert resolver.resolve(tmp_path) == machine


def test_resolver_invalidate(tmp_path: Path):
    resolver = SourceResolver(clock=lambda: 0.0)
    csv = tmp_path / "CardDatafileformat_a.csv"
    csv.write_text("CardNo\n1\n", encoding="utf-8")
    resolver.resolve(tmp_path)
    machine = _make_excel(tmp_path, "For_Machine_a.xlsx", [["CardNo"], ["2"]])
    resolver.invalidate(tmp_path)
    assert resolver.resolve(tmp_path) == machine


def test_load_source_header_only_is_no_rows(tmp_path: Path):
    p = tmp_path / "cards.csv"
    p.write_text("CardNo,Name\n", encoding="utf-8")
    with pytest.raises(IngestError) as e:
        load_source(p)
    assert e.value.code == "NO_ROWS"


def test_load_source_photo_dir(tmp_path: Path):
    p = tmp_path / "cards.csv"
    p.write_text("CardNo\n1\n", encoding="utf-8")
    assert load_source(p).photo_dir == tmp_path
    (tmp_path / "CardDatafileformat_x.csv").write_text("CardNo\n1\n", encoding="utf-8")
    assert load_source(tmp_path).photo_dir == tmp_path


def test_write_template_round_trips_headers(tmp_path: Path):
    out = write_template(tmp_path / "t" / "template.xlsx", ["CardNo", "Name"])
    df = pd.read_excel(out, sheet_name="Cards")
    assert list(df.columns) == ["CardNo", "Name"]
    assert df.empty
