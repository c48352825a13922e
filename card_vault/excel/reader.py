from __future__ import annotations

import logging
import re
import threading
import time
import zipfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.config_models import IngestConfig
from ..models.execution_result import ErrorCode

"""Row ingestion for card data sources.

A source is either:
- a job output directory, in which the generated "machine format" workbook
  (For_Machine_*.xlsx) is preferred and the generated "card data format" CSV
  (CardDatafileformat_*.csv) is the fallback, or
- an explicit .csv / .xlsx / .xlsm path.

The first row is the header. Rows come back as ordered str->str dicts; fully
empty rows are dropped, nothing is deduplicated. The zero-based position in
the returned list is the row index used by overrides and progress.
"""

__all__ = [
    "IngestError",
    "SourceResolver",
    "SourceRows",
    "load_source",
    "read_rows",
    "write_template",
]

SPREADSHEET_SUFFIXES = {".xlsx", ".xlsm"}
CSV_SUFFIXES = {".csv"}
# Excel "CSV" exports on Windows are often in the ANSI code page
CSV_ENCODINGS = ("utf-8-sig", "cp1252")

logger = logging.getLogger(__name__)


class IngestError(Exception):
    """Raised when a source cannot produce rows. code is an ErrorCode value."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code.value
        self.message = message


@dataclass(frozen=True)
class SourceRows:
    source: Path  # what the caller passed (directory or file)
    data_path: Path  # the file the rows were read from
    rows: list[dict[str, str]]

    @property
    def photo_dir(self) -> Path:
        """Default photo lookup directory: next to the data."""
        return self.source if self.source.is_dir() else self.source.parent


def _cell_text(value: Any) -> str:
    """Normalize one cell to trimmed text.

    Spreadsheet artifacts handled here: NaN/None -> "", 12345.0 -> "12345",
    datetimes at midnight -> YYYY-MM-DD.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if pd.api.types.is_bool(value):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, pd.Timestamp)):
        if value.hour == 0 and value.minute == 0 and value.second == 0:
            return value.strftime("%Y-%m-%d")
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _frame_to_rows(df: pd.DataFrame) -> list[dict[str, str]]:
    columns = [str(c).strip() for c in df.columns]
    rows: list[dict[str, str]] = []
    for raw in df.itertuples(index=False, name=None):
        row = {col: _cell_text(val) for col, val in zip(columns, raw, strict=False)}
        # 全列空の行はスキップ
        if not any(row.values()):
            continue
        rows.append(row)
    return rows


def _read_csv(path: Path) -> pd.DataFrame:
    for encoding in CSV_ENCODINGS[:-1]:
        try:
            return pd.read_csv(path, dtype=str, keep_default_na=False, encoding=encoding)
        except UnicodeDecodeError:
            logger.debug(f"{path.name}: not {encoding}, trying next encoding")
    logger.warning(f"{path.name}: not UTF-8, read as {CSV_ENCODINGS[-1]}")
    return pd.read_csv(path, dtype=str, keep_default_na=False, encoding=CSV_ENCODINGS[-1])


def read_rows(path: Path) -> list[dict[str, str]]:
    """Read the first sheet of a workbook, or a CSV, into row dicts.

    Raises:
        IngestError: UNSUPPORTED_SOURCE for an unknown extension,
            NO_ROWS for an empty file, UNREADABLE_SOURCE when the file
            cannot be decoded or parsed.
    """
    suffix = path.suffix.lower()
    if suffix not in SPREADSHEET_SUFFIXES and suffix not in CSV_SUFFIXES:
        raise IngestError(ErrorCode.UNSUPPORTED_SOURCE, f"Unsupported source file type: {path.name}")
    try:
        if suffix in SPREADSHEET_SUFFIXES:
            df = pd.read_excel(path, sheet_name=0, dtype=object)
        else:
            df = _read_csv(path)
    except pd.errors.EmptyDataError:
        raise IngestError(ErrorCode.NO_ROWS, f"No data rows in {path.name}") from None
    except (UnicodeDecodeError, pd.errors.ParserError, zipfile.BadZipFile, ValueError) as e:
        raise IngestError(ErrorCode.UNREADABLE_SOURCE, f"Cannot read {path.name}: {e}") from e
    return _frame_to_rows(df)


class SourceResolver:
    """Resolve a source path to the data file to read.

    Directory lookups are cached per directory for ttl_seconds so a burst of
    single-row calls does not rescan the directory each time. Explicit file
    paths are never cached. Pass ttl_seconds=0 to disable caching.
    """

    def __init__(
        self,
        config: IngestConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = config or IngestConfig()
        self._machine_re = re.compile(cfg.machine_pattern, re.IGNORECASE)
        self._card_data_re = re.compile(cfg.card_data_pattern, re.IGNORECASE)
        self.ttl_seconds = cfg.resolver_ttl_seconds
        self._clock = clock
        self._cache: dict[Path, tuple[float, Path]] = {}
        self._lock = threading.Lock()

    def _scan_directory(self, directory: Path) -> Path | None:
        names = sorted(p.name for p in directory.iterdir() if p.is_file())
        for pattern in (self._machine_re, self._card_data_re):
            for name in names:
                if pattern.search(name):
                    return directory / name
        return None

    def resolve(self, source: Path) -> Path:
        """Return the data file for source.

        Raises:
            IngestError: OUTPUT_NOT_FOUND / CSV_NOT_FOUND when the path is
                missing, NO_ROWS when a directory has no matching file.
        """
        if source.is_dir():
            key = source.resolve()
            now = self._clock()
            with self._lock:
                hit = self._cache.get(key)
                if hit is not None and now - hit[0] < self.ttl_seconds and hit[1].exists():
                    return hit[1]
            found = self._scan_directory(source)
            if found is None:
                raise IngestError(ErrorCode.NO_ROWS, f"No rows found in Excel/CSV outputs: {source}")
            if self.ttl_seconds > 0:
                with self._lock:
                    self._cache[key] = (now, found)
            return found
        if source.is_file():
            return source
        if source.suffix:
            raise IngestError(ErrorCode.CSV_NOT_FOUND, f"Source file not found: {source}")
        raise IngestError(ErrorCode.OUTPUT_NOT_FOUND, f"Output directory not found: {source}")

    def invalidate(self, source: Path | None = None) -> None:
        with self._lock:
            if source is None:
                self._cache.clear()
            else:
                self._cache.pop(source.resolve(), None)


def load_source(source: Path, resolver: SourceResolver | None = None) -> SourceRows:
    """Resolve and read a source. Raises IngestError(NO_ROWS) on zero data rows."""
    resolver = resolver or SourceResolver()
    data_path = resolver.resolve(source)
    rows = read_rows(data_path)
    if not rows:
        raise IngestError(ErrorCode.NO_ROWS, f"No data rows in {data_path.name}")
    return SourceRows(source=source, data_path=data_path, rows=rows)


def write_template(path: Path, headers: Sequence[str]) -> Path:
    """Write an empty workbook containing only the header row."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame(columns=list(headers)).to_excel(writer, sheet_name="Cards", index=False)
    return path
