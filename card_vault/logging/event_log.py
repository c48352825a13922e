from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Any

from ..models.event_record import EventRecord, EventType

"""Per-source execution logs.

Every execution context (one source directory or file) gets two append-only
files next to the data:

- <stem>.vault.log    human-readable, one line per event
- <stem>.vault.jsonl  one EventRecord JSON object per line

A directory source uses the stem "vault_execution" inside the directory.

Each event is written as one complete line in a single write() on a file
opened in append mode, so concurrent workers never interleave partial lines
and readers never need a read-modify-write. The jsonl file is what
card_vault.services.progress replays.
"""

__all__ = [
    "ExecutionLog",
    "log_paths_for",
    "redact_photo",
]

DIRECTORY_LOG_STEM = "vault_execution"

_PHOTO_ELEMENT = re.compile(r"<Photo>(.*?)</Photo>", re.DOTALL)

# 同一プロセス内の書き込み直列化 (パス単位)
_path_locks: dict[Path, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = path.resolve()
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


def log_paths_for(source: Path) -> tuple[Path, Path]:
    """Return (text_log, jsonl_log) for a source directory or file."""
    if source.is_dir():
        base = source / DIRECTORY_LOG_STEM
    else:
        base = source.parent / f"{source.stem}.vault"
    return base.with_name(base.name + ".log"), base.with_name(base.name + ".jsonl")


def redact_photo(envelope_xml: str) -> str:
    """Replace base64 photo content with a size marker."""

    def _sub(m: re.Match[str]) -> str:
        return f"<Photo>[redacted {len(m.group(1))} base64 chars]</Photo>"

    return _PHOTO_ELEMENT.sub(_sub, envelope_xml)


def _format_text_line(record: EventRecord) -> str:
    parts = [record.timestamp, f"[{record.run_id}]", record.event.upper()]
    if record.index >= 0:
        parts.append(f"row={record.index}")
    if record.card_no:
        parts.append(f"card={record.card_no}")
    for key, value in record.data.items():
        if key == "envelope":
            continue
        parts.append(f"{key}={value}")
    return " ".join(str(p) for p in parts)


class ExecutionLog:
    """Append-only writer for one execution context."""

    def __init__(self, source: Path) -> None:
        self.source = source
        self.text_path, self.jsonl_path = log_paths_for(source)

    def _append(self, path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with _lock_for(path):
            with path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")

    def write(self, record: EventRecord) -> EventRecord:
        self._append(self.jsonl_path, record.to_json_line())
        self._append(self.text_path, _format_text_line(record))
        return record

    def event(
        self,
        run_id: str,
        event: str,
        index: int = -1,
        card_no: str | None = None,
        **data: Any,
    ) -> EventRecord:
        if event == EventType.REQUEST_SENT and "envelope" in data:
            data["envelope"] = redact_photo(str(data["envelope"]))
        return self.write(EventRecord.create(run_id, event, index=index, card_no=card_no, **data))

    def read_events(self) -> list[EventRecord]:
        """Read all complete events. A trailing partial line is ignored."""
        if not self.jsonl_path.exists():
            return []
        events: list[EventRecord] = []
        with self.jsonl_path.open("r", encoding="utf-8") as f:
            for line in f:
                if not line.endswith("\n"):
                    break  # still being written
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(EventRecord.from_json_line(line))
                except (ValueError, KeyError):
                    continue
        return events
