from __future__ import annotations

import sys
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..logging.event_log import ExecutionLog
from ..models.event_record import EventRecord, EventType
from ..models.row_status import RowState, RowStatus

"""Progress display and progress reconstruction.

Two concerns live here:

- ProgressTracker: tqdm bar for the CLI (TTY only, disabled in CI / when
  stdout is captured)
- ProgressStore: stateless progress query. LogReplayProgressStore folds the
  JSON-lines execution log into {row index -> RowStatus}, so a process that
  did not start the batch (e.g. a polling HTTP handler) can report progress.
"""

__all__ = [
    "LogReplayProgressStore",
    "ProgressSnapshot",
    "ProgressStore",
    "ProgressTracker",
    "fold_events",
    "is_tty_enabled",
]

RUN_KIND_BATCH = "batch"
RUN_KIND_ROW = "row"


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """tqdm progress bar over rows of one batch."""

    def __init__(self, total_rows: int, *, description: str = "Executing rows") -> None:
        self.total_rows = total_rows
        self.description = description
        self.completed = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def finish_row(self, state: RowState) -> None:
        self.completed += 1
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


@dataclass
class ProgressSnapshot:
    rows: dict[int, RowStatus] = field(default_factory=dict)
    run_id: str | None = None  # latest batch run
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "completed": self.completed,
            "rows": {str(i): s.to_dict() for i, s in sorted(self.rows.items())},
        }


def fold_events(events: Iterable[EventRecord]) -> ProgressSnapshot:
    """Fold execution events (in file order) into a progress snapshot.

    - batch_start resets the selected rows to idle and opens a run
    - row_mapped marks a row executing (started_at = event time)
    - override_applied updates the effective card number
    - row_complete sets the terminal state, code, message and duration
    - batch_complete closes the run; completion refers to the latest batch
      run (single-row runs only count when no batch run exists)
    """
    snap = ProgressSnapshot()
    latest_batch: str | None = None
    latest_any: str | None = None
    closed: set[str] = set()

    for ev in events:
        if ev.event == EventType.BATCH_START:
            latest_any = ev.run_id
            if ev.data.get("kind", RUN_KIND_BATCH) == RUN_KIND_BATCH:
                latest_batch = ev.run_id
            for idx in ev.data.get("indices") or []:
                snap.rows[int(idx)] = RowStatus(state=RowState.IDLE)
        elif ev.event == EventType.BATCH_COMPLETE:
            closed.add(ev.run_id)
        elif ev.index < 0:
            continue
        elif ev.event == EventType.ROW_MAPPED:
            snap.rows[ev.index] = RowStatus(
                state=RowState.EXECUTING,
                started_at=ev.timestamp,
                card_no=ev.card_no,
            )
        elif ev.event == EventType.OVERRIDE_APPLIED:
            current = snap.rows.get(ev.index, RowStatus())
            snap.rows[ev.index] = current.merge(card_no=ev.card_no)
        elif ev.event == EventType.ROW_COMPLETE:
            current = snap.rows.get(ev.index, RowStatus())
            state = RowState(ev.data.get("state", RowState.FAILED.value))
            snap.rows[ev.index] = RowStatus(
                state=state,
                code=ev.data.get("code"),
                message=ev.data.get("message"),
                duration_ms=ev.data.get("duration_ms"),
                started_at=current.started_at,
                card_no=ev.card_no if ev.card_no is not None else current.card_no,
            )

    snap.run_id = latest_batch or latest_any
    snap.completed = snap.run_id is not None and snap.run_id in closed
    return snap


class ProgressStore(Protocol):
    def get_progress(self, source_ref: Path) -> dict[int, RowStatus]: ...

    def is_completed(self, source_ref: Path) -> bool: ...


class LogReplayProgressStore:
    """ProgressStore backed by replaying <source>.vault.jsonl."""

    def snapshot(self, source_ref: Path) -> ProgressSnapshot:
        return fold_events(ExecutionLog(source_ref).read_events())

    def get_progress(self, source_ref: Path) -> dict[int, RowStatus]:
        return self.snapshot(source_ref).rows

    def is_completed(self, source_ref: Path) -> bool:
        return self.snapshot(source_ref).completed
