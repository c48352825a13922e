from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .row_status import RowState

"""Execution result models for the card registration engine.

ExecutionResult is the batch aggregate handed back to the caller. It is never
mutated through shared counters: workers produce RowOutcome values and
ExecutionResult.from_outcomes reduces them once the batch is done.
"""


class ErrorCode(str, Enum):
    """Error taxonomy. Batch-fatal codes stop before any row is processed."""
    OUTPUT_NOT_FOUND = "OUTPUT_NOT_FOUND"
    CSV_NOT_FOUND = "CSV_NOT_FOUND"
    NO_ROWS = "NO_ROWS"
    UNSUPPORTED_SOURCE = "UNSUPPORTED_SOURCE"
    UNREADABLE_SOURCE = "UNREADABLE_SOURCE"
    CARD_NO_MISSING = "CARD_NO_MISSING"
    HTTP_ERROR = "HTTP_ERROR"
    VAULT_ERROR = "VAULT_ERROR"
    REQUEST_FAILED = "REQUEST_FAILED"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    ROW_NOT_FOUND = "ROW_NOT_FOUND"

    @property
    def is_fatal(self) -> bool:
        return self in FATAL_CODES


FATAL_CODES = frozenset(
    {
        ErrorCode.OUTPUT_NOT_FOUND,
        ErrorCode.CSV_NOT_FOUND,
        ErrorCode.NO_ROWS,
        ErrorCode.UNSUPPORTED_SOURCE,
        ErrorCode.UNREADABLE_SOURCE,
    }
)


@dataclass(frozen=True)
class ExecutionError:
    code: str
    message: str
    card_no: str | None = None
    index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.card_no is not None:
            out["cardNo"] = self.card_no
        if self.index is not None:
            out["index"] = self.index
        return out


@dataclass(frozen=True)
class RowDetail:
    """Per-row entry of ExecutionResult.details.

    row / profile are only filled by preview (raw source row and the wire
    payload that would be sent).
    """
    index: int
    card_no: str
    name: str
    staff_no: str = ""
    has_photo: bool = False
    state: RowState = RowState.IDLE
    resp_code: str | None = None
    resp_message: str | None = None
    card_id: str | None = None
    duration_ms: int | None = None
    row: dict[str, Any] | None = None
    profile: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.state is RowState.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "index": self.index,
            "cardNo": self.card_no,
            "name": self.name,
            "staffNo": self.staff_no,
            "hasPhoto": self.has_photo,
            "state": self.state.value,
            "success": self.success,
            "respCode": self.resp_code,
            "respMessage": self.resp_message,
        }
        if self.card_id is not None:
            out["cardId"] = self.card_id
        if self.duration_ms is not None:
            out["durationMs"] = self.duration_ms
        if self.row is not None:
            out["row"] = self.row
        if self.profile is not None:
            out["profile"] = self.profile
        return out


@dataclass(frozen=True)
class RowOutcome:
    """Result of processing one row, produced by a worker."""
    detail: RowDetail
    error: ExecutionError | None = None

    @property
    def state(self) -> RowState:
        return self.detail.state


@dataclass(frozen=True)
class ExecutionResult:
    """Batch-level aggregate.

    Invariant: attempted == registered + failed + skipped
    """
    run_id: str
    source: str
    endpoint_url: str
    attempted: int = 0
    registered: int = 0
    failed: int = 0
    skipped: int = 0
    with_photo: int = 0
    without_photo: int = 0
    total_rows: int = 0
    errors: list[ExecutionError] = field(default_factory=list)
    details: list[RowDetail] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    cancelled: bool = False
    preview: bool = False

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def fatal(self) -> bool:
        fatal_values = {c.value for c in FATAL_CODES}
        return any(e.code in fatal_values for e in self.errors)

    @property
    def has_errors(self) -> bool:
        """Completed with errors (not a hard failure unless fatal)."""
        return bool(self.errors)

    @staticmethod
    def from_outcomes(
        outcomes: Iterable[RowOutcome],
        *,
        run_id: str,
        source: str,
        endpoint_url: str,
        total_rows: int,
        started_at: datetime,
        finished_at: datetime,
        cancelled: bool = False,
        preview: bool = False,
    ) -> ExecutionResult:
        """Reduce completed per-row outcomes into the aggregate (ordered by row index)."""
        ordered = sorted(outcomes, key=lambda o: o.detail.index)
        attempted = registered = failed = skipped = with_photo = without_photo = 0
        errors: list[ExecutionError] = []
        for o in ordered:
            if o.error is not None:
                errors.append(o.error)
            if preview:
                continue
            state = o.state
            if not state.is_terminal:
                continue
            attempted += 1
            if state is RowState.SUCCESS:
                registered += 1
            elif state is RowState.FAILED:
                failed += 1
            else:
                skipped += 1
                continue
            if o.detail.has_photo:
                with_photo += 1
            else:
                without_photo += 1
        return ExecutionResult(
            run_id=run_id,
            source=source,
            endpoint_url=endpoint_url,
            attempted=attempted,
            registered=registered,
            failed=failed,
            skipped=skipped,
            with_photo=with_photo,
            without_photo=without_photo,
            total_rows=total_rows,
            errors=errors,
            details=[o.detail for o in ordered],
            started_at=started_at,
            finished_at=finished_at,
            cancelled=cancelled,
            preview=preview,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "source": self.source,
            "endpointBaseUrl": self.endpoint_url,
            "attempted": self.attempted,
            "registered": self.registered,
            "failed": self.failed,
            "skipped": self.skipped,
            "withPhoto": self.with_photo,
            "withoutPhoto": self.without_photo,
            "totalRows": self.total_rows,
            "errorCount": len(self.errors),
            "errors": [e.to_dict() for e in self.errors],
            "details": [d.to_dict() for d in self.details],
            "cancelled": self.cancelled,
            "preview": self.preview,
            "elapsedSeconds": self.elapsed_seconds,
        }
