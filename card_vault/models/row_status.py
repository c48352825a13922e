from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

"""RowState enum and RowStatus model.

RowStatus is the unit of progress observable outside the engine. It is
rebuilt from the JSON-lines event log by card_vault.services.progress, so it
must be serializable both ways.
"""


class RowState(Enum):
    """Per-row lifecycle.

    State transitions: idle → executing → (success | failed | skipped)

    - IDLE: row not started (or not selected / cancelled before start)
    - EXECUTING: mapped and in flight
    - SUCCESS: Vault accepted the profile
    - FAILED: transport or business rejection
    - SKIPPED: no card number after overrides, nothing was sent
    """
    IDLE = "idle"
    EXECUTING = "executing"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (RowState.SUCCESS, RowState.FAILED, RowState.SKIPPED)


@dataclass(frozen=True)
class RowStatus:
    state: RowState = RowState.IDLE
    code: str | None = None
    message: str | None = None
    duration_ms: int | None = None
    started_at: str | None = None  # ISO8601 UTC
    card_no: str | None = None

    def merge(self, **changes: Any) -> RowStatus:
        """Apply non-None changes, keeping previously known values."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"state": self.state.value}
        if self.code is not None:
            out["code"] = self.code
        if self.message is not None:
            out["message"] = self.message
        if self.duration_ms is not None:
            out["durationMs"] = self.duration_ms
        if self.started_at is not None:
            out["startedAt"] = self.started_at
        if self.card_no is not None:
            out["cardNo"] = self.card_no
        return out
