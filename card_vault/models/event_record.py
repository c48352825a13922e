from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

"""EventRecord model for the structured execution log.

One EventRecord is one JSON line in `<source>.vault.jsonl`. The progress
store folds these lines back into per-row RowStatus values, so the key set is
fixed: timestamp, run_id, event, index, card_no, data.

index is -1 for run-level events (batch_start / batch_complete).
"""

__all__ = [
    "EventRecord",
    "EventType",
    "utc_now_iso",
]


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class EventType:
    BATCH_START = "batch_start"
    ROW_MAPPED = "row_mapped"
    OVERRIDE_APPLIED = "override_applied"
    CARD_NO_MISSING = "card_no_missing"
    PHOTO_CANDIDATES = "photo_candidates"
    PHOTO_ATTACH = "photo_attach"
    REQUEST_SENT = "request_sent"
    RESPONSE_RECEIVED = "response_received"
    ROW_ERROR = "row_error"
    ROW_COMPLETE = "row_complete"
    BATCH_COMPLETE = "batch_complete"


@dataclass(frozen=True)
class EventRecord:
    """Structured event for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        run_id: identifier of the batch or single-row run
        event: one of EventType
        index: zero-based source row index, -1 for run-level events
        card_no: resolved card number when known
        data: event payload (photo bytes are never included)
    """
    timestamp: str
    run_id: str
    event: str
    index: int = -1
    card_no: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def create(
        run_id: str,
        event: str,
        index: int = -1,
        card_no: str | None = None,
        **data: Any,
    ) -> EventRecord:
        return EventRecord(
            timestamp=utc_now_iso(),
            run_id=run_id,
            event=event,
            index=index,
            card_no=card_no,
            data=data,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @staticmethod
    def from_json_line(line: str) -> EventRecord:
        raw = json.loads(line)
        return EventRecord(
            timestamp=raw["timestamp"],
            run_id=raw["run_id"],
            event=raw["event"],
            index=int(raw.get("index", -1)),
            card_no=raw.get("card_no"),
            data=raw.get("data") or {},
        )
