from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

"""RowOverride model: caller-supplied correction for one row.

Overrides are keyed by the zero-based position of the row in its source.
Absent fields (None) mean "leave the mapped value alone"; an empty card_no
string is a deliberate value and empties the card number.
"""

__all__ = [
    "OverrideTable",
    "RowOverride",
    "parse_bool",
]

_TRUE = {"true", "1", "yes", "y", "t", "on", "active"}
_FALSE = {"false", "0", "no", "n", "f", "off", "inactive"}


def parse_bool(value: Any) -> bool | None:
    """Parse common spreadsheet/JSON boolean spellings. Unknown -> None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return None


@dataclass(frozen=True)
class RowOverride:
    index: int
    card_no: str | None = None
    download_card: bool | None = None

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> RowOverride:
        """Build from an API-style dict: {"index": 0, "cardNo": "...", "downloadCard": true}."""
        if "index" not in data:
            raise ValueError("override requires an 'index'")
        index = int(data["index"])
        if index < 0:
            raise ValueError(f"override index must be >= 0: {index}")
        card_no = data.get("cardNo", data.get("card_no"))
        download = data.get("downloadCard", data.get("download_card"))
        return RowOverride(
            index=index,
            card_no=None if card_no is None else str(card_no),
            download_card=parse_bool(download),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"index": self.index}
        if self.card_no is not None:
            out["cardNo"] = self.card_no
        if self.download_card is not None:
            out["downloadCard"] = self.download_card
        return out


class OverrideTable:
    """Index-keyed table of RowOverride. Later entries for an index replace earlier ones."""

    def __init__(self, overrides: Iterable[RowOverride] = ()) -> None:
        self._by_index: dict[int, RowOverride] = {}
        for ov in overrides:
            self.set(ov)

    @classmethod
    def from_dicts(cls, items: Iterable[Mapping[str, Any]]) -> OverrideTable:
        return cls(RowOverride.from_dict(item) for item in items)

    def set(self, override: RowOverride) -> None:
        self._by_index[override.index] = override

    def get(self, index: int) -> RowOverride | None:
        return self._by_index.get(index)

    def clear(self, index: int) -> None:
        self._by_index.pop(index, None)

    def __len__(self) -> int:
        return len(self._by_index)

    def __contains__(self, index: object) -> bool:
        return index in self._by_index
