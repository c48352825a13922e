from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Protocol

"""Vault response parsing.

The Vault responder is not reliable about well-formed XML (truncated bodies,
HTML error pages, stray prefixes), so the primary parser scans the text for
<ErrCode>, <ErrMessage> and <CardID>/<ID>. XmlResponseParser is a strict
alternative that can be plugged into VaultClient instead.
"""

__all__ = [
    "ParsedResponse",
    "RegexResponseParser",
    "ResponseParser",
    "XmlResponseParser",
]


@dataclass(frozen=True)
class ParsedResponse:
    err_code: str | None = None
    err_message: str | None = None
    card_id: str | None = None


class ResponseParser(Protocol):
    def parse(self, text: str) -> ParsedResponse: ...


def _tag_pattern(tag: str) -> re.Pattern[str]:
    # optional namespace prefix, tolerate attributes
    return re.compile(rf"<(?:\w+:)?{tag}(?:\s[^>]*)?>(.*?)</(?:\w+:)?{tag}>", re.DOTALL)


class RegexResponseParser:
    _ERR_CODE = _tag_pattern("ErrCode")
    _ERR_MESSAGE = _tag_pattern("ErrMessage")
    _CARD_ID = _tag_pattern("CardID")
    _ID = _tag_pattern("ID")

    @staticmethod
    def _first(pattern: re.Pattern[str], text: str) -> str | None:
        m = pattern.search(text)
        return m.group(1).strip() if m else None

    def parse(self, text: str) -> ParsedResponse:
        text = text or ""
        card_id = self._first(self._CARD_ID, text)
        if card_id is None:
            card_id = self._first(self._ID, text)
        return ParsedResponse(
            err_code=self._first(self._ERR_CODE, text),
            err_message=self._first(self._ERR_MESSAGE, text),
            card_id=card_id,
        )


class XmlResponseParser:
    """Strict parser. Malformed XML yields an empty ParsedResponse."""

    @staticmethod
    def _local(tag: str) -> str:
        return tag.rsplit("}", 1)[-1]

    def parse(self, text: str) -> ParsedResponse:
        try:
            root = ET.fromstring(text)
        except ET.ParseError:
            return ParsedResponse()
        found: dict[str, str] = {}
        for el in root.iter():
            name = self._local(el.tag)
            if name in ("ErrCode", "ErrMessage", "CardID", "ID") and name not in found:
                found[name] = (el.text or "").strip()
        return ParsedResponse(
            err_code=found.get("ErrCode"),
            err_message=found.get("ErrMessage"),
            card_id=found.get("CardID", found.get("ID")),
        )
