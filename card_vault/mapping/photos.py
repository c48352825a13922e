from __future__ import annotations

import base64
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..models.card_profile import CardProfile
from ..models.config_models import DEFAULT_PHOTO_EXTENSIONS

"""Photo lookup for card profiles.

Photos sit next to the source data and are named after the card number, or
after the staff number when no card-number file exists:

    {CardNo}.jpg, {CardNo}.jpeg, {CardNo}.png, {StaffNo}.jpg, ...

The first existing file wins. A missing photo is not an error.
"""

__all__ = [
    "PhotoMatch",
    "PhotoResolver",
]


@dataclass(frozen=True)
class PhotoMatch:
    candidates: list[str]  # file names tried, in order
    path: Path | None  # first existing candidate

    @property
    def found(self) -> bool:
        return self.path is not None


class PhotoResolver:
    def __init__(self, directory: Path, extensions: Sequence[str] = DEFAULT_PHOTO_EXTENSIONS) -> None:
        self.directory = directory
        self.extensions = tuple(extensions)

    def candidates(self, card_no: str, staff_no: str = "") -> list[str]:
        names: list[str] = []
        for stem in (card_no.strip(), staff_no.strip()):
            if not stem:
                continue
            for ext in self.extensions:
                name = f"{stem}{ext}"
                if name not in names:
                    names.append(name)
        return names

    def find(self, card_no: str, staff_no: str = "") -> PhotoMatch:
        """Locate the photo file without reading it."""
        names = self.candidates(card_no, staff_no)
        for name in names:
            path = self.directory / name
            if path.is_file():
                return PhotoMatch(candidates=names, path=path)
        return PhotoMatch(candidates=names, path=None)

    def has_photo(self, card_no: str, staff_no: str = "") -> bool:
        """Existence-only check for preview screens."""
        return self.find(card_no, staff_no).found

    def attach(self, profile: CardProfile) -> tuple[CardProfile, PhotoMatch]:
        """Return the profile with Photo set to base64 of the matched file (or None)."""
        match = self.find(profile.card_no, profile.staff_no)
        if match.path is None:
            return profile.with_photo(None), match
        encoded = base64.b64encode(match.path.read_bytes()).decode("ascii")
        return profile.with_photo(encoded), match
