from __future__ import annotations

from dataclasses import replace

from ..models.card_profile import CardProfile, truncate_card_no
from ..models.row_override import OverrideTable, RowOverride

"""Per-row CardNo / DownloadCard corrections applied on top of a mapped profile."""


def apply_override(profile: CardProfile, override: RowOverride | None) -> CardProfile:
    """Merge a row override into a mapped profile.

    card_no replaces CardNo (re-truncated; "" empties it on purpose).
    download_card replaces DownloadCard. Everything else passes through.
    Applying the same override twice gives the same profile.
    """
    if override is None:
        return profile
    changes: dict[str, object] = {}
    if override.card_no is not None:
        changes["card_no"] = truncate_card_no(override.card_no)
    if override.download_card is not None:
        changes["download_card"] = override.download_card
    if not changes:
        return profile
    return replace(profile, **changes)


def lookup_override(overrides: OverrideTable | None, index: int) -> RowOverride | None:
    if overrides is None:
        return None
    return overrides.get(index)
