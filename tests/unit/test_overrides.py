from __future__ import annotations

import pytest

from card_vault.mapping.overrides import apply_override, lookup_override
from card_vault.models.card_profile import CardProfile
from card_vault.models.row_override import OverrideTable, RowOverride, parse_bool


@pytest.mark.parametrize("text,expected", [
    ("true", True), ("YES", True), ("1", True), ("active", True),
    ("false", False), ("No", False), ("0", False), ("inactive", False),
    ("maybe", None), (None, None), (True, True),
])
def test_parse_bool(text, expected):
    assert parse_bool(text) is expected


def test_from_dict_accepts_api_keys():
    ov = RowOverride.from_dict({"index": 2, "cardNo": "999", "downloadCard": "false"})
    assert ov == RowOverride(index=2, card_no="999", download_card=False)
    assert ov.to_dict() == {"index": 2, "cardNo": "999", "downloadCard": False}


def test_from_dict_requires_non_negative_index():
    with pytest.raises(ValueError):
        RowOverride.from_dict({"cardNo": "1"})
    with pytest.raises(ValueError):
        RowOverride.from_dict({"index": -1})


def test_override_table_last_entry_wins():
    table = OverrideTable.from_dicts([{"index": 0, "cardNo": "A"}, {"index": 0, "cardNo": "B"}])
    assert len(table) == 1
    assert table.get(0).card_no == "B"
    table.clear(0)
    assert 0 not in table
    assert lookup_override(table, 0) is None
    assert lookup_override(None, 0) is None


def test_apply_override_replaces_card_no_and_download_card():
    p = CardProfile(card_no="111", name="X")
    q = apply_override(p, RowOverride(index=0, card_no="12345678901234", download_card=False))
    assert q.card_no == "1234567890"
    assert q.download_card is False
    assert q.name == "X"


def test_apply_override_empty_card_no_empties_it():
    p = CardProfile(card_no="111")
    assert apply_override(p, RowOverride(index=0, card_no="")).card_no == ""


def test_apply_override_absent_fields_keep_mapped_values():
    p = CardProfile(card_no="111", download_card=True)
    assert apply_override(p, RowOverride(index=0)) is p
    assert apply_override(p, None) is p


def test_apply_override_is_idempotent():
    p = CardProfile(card_no="111")
    ov = RowOverride(index=0, card_no="222", download_card=False)
    once = apply_override(p, ov)
    assert apply_override(once, ov) == once
