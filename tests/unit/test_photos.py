from __future__ import annotations

import base64
from pathlib import Path

from card_vault.mapping.photos import PhotoResolver
from card_vault.models.card_profile import CardProfile


def test_candidates_card_no_first_then_staff_no(tmp_path: Path):
    r = PhotoResolver(tmp_path)
    assert r.candidates("C1", "S1") == [
        "C1.jpg", "C1.jpeg", "C1.png", "S1.jpg", "S1.jpeg", "S1.png",
    ]
    assert r.candidates("", "S1") == ["S1.jpg", "S1.jpeg", "S1.png"]
    assert r.candidates("X", "X") == ["X.jpg", "X.jpeg", "X.png"]


def test_card_no_photo_preferred_over_staff_no(tmp_path: Path):
    (tmp_path / "S1.jpg").write_bytes(b"staff")
    (tmp_path / "C1.png").write_bytes(b"card")
    match = PhotoResolver(tmp_path).find("C1", "S1")
    assert match.path == tmp_path / "C1.png"


def test_staff_no_fallback(tmp_path: Path):
    (tmp_path / "S1.jpeg").write_bytes(b"staff")
    assert PhotoResolver(tmp_path).find("C1", "S1").path == tmp_path / "S1.jpeg"


def test_attach_encodes_base64(tmp_path: Path):
    (tmp_path / "C1.jpg").write_bytes(b"\xff\xd8jpeg")
    profile, match = PhotoResolver(tmp_path).attach(CardProfile(card_no="C1"))
    assert match.found
    assert profile.photo == base64.b64encode(b"\xff\xd8jpeg").decode("ascii")


def test_missing_photo_is_not_an_error(tmp_path: Path):
    resolver = PhotoResolver(tmp_path)
    profile, match = resolver.attach(CardProfile(card_no="C1", staff_no="S1"))
    assert profile.photo is None
    assert not match.found
    assert resolver.has_photo("C1", "S1") is False


def test_custom_extensions(tmp_path: Path):
    (tmp_path / "C1.bmp").write_bytes(b"x")
    assert PhotoResolver(tmp_path, (".bmp",)).has_photo("C1") is True
    assert PhotoResolver(tmp_path).has_photo("C1") is False
