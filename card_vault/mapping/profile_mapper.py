from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from ..models.card_profile import CardProfile, truncate_card_no
from ..models.row_override import parse_bool

"""Row -> CardProfile mapping.

Source sheets come from several generations of templates, so every logical
field has a list of header aliases. Aliases are tried in order and the first
non-empty value wins; each alias is matched exactly first, then against
headers normalized for case, spacing and punctuation.

Business rules kept here:
- CardNo is cut to 10 characters. Staff No is NOT a card identifier and is
  never used as a CardNo fallback.
- AccessLevel: explicit column, else derived from MessHall, else "00".
- FaceAccessLevel / LiftAccessLevel: explicit column, else "00".
- ActiveStatus / NonExpired / DownloadCard default to true.
"""

__all__ = [
    "DEFAULT_ACCESS_LEVEL",
    "FIELD_ALIASES",
    "MESS_HALL_ACCESS",
    "derive_access_level",
    "map_row_to_profile",
    "resolve_field",
]

DEFAULT_ACCESS_LEVEL = "00"

# MessHall (lower-cased) -> AccessLevel
MESS_HALL_ACCESS: dict[str, str] = {
    "labota": "1",
    "makarti": "2",
    "": "",
    "no access!!": "",
}

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "card_no": ("Card No #[Max 10]", "Card No [Max 10]", "CardNo", "Card Number", "Card No"),
    "name": ("Card Name [Max 50]", "Name", "Card Name", "Employee Name", "Employee", "Nama"),
    "staff_no": ("Staff No. [Max 10]", "Staff No [Max 10]", "Staff No", "StaffNo", "Emp. No",
                 "Employee ID", "ID", "NIK"),
    "department": ("Department", "Departement", "Dept", "Department [Max 50]"),
    "company": ("Company", "Company [Max 50]"),
    "title": ("Title",),
    "position": ("Position [Max 50]", "Position", "Jabatan"),
    "gender": ("Gender", "Gentle", "Sex"),
    "nric": ("NRIC", "NRIC No", "KTP"),
    "passport": ("Passport", "Passport No"),
    "race": ("Race",),
    "dob": ("DOB", "Date of Birth", "Birth Date"),
    "joining_date": ("Joining Date", "JoiningDate", "Join Date"),
    "resign_date": ("Resign Date", "ResignDate"),
    "address1": ("Address1", "Address 1", "Address"),
    "address2": ("Address2", "Address 2"),
    "postal_code": ("Postal Code", "PostalCode", "Postcode"),
    "city": ("City",),
    "state": ("State",),
    "email": ("Email", "Email Address"),
    "mobile_no": ("Mobile No. [Max 20]", "Mobile No", "MobileNo", "Phone"),
    "vehicle_no": ("Vehicle No", "VehicleNo", "Vehicle No."),
    "card_pin_no": ("Card Pin No", "CardPinNo", "PIN"),
    "card_type": ("Card Type", "CardType"),
    "bypass_ap": ("Bypass AP", "BypassAP"),
    "floor_no": ("Floor No", "FloorNo"),
    "unit_no": ("Unit No", "UnitNo"),
    "parking_no": ("Parking No", "ParkingNo"),
    "access_level": ("Access Level", "AccessLevel"),
    "face_access_level": ("Face Access Level", "FaceAccessLevel"),
    "lift_access_level": ("Lift Access Level", "LiftAccessLevel"),
    "mess_hall": ("MessHall", "Mess Hall"),
    "active_status": ("Active Status", "ActiveStatus"),
    "non_expired": ("Non Expired", "NonExpired"),
    "expired_date": ("Expired Date", "ExpiredDate", "Expiry Date"),
    "download_card": ("Download Card", "DownloadCard", "Download"),
}

_TEXT_FIELDS = (
    "name", "staff_no", "department", "title", "position", "gender", "nric", "passport",
    "race", "dob", "joining_date", "resign_date", "address1", "address2", "postal_code",
    "city", "state", "email", "mobile_no", "vehicle_no", "card_pin_no", "card_type",
    "bypass_ap", "floor_no", "unit_no", "parking_no", "expired_date",
)

_NON_ALNUM = re.compile(r"[^0-9a-z#]+")


def _normalize_header(header: str) -> str:
    return _NON_ALNUM.sub("", str(header).lower())


def _text(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if text.lower() == "nan":
        return ""
    return text


def resolve_field(row: Mapping[str, Any], candidates: Sequence[str]) -> str:
    """Return the first non-empty value among candidate headers ("" if none)."""
    normalized: dict[str, Any] | None = None
    for header in candidates:
        value = _text(row.get(header))
        if value:
            return value
        if normalized is None:
            normalized = {}
            for key, val in row.items():
                normalized.setdefault(_normalize_header(key), val)
        value = _text(normalized.get(_normalize_header(header)))
        if value:
            return value
    return ""


def derive_access_level(explicit: str, mess_hall: str) -> str:
    """Explicit value wins; else MessHall lookup; else the default code."""
    if explicit:
        return explicit
    derived = MESS_HALL_ACCESS.get(mess_hall.strip().lower(), "")
    return derived or DEFAULT_ACCESS_LEVEL


def _flag(row: Mapping[str, Any], field: str, default: bool) -> bool:
    parsed = parse_bool(resolve_field(row, FIELD_ALIASES[field]) or None)
    return default if parsed is None else parsed


def map_row_to_profile(row: Mapping[str, Any], *, default_company: str = "") -> CardProfile:
    """Map one raw source row into a CardProfile. Pure and idempotent."""
    values = {f: resolve_field(row, FIELD_ALIASES[f]) for f in _TEXT_FIELDS}
    mess_hall = resolve_field(row, FIELD_ALIASES["mess_hall"])
    return CardProfile(
        card_no=truncate_card_no(resolve_field(row, FIELD_ALIASES["card_no"])),
        company=resolve_field(row, FIELD_ALIASES["company"]) or default_company,
        access_level=derive_access_level(resolve_field(row, FIELD_ALIASES["access_level"]), mess_hall),
        face_access_level=resolve_field(row, FIELD_ALIASES["face_access_level"]) or DEFAULT_ACCESS_LEVEL,
        lift_access_level=resolve_field(row, FIELD_ALIASES["lift_access_level"]) or DEFAULT_ACCESS_LEVEL,
        active_status=_flag(row, "active_status", True),
        non_expired=_flag(row, "non_expired", True),
        download_card=_flag(row, "download_card", True),
        photo=None,
        **values,
    )
