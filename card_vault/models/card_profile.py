from __future__ import annotations

from dataclasses import dataclass, fields, replace

"""CardProfile model: canonical representation of one badge.

A CardProfile is built from one spreadsheet row by
card_vault.mapping.profile_mapper and is the only thing the SOAP layer
serializes. Attribute names are snake_case; WIRE_NAMES maps each attribute to
the element name used by the Vault API.
"""

__all__ = [
    "CARD_NO_MAX_LENGTH",
    "CardProfile",
    "WIRE_NAMES",
    "bool_text",
    "truncate_card_no",
]

CARD_NO_MAX_LENGTH = 10


def truncate_card_no(value: str | None) -> str:
    """Trim and cut a card number to the Vault maximum of 10 characters."""
    if value is None:
        return ""
    return str(value).strip()[:CARD_NO_MAX_LENGTH]


def bool_text(value: bool) -> str:
    return "true" if value else "false"


# attribute -> Vault element name
WIRE_NAMES: dict[str, str] = {
    "card_no": "CardNo",
    "name": "Name",
    "card_pin_no": "CardPinNo",
    "card_type": "CardType",
    "department": "Department",
    "company": "Company",
    "gender": "Gentle",
    "access_level": "AccessLevel",
    "lift_access_level": "LiftAccessLevel",
    "face_access_level": "FaceAccessLevel",
    "bypass_ap": "BypassAP",
    "active_status": "ActiveStatus",
    "non_expired": "NonExpired",
    "expired_date": "ExpiredDate",
    "vehicle_no": "VehicleNo",
    "floor_no": "FloorNo",
    "unit_no": "UnitNo",
    "parking_no": "ParkingNo",
    "staff_no": "StaffNo",
    "title": "Title",
    "position": "Position",
    "nric": "NRIC",
    "passport": "Passport",
    "race": "Race",
    "dob": "DOB",
    "joining_date": "JoiningDate",
    "resign_date": "ResignDate",
    "address1": "Address1",
    "address2": "Address2",
    "postal_code": "PostalCode",
    "city": "City",
    "state": "State",
    "email": "Email",
    "mobile_no": "MobileNo",
    "photo": "Photo",
    "download_card": "DownloadCard",
}


@dataclass(frozen=True)
class CardProfile:
    """One badge as sent to Vault.

    Booleans are kept as bool and rendered as "true"/"false" on the wire.
    photo is base64 text or None when no photo file was found.
    """
    card_no: str = ""
    name: str = ""
    staff_no: str = ""
    department: str = ""
    company: str = ""
    title: str = ""
    position: str = ""
    gender: str = ""
    nric: str = ""
    passport: str = ""
    race: str = ""
    dob: str = ""
    joining_date: str = ""
    resign_date: str = ""
    address1: str = ""
    address2: str = ""
    postal_code: str = ""
    city: str = ""
    state: str = ""
    email: str = ""
    mobile_no: str = ""
    vehicle_no: str = ""
    card_pin_no: str = ""
    card_type: str = ""
    bypass_ap: str = ""
    floor_no: str = ""
    unit_no: str = ""
    parking_no: str = ""
    access_level: str = "00"
    face_access_level: str = "00"
    lift_access_level: str = "00"
    active_status: bool = True
    non_expired: bool = True
    expired_date: str = ""
    download_card: bool = True
    photo: str | None = None

    def __post_init__(self) -> None:
        if len(self.card_no) > CARD_NO_MAX_LENGTH:
            object.__setattr__(self, "card_no", truncate_card_no(self.card_no))

    @property
    def has_card_no(self) -> bool:
        return bool(self.card_no.strip())

    def with_photo(self, photo: str | None) -> CardProfile:
        return replace(self, photo=photo)

    def wire_value(self, attr: str) -> str | None:
        """Return the wire text of one attribute (None only for a missing photo)."""
        value = getattr(self, attr)
        if isinstance(value, bool):
            return bool_text(value)
        return value

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]
