from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..models.card_profile import WIRE_NAMES, CardProfile
from ..models.config_models import SoapConfig

"""SOAP envelope building for Vault card actions.

Two payload shapes share one escaping / namespace implementation:

- CREATE (AddCard): the minimal field set
- UPDATE (UpdateCard): the full identity / demographic field set

A missing photo is rendered as a self-closing <Photo /> element; the Vault
API accepts that but rejects an empty <Photo></Photo> on some versions.
"""

__all__ = [
    "EnvelopeBuilder",
    "EnvelopeVariant",
    "SOAP_ENV_NAMESPACES",
    "escape_xml",
    "variant_headers",
    "variant_payload",
]

SOAP_ENV_NAMESPACES = {
    "1.1": "http://schemas.xmlsoap.org/soap/envelope/",
    "1.2": "http://www.w3.org/2003/05/soap-envelope",
}

_XML_ESCAPES = (
    ("&", "&amp;"),  # must be first
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


def escape_xml(value: object) -> str:
    if value is None:
        return ""
    text = str(value)
    for raw, escaped in _XML_ESCAPES:
        text = text.replace(raw, escaped)
    return text


class EnvelopeVariant(Enum):
    CREATE = "create"
    UPDATE = "update"


# Element order as expected by the service WSDL
_CREATE_FIELDS = (
    "card_no", "name", "department", "company", "access_level", "face_access_level",
    "active_status", "non_expired", "expired_date", "email", "mobile_no", "photo",
    "download_card",
)
_UPDATE_FIELDS = (
    "card_no", "name", "card_pin_no", "card_type", "department", "company", "gender",
    "access_level", "lift_access_level", "face_access_level", "bypass_ap", "active_status",
    "non_expired", "expired_date", "vehicle_no", "floor_no", "unit_no", "parking_no",
    "staff_no", "title", "position", "nric", "passport", "race", "dob", "joining_date",
    "resign_date", "address1", "address2", "postal_code", "city", "state", "email",
    "mobile_no", "photo", "download_card",
)

VARIANT_FIELDS: dict[EnvelopeVariant, tuple[str, ...]] = {
    EnvelopeVariant.CREATE: _CREATE_FIELDS,
    EnvelopeVariant.UPDATE: _UPDATE_FIELDS,
}


def variant_headers(variant: EnvelopeVariant) -> list[str]:
    """Wire names of a variant (used for the downloadable template)."""
    return [WIRE_NAMES[f] for f in VARIANT_FIELDS[variant] if f != "photo"]


def variant_payload(profile: CardProfile, variant: EnvelopeVariant) -> dict[str, str | None]:
    """Wire name -> value for exactly the elements the variant sends, in order."""
    return {WIRE_NAMES[attr]: profile.wire_value(attr) for attr in VARIANT_FIELDS[variant]}


@dataclass(frozen=True)
class Envelope:
    action: str
    soap_action: str  # namespace + action
    version: str
    body: str


class EnvelopeBuilder:
    def __init__(self, config: SoapConfig | None = None) -> None:
        self.config = config or SoapConfig()
        if self.config.version not in SOAP_ENV_NAMESPACES:
            raise ValueError(f"unsupported SOAP version: {self.config.version}")

    @property
    def envelope_namespace(self) -> str:
        return SOAP_ENV_NAMESPACES[self.config.version]

    def action_for(self, variant: EnvelopeVariant) -> str:
        if variant is EnvelopeVariant.CREATE:
            return self.config.create_action
        return self.config.update_action

    def _fields_xml(self, profile: CardProfile, variant: EnvelopeVariant) -> list[str]:
        lines = []
        for tag, value in variant_payload(profile, variant).items():
            if tag == WIRE_NAMES["photo"] and not value:
                lines.append(f"<{tag} />")
            else:
                lines.append(f"<{tag}>{escape_xml(value)}</{tag}>")
        return lines

    def build(self, profile: CardProfile, variant: EnvelopeVariant = EnvelopeVariant.CREATE) -> Envelope:
        action = self.action_for(variant)
        ns = self.config.namespace
        body_fields = "\n      ".join(self._fields_xml(profile, variant))
        xml = (
            '<?xml version="1.0" encoding="utf-8"?>\n'
            '<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
            'xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
            f'xmlns:soap="{self.envelope_namespace}">\n'
            "  <soap:Body>\n"
            f'    <{action} xmlns="{escape_xml(ns)}">\n'
            f"      {body_fields}\n"
            f"    </{action}>\n"
            "  </soap:Body>\n"
            "</soap:Envelope>"
        )
        return Envelope(action=action, soap_action=f"{ns}{action}", version=self.config.version, body=xml)
