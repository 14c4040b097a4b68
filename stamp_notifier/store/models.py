"""Stamp Notifier — Record Models.

Typed projection of the Airtable "Image link" rows. Raw field maps are
parsed once at the scan boundary; everything downstream works with
StampRecord.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

# Field projection requested from the store, in store naming.
RECORD_FIELDS: tuple[str, ...] = (
    "experienceName",
    "pubKeyHex",
    "imageUrl",
    "allocated",
    "posted",
    "cardPhotoUrl",
    "cardHolder",
)


def _text(value: Any) -> Optional[str]:
    """Coerce a raw field value to a non-empty string or None.

    Lookup and attachment fields arrive as lists; the first element is
    used, and attachments contribute their ``url``.
    """
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("url")
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _flag(value: Any) -> bool:
    if isinstance(value, list):
        value = value[0] if value else None
    return value is True or (isinstance(value, str) and value.lower() == "true")


@dataclass(frozen=True)
class StampRecord:
    """One row of the stamp table.

    Attributes:
        record_id: Store identifier of the row.
        experience_name: Subject of the notification.
        pub_key_hex: Card public key. Carried through, unused here.
        image_url: Stamp artwork; presence means the stamp can be claimed.
        allocated: True once the stamp is due for announcement.
        posted: True once the announcement has been committed.
        card_photo_url: Photo of the NFC card.
        card_holder: Owner of the NFC card.
    """

    record_id: str
    experience_name: Optional[str] = None
    pub_key_hex: Optional[str] = None
    image_url: Optional[str] = None
    allocated: bool = False
    posted: bool = False
    card_photo_url: Optional[str] = None
    card_holder: Optional[str] = None

    @property
    def is_eligible(self) -> bool:
        """Allocated but not yet posted."""
        return self.allocated and not self.posted

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "StampRecord":
        """Parse an Airtable record object (``{"id": ..., "fields": {...}}``).

        Args:
            raw: Record as returned by the list endpoint.

        Returns:
            Parsed StampRecord. Absent fields become None/False.

        Raises:
            ValueError: If the record is not an object or has no id.
        """
        if not isinstance(raw, dict):
            raise ValueError(f"Record is not an object: {raw!r}")
        record_id = raw.get("id")
        if not record_id:
            raise ValueError(f"Record without id: {raw!r}")

        fields = raw.get("fields")
        if not isinstance(fields, dict):
            fields = {}
        return cls(
            record_id=str(record_id),
            experience_name=_text(fields.get("experienceName")),
            pub_key_hex=_text(fields.get("pubKeyHex")),
            image_url=_text(fields.get("imageUrl")),
            allocated=_flag(fields.get("allocated")),
            posted=_flag(fields.get("posted")),
            card_photo_url=_text(fields.get("cardPhotoUrl")),
            card_holder=_text(fields.get("cardHolder")),
        )
