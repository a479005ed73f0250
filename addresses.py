"""
Resolve who and where a submission ships to.

A donation or request carries one shipping/contact identity, taken from one of
three sources in priority order:

1. the "new address" form the user typed in (always used when the user has
   no saved addresses),
2. one of the user's saved ``UserAddress`` rows,
3. the legacy contact fields of ``UserProfile``, used only to pre-fill empty
   form fields.

The result is a ``ShippingSnapshot``: a frozen value copied into the stored
row at submission time. Editing or deleting the source address afterwards
never changes a past submission.
"""

import logging
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from config import settings
from errors import IncompleteShippingInfo, MissingAddressSelection
from models import UserAddress, UserProfile

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "phone", "address", "city")


class ContactFields(BaseModel):
    """Free-form contact/address fields as typed into the new-address form."""

    name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class ShippingSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    email: str = ""
    address: str
    city: str
    state: str = ""
    zip_code: str = ""
    country: str

    def request_columns(self) -> dict:
        """Column values for the shipping_* fields of an item request."""
        return {
            "shipping_name": self.name,
            "shipping_phone": self.phone,
            "shipping_address": self.address,
            "shipping_city": self.city,
            "shipping_state": self.state,
            "shipping_zip": self.zip_code,
            "shipping_country": self.country,
        }

    def donor_note(self) -> str:
        """Contact block appended to a donation's description."""
        return (
            f"Donor: {self.name}\n"
            f"Phone: {self.phone}\n"
            f"Email: {self.email}\n"
            f"Location: {self.address}, {self.city}, {self.country}"
        )

    def one_line(self) -> str:
        parts = [self.address, self.city, self.state, self.zip_code, self.country]
        return ", ".join(part for part in parts if part)


def profile_contact(profile: Optional[UserProfile], email: str = "") -> ContactFields:
    """Legacy fallback fields of a profile as a ``ContactFields``."""
    if profile is None:
        return ContactFields(email=email)
    return ContactFields(
        name=profile.name or "",
        phone=profile.phone or "",
        email=email or profile.email or "",
        address=profile.address or "",
        city=profile.city or "",
        state=profile.state or "",
        zip_code=profile.zip_code or "",
        country=profile.country or "",
    )


def fill_empty_fields(fields: ContactFields, fallback: ContactFields) -> ContactFields:
    """
    Merge ``fallback`` into ``fields``, filling only the fields that are empty.
    Anything the user already typed wins.
    """
    updates = {
        key: value
        for key, value in fallback.model_dump().items()
        if value and not getattr(fields, key).strip()
    }
    return fields.model_copy(update=updates)


def select_default_address(addresses: Sequence[UserAddress]) -> Optional[int]:
    """
    Pick the address a form should start with.

    The first primary address wins, else the first address in list order
    (primary-first, newest-first as returned by the store), else nothing.
    """
    for address in addresses:
        if address.is_primary:
            return address.id
    if addresses:
        return addresses[0].id
    return None


def find_address(
    addresses: Sequence[UserAddress], address_id: Optional[int]
) -> Optional[UserAddress]:
    if address_id is None:
        return None
    for address in addresses:
        if address.id == address_id:
            return address
    return None


def snapshot_from_address(
    address: UserAddress,
    email: str = "",
    default_country: Optional[str] = None,
) -> ShippingSnapshot:
    return ShippingSnapshot(
        name=address.name,
        phone=address.phone,
        email=email,
        address=address.address,
        city=address.city,
        state=address.state or "",
        zip_code=address.zip_code or "",
        country=address.country or default_country or settings.DEFAULT_COUNTRY,
    )


def snapshot_from_fields(
    fields: ContactFields,
    profile_fallback: Optional[ContactFields] = None,
    email: str = "",
    default_country: Optional[str] = None,
) -> ShippingSnapshot:
    fallback_name = profile_fallback.name if profile_fallback else ""
    return ShippingSnapshot(
        name=fields.name.strip() or fallback_name,
        phone=fields.phone.strip(),
        email=fields.email.strip() or email,
        address=fields.address.strip(),
        city=fields.city.strip(),
        state=fields.state.strip(),
        zip_code=fields.zip_code.strip(),
        country=fields.country.strip() or default_country or settings.DEFAULT_COUNTRY,
    )


def validate_shipping(snapshot: ShippingSnapshot) -> ShippingSnapshot:
    missing = [field for field in REQUIRED_FIELDS if not getattr(snapshot, field).strip()]
    if missing:
        raise IncompleteShippingInfo(missing)
    return snapshot


def resolve_shipping_info(
    addresses: Sequence[UserAddress],
    selected_address_id: Optional[int],
    use_new_address_form: bool,
    new_address_fields: ContactFields,
    profile_fallback: Optional[ContactFields] = None,
    email: str = "",
    default_country: Optional[str] = None,
) -> ShippingSnapshot:
    """
    Produce the validated shipping snapshot for a submission.

    Raises:
        MissingAddressSelection: a saved address should be used but the
            selection is empty or no longer matches any address. There is
            no silent fallback to the form fields.
        IncompleteShippingInfo: name, phone, address or city is empty.
    """
    if use_new_address_form or not addresses:
        snapshot = snapshot_from_fields(
            new_address_fields, profile_fallback, email, default_country
        )
    else:
        address = find_address(addresses, selected_address_id)
        if address is None:
            logger.debug("address %s not among %d saved addresses",
                         selected_address_id, len(addresses))
            raise MissingAddressSelection(selected_address_id)
        snapshot = snapshot_from_address(address, email, default_country)
    return validate_shipping(snapshot)
