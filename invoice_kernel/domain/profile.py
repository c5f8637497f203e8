"""
BusinessProfile and ShopSettings -- seller-side inputs to an invoice.

Responsibility:
    Frozen value objects for the data supplied by the settings
    collaborator, plus format validation for the Indian registration
    identifiers printed on every invoice.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - ``from_mapping`` reports every malformed field at once.
    - GSTIN, PAN, pincode and IFSC are checked against their fixed formats
      when present; only company name and state are mandatory.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from invoice_kernel.domain.order import Address
from invoice_kernel.domain.states import is_known_state
from invoice_kernel.exceptions import BusinessProfileError

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
PINCODE_PATTERN = re.compile(r"^[1-9][0-9]{5}$")
IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")


@dataclass(frozen=True)
class BankDetails:
    account_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    bank_name: str = ""
    branch: str = ""


@dataclass(frozen=True)
class BusinessProfile:
    """Seller identity printed in the invoice header and footer."""

    company_name: str
    address: Address
    gstin: str = ""
    pan: str = ""
    email: str = ""
    phone: str = ""
    website: str = ""
    bank: BankDetails | None = None
    logo_ref: str | None = None
    signature_ref: str | None = None

    @property
    def state_code(self) -> str | None:
        return self.address.state_code

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BusinessProfile:
        """Parse and validate a settings payload.

        Raises:
            BusinessProfileError: listing every invalid field.
        """
        def text(key: str, source: Mapping[str, Any] = data) -> str:
            value = source.get(key)
            return "" if value is None else str(value).strip()

        address_data = data.get("address") or {}
        bank_data = data.get("bank")

        address = Address(
            name=text("company_name"),
            line1=text("line1", address_data),
            line2=text("line2", address_data),
            city=text("city", address_data),
            state=text("state", address_data),
            state_code=text("state_code", address_data).upper() or None,
            pincode=text("pincode", address_data),
            country=text("country", address_data) or "India",
        )
        bank = None
        if bank_data:
            bank = BankDetails(
                account_name=text("account_name", bank_data),
                account_number=text("account_number", bank_data),
                ifsc_code=text("ifsc_code", bank_data).upper(),
                bank_name=text("bank_name", bank_data),
                branch=text("branch", bank_data),
            )

        profile = cls(
            company_name=text("company_name"),
            address=address,
            gstin=text("gstin").upper(),
            pan=text("pan").upper(),
            email=text("email"),
            phone=text("phone"),
            website=text("website"),
            bank=bank,
            logo_ref=text("logo_ref") or None,
            signature_ref=text("signature_ref") or None,
        )
        errors = validate_business_profile(profile)
        if errors:
            raise BusinessProfileError(errors)
        return profile


def validate_business_profile(profile: BusinessProfile) -> list[str]:
    """Return every format violation in ``profile`` (empty when valid)."""
    errors: list[str] = []
    if not profile.company_name:
        errors.append("Company name is required")
    if not profile.address.state_code:
        errors.append("Business state code is required")
    elif not is_known_state(profile.address.state_code):
        errors.append(f"Invalid business state code: {profile.address.state_code}")
    if profile.gstin and not GSTIN_PATTERN.match(profile.gstin):
        errors.append(f"Invalid GSTIN format: {profile.gstin}")
    if profile.pan and not PAN_PATTERN.match(profile.pan):
        errors.append(f"Invalid PAN format: {profile.pan}")
    if profile.address.pincode and not PINCODE_PATTERN.match(profile.address.pincode):
        errors.append(f"Invalid pincode: {profile.address.pincode}")
    if profile.bank and profile.bank.ifsc_code and not IFSC_PATTERN.match(
        profile.bank.ifsc_code
    ):
        errors.append(f"Invalid IFSC code: {profile.bank.ifsc_code}")
    return errors


@dataclass(frozen=True)
class ShopSettings:
    """Per-shop invoicing preferences returned by the settings collaborator."""

    business: BusinessProfile
    invoice_prefix: str = "INV"
    invoice_start_number: int = 1001
    layout: str = "classic"
    default_state: str = "MH"
    date_format: str = "%d/%m/%Y"
    auto_send_invoice: bool = False
    copy_labels: tuple[str, ...] = field(default=("ORIGINAL",))

    def __post_init__(self):
        if not self.invoice_prefix.strip():
            raise ValueError("invoice_prefix cannot be empty")
        if self.invoice_start_number < 1:
            raise ValueError("invoice_start_number must be positive")
        if not self.copy_labels:
            raise ValueError("copy_labels cannot be empty")
