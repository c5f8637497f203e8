"""
External collaborators the orchestrator depends on.

Order retrieval, shop settings and outbound email belong to other
systems.  They are modelled as Protocols so production adapters and test
fakes plug in the same way.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from invoice_kernel.domain.profile import ShopSettings


@runtime_checkable
class OrderSource(Protocol):
    def fetch_order(self, shop: str, order_id: str) -> Mapping[str, Any]:
        """Raw order payload.  Raises OrderNotFoundError if absent."""
        ...


@runtime_checkable
class SettingsSource(Protocol):
    def get_settings(self, shop: str) -> ShopSettings: ...


@dataclass(frozen=True)
class InvoiceEmail:
    shop: str
    to: str
    subject: str
    body: str
    attachment_name: str
    attachment: bytes
    invoice_number: str


@runtime_checkable
class InvoiceMailer(Protocol):
    def send_invoice(self, email: InvoiceEmail) -> None:
        """Deliver ``email``.  Any exception means delivery failed."""
        ...


def build_invoice_email(
    shop: str,
    to: str,
    invoice_number: str,
    business_name: str,
    customer_name: str,
    pdf: bytes,
) -> InvoiceEmail:
    greeting = f"Dear {customer_name}," if customer_name else "Hello,"
    body = (
        f"{greeting}\n\n"
        f"Please find attached invoice {invoice_number}.\n\n"
        f"Thank you for your business.\n{business_name}\n"
    )
    return InvoiceEmail(
        shop=shop,
        to=to,
        subject=f"Invoice {invoice_number} from {business_name}",
        body=body,
        attachment_name=f"invoice-{invoice_number}.pdf",
        attachment=pdf,
        invoice_number=invoice_number,
    )
