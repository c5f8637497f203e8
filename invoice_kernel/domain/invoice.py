"""Immutable invoice record DTO and its delivery status."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class InvoiceStatus(str, Enum):
    GENERATED = "generated"  # Stored, not yet delivered
    SENT = "sent"  # Handed to the mailer successfully
    FAILED = "failed"  # Delivery attempt failed; artifact still valid


@dataclass(frozen=True)
class InvoiceRecord:
    """Snapshot of a persisted invoice.

    Created only after the document is rendered and stored; the invoice
    number is unique within ``shop``.
    """

    invoice_id: UUID
    shop: str
    order_id: str
    order_number: str
    invoice_number: str
    total: Decimal
    gst_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    artifact_key: str
    status: InvoiceStatus = InvoiceStatus.GENERATED
    customer_name: str = ""
    customer_email: str | None = None
    generated_at: datetime | None = None

    @property
    def filename(self) -> str:
        return invoice_filename(self.invoice_number)


def invoice_filename(invoice_number: str) -> str:
    return f"invoice-{invoice_number}.pdf"
