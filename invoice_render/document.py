"""
Invoice document model.

Frozen value objects describing one rendered copy of an invoice.  Every
amount is already rounded to the paisa; every date is already formatted.
Nothing in here knows about markup or PDF.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from invoice_kernel.domain.profile import BankDetails
from invoice_kernel.domain.tax import GSTType
from invoice_render.layouts import LayoutSpec

TERMS = (
    "E & O.E",
    "Goods once sold will not be taken back or exchanged",
)
FOOTER_NOTE = "This is computer generated invoice and hence no signature is required"


@dataclass(frozen=True)
class Seller:
    company_name: str
    address_lines: tuple[str, ...]
    gstin: str
    pan: str
    email: str
    phone: str
    website: str
    bank: BankDetails | None
    logo_ref: str | None
    signature_ref: str | None


@dataclass(frozen=True)
class Party:
    """A 'Billed To' or 'Ship To' block."""

    title: str
    name: str
    address_lines: tuple[str, ...]
    state: str
    phone: str = ""
    email: str = ""


@dataclass(frozen=True)
class InvoiceMeta:
    invoice_number: str
    invoice_date: str
    order_number: str
    place_of_supply: str
    state_code: str
    gst_state_code: str
    copy_label: str


@dataclass(frozen=True)
class DocumentLine:
    index: int
    name: str
    hsn_code: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    taxable_value: Decimal
    gst_rate: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total: Decimal


@dataclass(frozen=True)
class HSNSummaryRow:
    hsn_code: str
    taxable_value: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal

    @property
    def total_tax(self) -> Decimal:
        return self.cgst + self.sgst + self.igst


@dataclass(frozen=True)
class Totals:
    """
    Invoice totals.

    ``cgst`` to ``total_tax`` are the goods tax from the TaxBreakdown.
    Shipping is shown as its taxable value plus its own components; the
    grand total includes both.
    """

    taxable_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total_tax: Decimal
    grand_total: Decimal
    amount_in_words: str
    discount: Decimal = Decimal("0.00")
    shipping_taxable: Decimal = Decimal("0.00")
    shipping_cgst: Decimal = Decimal("0.00")
    shipping_sgst: Decimal = Decimal("0.00")
    shipping_igst: Decimal = Decimal("0.00")

    @property
    def shipping_tax(self) -> Decimal:
        return self.shipping_cgst + self.shipping_sgst + self.shipping_igst

    @property
    def invoice_tax(self) -> Decimal:
        """Goods and shipping tax together."""
        return self.total_tax + self.shipping_tax


@dataclass(frozen=True)
class InvoiceDocument:
    """One copy of an invoice, ready to serialize."""

    layout: LayoutSpec
    seller: Seller
    meta: InvoiceMeta
    billed_to: Party
    ship_to: Party
    gst_type: GSTType
    gst_rate: Decimal
    lines: tuple[DocumentLine, ...]
    hsn_summary: tuple[HSNSummaryRow, ...]
    totals: Totals
    terms: tuple[str, ...] = TERMS
    footer: str = FOOTER_NOTE

    @property
    def is_intrastate(self) -> bool:
        return self.gst_type == GSTType.INTRASTATE
