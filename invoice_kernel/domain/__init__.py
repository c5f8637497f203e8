"""
invoice_kernel.domain -- pure types and calculations.

ZERO I/O apart from SystemClock.  Everything here is deterministic for a
fixed clock.
"""

from invoice_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from invoice_kernel.domain.hsn import (
    DEFAULT_HSN_CODE,
    annotate_line_items,
    is_valid_hsn_code,
    resolve_hsn_code,
)
from invoice_kernel.domain.invoice import InvoiceRecord, InvoiceStatus, invoice_filename
from invoice_kernel.domain.money import round_money, to_decimal
from invoice_kernel.domain.order import Address, LineItem, OrderSnapshot
from invoice_kernel.domain.profile import (
    BankDetails,
    BusinessProfile,
    ShopSettings,
    validate_business_profile,
)
from invoice_kernel.domain.states import (
    INDIAN_STATES,
    normalize_state_code,
    state_gst_code,
)
from invoice_kernel.domain.tax import (
    GSTRateConfig,
    GSTType,
    TaxAuditRecord,
    TaxBreakdown,
    TaxEngine,
    TaxInput,
    TaxSplit,
    shipping_tax,
    split_tax,
)
from invoice_kernel.domain.words import amount_to_words

__all__ = [
    "Address",
    "BankDetails",
    "BusinessProfile",
    "Clock",
    "DEFAULT_HSN_CODE",
    "DeterministicClock",
    "GSTRateConfig",
    "GSTType",
    "INDIAN_STATES",
    "InvoiceRecord",
    "InvoiceStatus",
    "LineItem",
    "OrderSnapshot",
    "ShopSettings",
    "SystemClock",
    "TaxAuditRecord",
    "TaxBreakdown",
    "TaxEngine",
    "TaxInput",
    "TaxSplit",
    "amount_to_words",
    "annotate_line_items",
    "invoice_filename",
    "is_valid_hsn_code",
    "normalize_state_code",
    "resolve_hsn_code",
    "round_money",
    "shipping_tax",
    "split_tax",
    "state_gst_code",
    "to_decimal",
]
