"""
TaxEngine -- GST determination and intrastate / interstate split.

Responsibility:
    Validates tax inputs, picks the GST rate from the order subtotal,
    classifies the supply as intrastate (CGST + SGST) or interstate (IGST)
    and produces a TaxBreakdown with an audit record.

Architecture position:
    Kernel > Domain -- pure functional core.  Time comes from an injected
    Clock; the only other impurity is the random suffix of the
    calculation id, which is injectable for tests.

Invariants enforced:
    - Validation accumulates ALL violations, then fails atomically; no
      computation is attempted on invalid input.
    - rate == low_rate iff subtotal < threshold, else high_rate.
    - total_tax == round_half_up(subtotal * rate, 2).
    - INTRASTATE: cgst + sgst == total_tax exactly; sgst is the total
      halved and truncated to the paisa, cgst takes the remainder, so the
      two differ by at most 0.01 and the odd paisa lands on CGST.
    - INTERSTATE: igst == total_tax, cgst == sgst == 0.

Failure modes:
    - TaxValidationError (VALIDATION_ERROR): bad input.
    - TaxCalculationError (CALCULATION_ERROR): unexpected internal failure.

Audit relevance:
    Every successful calculation carries a TaxAuditRecord (calculation id,
    order id, timestamp, inputs, outputs, engine version) and is logged as
    ``gst_calculated``.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.hsn import resolve_hsn_code
from invoice_kernel.domain.money import ZERO, allocate_prorata, floor_cent, round_money
from invoice_kernel.domain.states import is_known_state, normalize_state_code
from invoice_kernel.exceptions import (
    InvoiceKernelError,
    TaxCalculationError,
    TaxValidationError,
)
from invoice_kernel.logging_config import get_logger

logger = get_logger("domain.tax")


class GSTType(str, Enum):
    """Supply classification."""

    INTRASTATE = "INTRASTATE"  # CGST + SGST
    INTERSTATE = "INTERSTATE"  # IGST


@dataclass(frozen=True)
class GSTRateConfig:
    """Rate slab configuration.  Constants, never computed."""

    threshold: Decimal = Decimal("1000")
    low_rate: Decimal = Decimal("0.05")
    high_rate: Decimal = Decimal("0.12")

    def __post_init__(self):
        if self.threshold <= 0:
            raise ValueError("threshold must be positive")
        for name in ("low_rate", "high_rate"):
            rate = getattr(self, name)
            if not Decimal("0") <= rate <= Decimal("1"):
                raise ValueError(f"{name} must be a fraction between 0 and 1")

    def rate_for(self, subtotal: Decimal) -> Decimal:
        return self.low_rate if subtotal < self.threshold else self.high_rate


@dataclass(frozen=True)
class TaxInput:
    order_total: Decimal | None
    subtotal: Decimal | None
    customer_state: str | None
    store_state: str | None
    hsn_code: str | None = None
    product_type: str | None = None
    order_id: str | None = None


@dataclass(frozen=True)
class TaxSplit:
    """Component amounts for one taxable value."""

    cgst: Decimal
    sgst: Decimal
    igst: Decimal

    @property
    def total(self) -> Decimal:
        return self.cgst + self.sgst + self.igst


@dataclass(frozen=True)
class TaxAuditRecord:
    calculation_id: str
    order_id: str
    timestamp: datetime
    inputs: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    version: str = "1.0.0"


@dataclass(frozen=True)
class TaxBreakdown:
    """Result of a GST calculation for one order."""

    gst_type: GSTType
    rate: Decimal
    taxable_amount: Decimal
    total_tax: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    hsn_code: str
    customer_state: str
    store_state: str
    audit: TaxAuditRecord | None = None

    @property
    def is_intrastate(self) -> bool:
        return self.gst_type == GSTType.INTRASTATE

    @property
    def split(self) -> TaxSplit:
        return TaxSplit(self.cgst_amount, self.sgst_amount, self.igst_amount)

    def allocate(self, taxable_values: Sequence[Decimal]) -> tuple[TaxSplit, ...]:
        """
        Spread each component over lines in proportion to their value.

        Every component column sums back to the breakdown amount exactly.
        """
        columns = [
            allocate_prorata(amount, taxable_values)
            for amount in (self.cgst_amount, self.sgst_amount, self.igst_amount)
        ]
        return tuple(TaxSplit(*shares) for shares in zip(*columns))

    def to_dict(self) -> dict[str, Any]:
        return {
            "gst_type": self.gst_type.value,
            "rate": str(self.rate),
            "taxable_amount": str(self.taxable_amount),
            "total_tax": str(self.total_tax),
            "cgst_amount": str(self.cgst_amount),
            "sgst_amount": str(self.sgst_amount),
            "igst_amount": str(self.igst_amount),
            "hsn_code": self.hsn_code,
        }


def split_tax(total_tax: Decimal, gst_type: GSTType) -> TaxSplit:
    """Split an already-rounded tax amount into its components."""
    total_tax = round_money(total_tax)
    if gst_type == GSTType.INTERSTATE:
        return TaxSplit(cgst=ZERO, sgst=ZERO, igst=total_tax)
    sgst = floor_cent(total_tax / 2)
    return TaxSplit(cgst=total_tax - sgst, sgst=sgst, igst=ZERO)


# Courier and freight services (SAC 9968) carry 18% GST.
SHIPPING_GST_RATE = Decimal("0.18")
SHIPPING_SAC_CODE = "996812"


def shipping_tax(
    shipping_amount: Decimal,
    gst_type: GSTType,
    rate: Decimal = SHIPPING_GST_RATE,
) -> tuple[Decimal, TaxSplit]:
    """Taxable value and tax components contained in a GST-inclusive charge."""
    gross = round_money(shipping_amount)
    taxable = round_money(gross / (1 + rate))
    return taxable, split_tax(gross - taxable, gst_type)


def classify_supply(customer_state: str, store_state: str) -> GSTType:
    """Both codes must already be normalized."""
    if customer_state == store_state:
        return GSTType.INTRASTATE
    return GSTType.INTERSTATE


class TaxEngine:
    """
    GST calculator.

    Contract:
        ``calculate()`` returns a TaxBreakdown or raises; it never returns
        a partial result.  ``TaxBreakdown.allocate()`` spreads the result
        over the invoice lines for rendering.

    Guarantees:
        - Deterministic for a fixed clock and id factory.
        - Component amounts reconcile exactly with ``total_tax``.

    Non-goals:
        - No per-line aggregation: the order-level tax is computed from the
          subtotal, as printed in the invoice totals.
        - No jurisdictions other than Indian GST.
    """

    VERSION = "1.0.0"

    def __init__(
        self,
        config: GSTRateConfig | None = None,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self._config = config or GSTRateConfig()
        self._clock = clock or SystemClock()
        self._id_factory = id_factory or (lambda: secrets.token_hex(4))

    @property
    def config(self) -> GSTRateConfig:
        return self._config

    def validate(self, tax_input: TaxInput) -> list[str]:
        """Every violated input constraint, in a stable order."""
        errors: list[str] = []
        if tax_input.order_total is None or tax_input.order_total <= 0:
            errors.append("Order total must be greater than 0")
        if tax_input.subtotal is None or tax_input.subtotal <= 0:
            errors.append("Subtotal must be greater than 0")

        customer = tax_input.customer_state
        store = tax_input.store_state
        if customer is None or not customer.strip():
            errors.append("Customer state is required")
        if store is None or not store.strip():
            errors.append("Store state is required")
        if customer and customer.strip() and not is_known_state(customer):
            errors.append(f"Invalid customer state code: {customer}")
        if store and store.strip() and not is_known_state(store):
            errors.append(f"Invalid store state code: {store}")
        return errors

    def calculate(self, tax_input: TaxInput) -> TaxBreakdown:
        """
        Compute the GST breakdown for one order.

        Raises:
            TaxValidationError: listing every violated constraint.
            TaxCalculationError: unexpected failure after validation.
        """
        errors = self.validate(tax_input)
        if errors:
            logger.info(
                "gst_validation_failed",
                extra={"order_id": tax_input.order_id, "errors": errors},
            )
            raise TaxValidationError(errors)

        try:
            return self._compute(tax_input)
        except InvoiceKernelError:
            raise
        except Exception as exc:
            logger.exception(
                "gst_calculation_failed",
                extra={"order_id": tax_input.order_id},
            )
            raise TaxCalculationError(str(exc), tax_input.order_id) from exc

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _compute(self, tax_input: TaxInput) -> TaxBreakdown:
        customer_state = normalize_state_code(tax_input.customer_state)
        store_state = normalize_state_code(tax_input.store_state)
        subtotal = tax_input.subtotal

        rate = self._config.rate_for(subtotal)
        taxable_amount = round_money(subtotal)
        total_tax = round_money(subtotal * rate)
        gst_type = classify_supply(customer_state, store_state)
        split = split_tax(total_tax, gst_type)
        hsn_code = resolve_hsn_code(tax_input.hsn_code, tax_input.product_type)

        now = self._clock.now()
        breakdown = TaxBreakdown(
            gst_type=gst_type,
            rate=rate,
            taxable_amount=taxable_amount,
            total_tax=total_tax,
            cgst_amount=split.cgst,
            sgst_amount=split.sgst,
            igst_amount=split.igst,
            hsn_code=hsn_code,
            customer_state=customer_state,
            store_state=store_state,
        )
        audit = TaxAuditRecord(
            calculation_id=(
                f"gst_{int(now.timestamp() * 1000)}_{self._id_factory()}"
            ),
            order_id=tax_input.order_id or "unknown",
            timestamp=now,
            inputs={
                "order_total": str(tax_input.order_total),
                "subtotal": str(subtotal),
                "customer_state": tax_input.customer_state,
                "store_state": tax_input.store_state,
                "hsn_code": tax_input.hsn_code,
                "product_type": tax_input.product_type,
            },
            outputs=breakdown.to_dict(),
            version=self.VERSION,
        )

        logger.info(
            "gst_calculated",
            extra={
                "calculation_id": audit.calculation_id,
                "order_id": audit.order_id,
                "gst_type": gst_type.value,
                "rate": rate,
                "total_tax": total_tax,
            },
        )

        return replace(breakdown, audit=audit)
