"""
OrderSnapshot -- validated view of an order at the collaborator boundary.

Responsibility:
    Parses the loosely-typed order payload returned by the commerce
    collaborator into frozen dataclasses.  Nothing downstream (TaxEngine,
    DocumentRenderer) ever sees the raw mapping.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Every shape problem in a payload is reported at once
      (``OrderSnapshotError.errors``), never just the first.
    - Amounts are Decimal; floats are converted through their repr.
    - Shipping (GST-inclusive) and discount default to zero and are never
      negative.  ``subtotal`` is the discounted goods value.
    - The snapshot is immutable for the duration of a generation.

Failure modes:
    - OrderSnapshotError for missing ids, non-numeric amounts, bad
      quantities, negative shipping or discount, tax rates outside [0, 1],
      unparseable timestamps or an empty line-item list.

Business-level checks (positive totals, known state codes) belong to the
TaxEngine so that they are reported with its error wording.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from invoice_kernel.domain.money import to_decimal
from invoice_kernel.exceptions import OrderSnapshotError


@dataclass(frozen=True)
class Address:
    name: str = ""
    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    state_code: str | None = None
    pincode: str = ""
    country: str = "India"
    phone: str = ""

    def lines(self) -> tuple[str, ...]:
        """Printable address lines, blanks dropped."""
        locality = ", ".join(p for p in (self.city, self.state, self.pincode) if p)
        return tuple(
            line for line in (self.line1, self.line2, locality, self.country)
            if line
        )


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal | None = None
    hsn_code: str | None = None
    product_type: str | None = None
    sku: str | None = None

    @property
    def taxable_value(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderSnapshot:
    order_id: str
    order_number: str
    created_at: datetime
    subtotal: Decimal
    total: Decimal
    line_items: tuple[LineItem, ...]
    customer_state: str | None = None
    store_state: str | None = None
    customer_name: str = ""
    customer_email: str | None = None
    billing_address: Address = Address()
    shipping_address: Address = Address()
    product_type: str | None = None
    hsn_code: str | None = None
    shipping_amount: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> OrderSnapshot:
        """Parse a collaborator payload.

        Raises:
            OrderSnapshotError: listing every problem found.
        """
        if not isinstance(payload, Mapping):
            raise OrderSnapshotError(["Order payload must be a mapping"])

        errors: list[str] = []
        order_id = _text(payload.get("id"))
        if not order_id:
            errors.append("Order id is required")

        order_number = _text(payload.get("order_number")) or order_id or ""
        created_at = _timestamp(payload.get("created_at"), errors)
        subtotal = _amount(payload.get("subtotal"), "subtotal", errors)
        total = _amount(payload.get("total"), "total", errors)
        shipping_amount = _optional_amount(
            payload, ("shipping_amount", "total_shipping"), "shipping_amount", errors,
        )
        discount = _optional_amount(
            payload, ("discount", "total_discounts"), "discount", errors,
        )

        customer = payload.get("customer") or {}
        if not isinstance(customer, Mapping):
            errors.append("customer must be a mapping")
            customer = {}

        billing = _address(payload.get("billing_address"), "billing_address", errors)
        shipping = _address(payload.get("shipping_address"), "shipping_address", errors)

        customer_state = (
            _text(payload.get("customer_state"))
            or shipping.state_code
            or billing.state_code
        )

        line_items = _line_items(payload.get("line_items"), errors)
        if line_items and discount > sum(
            (item.taxable_value for item in line_items), Decimal("0"),
        ):
            errors.append("discount must not exceed the line item total")

        if errors:
            raise OrderSnapshotError(errors, order_id=order_id or None)

        return cls(
            order_id=order_id,
            order_number=order_number,
            created_at=created_at,
            subtotal=subtotal,
            total=total,
            line_items=line_items,
            customer_state=customer_state or None,
            store_state=_text(payload.get("store_state")) or None,
            customer_name=(
                _text(customer.get("name")) or shipping.name or billing.name
            ),
            customer_email=_text(customer.get("email")) or None,
            billing_address=billing,
            shipping_address=shipping,
            product_type=_text(payload.get("product_type")) or None,
            hsn_code=_text(payload.get("hsn_code")) or None,
            shipping_amount=shipping_amount,
            discount=discount,
        )


# ---------------------------------------------------------------------------
# Field parsers -- append to ``errors`` instead of raising
# ---------------------------------------------------------------------------


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _amount(value: Any, field_name: str, errors: list[str]) -> Decimal:
    if value is None:
        errors.append(f"{field_name} is required")
        return Decimal("0")
    try:
        return to_decimal(value)
    except ValueError:
        errors.append(f"{field_name} must be numeric, got {value!r}")
        return Decimal("0")


def _optional_amount(
    payload: Mapping[str, Any],
    keys: tuple[str, ...],
    field_name: str,
    errors: list[str],
) -> Decimal:
    """First present key, zero when absent; must not be negative."""
    value = next((payload[k] for k in keys if payload.get(k) is not None), None)
    if value is None:
        return Decimal("0")
    amount = _amount(value, field_name, errors)
    if amount < 0:
        errors.append(f"{field_name} must not be negative")
    return amount


def _timestamp(value: Any, errors: list[str]) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            errors.append(f"created_at is not an ISO-8601 timestamp: {value!r}")
            return datetime.min.replace(tzinfo=UTC)
    else:
        errors.append("created_at is required")
        return datetime.min.replace(tzinfo=UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _address(value: Any, field_name: str, errors: list[str]) -> Address:
    if value is None:
        return Address()
    if not isinstance(value, Mapping):
        errors.append(f"{field_name} must be a mapping")
        return Address()
    return Address(
        name=_text(value.get("name")),
        line1=_text(value.get("address1") or value.get("line1")),
        line2=_text(value.get("address2") or value.get("line2")),
        city=_text(value.get("city")),
        state=_text(value.get("province") or value.get("state")),
        state_code=(
            _text(value.get("province_code") or value.get("state_code")) or None
        ),
        pincode=_text(value.get("zip") or value.get("pincode")),
        country=_text(value.get("country")) or "India",
        phone=_text(value.get("phone")),
    )


def _line_items(value: Any, errors: list[str]) -> tuple[LineItem, ...]:
    if not isinstance(value, (list, tuple)) or not value:
        errors.append("line_items must be a non-empty list")
        return ()

    items: list[LineItem] = []
    for index, raw in enumerate(value):
        label = f"line_items[{index}]"
        if not isinstance(raw, Mapping):
            errors.append(f"{label} must be a mapping")
            continue

        name = _text(raw.get("name") or raw.get("title"))
        if not name:
            errors.append(f"{label}.name is required")

        quantity = raw.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors.append(f"{label}.quantity must be a positive integer")
            quantity = 0

        unit_price = _amount(raw.get("unit_price"), f"{label}.unit_price", errors)
        if unit_price < 0:
            errors.append(f"{label}.unit_price must not be negative")

        tax_rate: Decimal | None = None
        if raw.get("tax_rate") is not None:
            tax_rate = _amount(raw.get("tax_rate"), f"{label}.tax_rate", errors)
            if not Decimal("0") <= tax_rate <= Decimal("1"):
                errors.append(f"{label}.tax_rate must be a fraction between 0 and 1")

        items.append(
            LineItem(
                name=name,
                quantity=quantity,
                unit_price=unit_price,
                tax_rate=tax_rate,
                hsn_code=_text(raw.get("hsn_code")) or None,
                product_type=_text(raw.get("product_type")) or None,
                sku=_text(raw.get("sku")) or None,
            )
        )
    return tuple(items)
