"""
Builders and collaborator fakes shared by the test suite.

Order payloads follow the commerce platform's shape (``province_code``,
``address1``, ...) so they exercise the same parsing as production input.
"""

from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from invoice_batch.collaborators import InvoiceEmail
from invoice_kernel.domain.clock import DeterministicClock
from invoice_kernel.domain.hsn import annotate_line_items
from invoice_kernel.domain.order import OrderSnapshot
from invoice_kernel.domain.profile import BusinessProfile, ShopSettings
from invoice_kernel.domain.tax import TaxEngine, TaxInput
from invoice_kernel.exceptions import OrderNotFoundError
from invoice_render.renderer import RenderRequest

SHOP = "demo-store.myshopify.com"
OTHER_SHOP = "other-store.myshopify.com"
FIXED_NOW = datetime(2024, 3, 15, 10, 30, 0, tzinfo=UTC)


# =============================================================================
# Builders
# =============================================================================


def make_business(**overrides: Any) -> BusinessProfile:
    data: dict[str, Any] = {
        "company_name": "Kora Threads Pvt Ltd",
        "gstin": "27AAPFU0939F1ZV",
        "pan": "AAPFU0939F",
        "email": "accounts@korathreads.in",
        "phone": "+91 22 4000 1234",
        "address": {
            "line1": "14 Mill Compound",
            "line2": "Lower Parel",
            "city": "Mumbai",
            "state": "Maharashtra",
            "state_code": "MH",
            "pincode": "400013",
        },
        "bank": {
            "account_name": "Kora Threads Pvt Ltd",
            "account_number": "50200012345678",
            "ifsc_code": "HDFC0000123",
            "bank_name": "HDFC Bank",
            "branch": "Lower Parel",
        },
    }
    data.update(overrides)
    return BusinessProfile.from_mapping(data)


def make_settings(**overrides: Any) -> ShopSettings:
    values: dict[str, Any] = {"business": make_business()}
    values.update(overrides)
    return ShopSettings(**values)


def make_order(
    order_id: str = "5001",
    subtotal: str = "800.00",
    total: str | None = None,
    customer_state: str = "MH",
    email: str | None = "priya@example.com",
    line_items: list[dict[str, Any]] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Commerce-style order payload with one line worth ``subtotal``."""
    payload: dict[str, Any] = {
        "id": order_id,
        "order_number": f"#{order_id}",
        "created_at": "2024-03-14T18:05:00+05:30",
        "subtotal": subtotal,
        "total": total or subtotal,
        "customer": {"name": "Priya Sharma", "email": email},
        "billing_address": {
            "name": "Priya Sharma",
            "address1": "22 Palm Grove",
            "city": "Pune",
            "province": "Maharashtra",
            "province_code": customer_state,
            "zip": "411001",
        },
        "shipping_address": {
            "name": "Priya Sharma",
            "address1": "22 Palm Grove",
            "city": "Pune",
            "province": "Maharashtra",
            "province_code": customer_state,
            "zip": "411001",
        },
        "line_items": line_items or [
            {
                "name": "Cotton Crew Tee",
                "quantity": 1,
                "unit_price": subtotal,
                "product_type": "cotton t-shirt",
            },
        ],
    }
    payload.update(extra)
    return payload


# =============================================================================
# Collaborator fakes
# =============================================================================


class FakeOrderSource:
    """Orders keyed by (shop, order_id); ``hooks`` run before a fetch returns."""

    def __init__(self, orders: Mapping[tuple[str, str], dict] | None = None):
        self.orders: dict[tuple[str, str], dict] = dict(orders or {})
        self.hooks: dict[str, Callable[[], None]] = {}
        self.fetched: list[str] = []

    def add(self, shop: str, payload: dict) -> None:
        self.orders[(shop, str(payload["id"]))] = payload

    def fetch_order(self, shop: str, order_id: str) -> Mapping[str, Any]:
        self.fetched.append(order_id)
        hook = self.hooks.get(order_id)
        if hook is not None:
            hook()
        try:
            return self.orders[(shop, order_id)]
        except KeyError:
            raise OrderNotFoundError(order_id, shop) from None


class FakeSettingsSource:
    def __init__(self, settings: ShopSettings | None = None):
        self.by_shop: dict[str, ShopSettings] = {}
        self.default = settings or make_settings()

    def get_settings(self, shop: str) -> ShopSettings:
        return self.by_shop.get(shop, self.default)


class RecordingMailer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[InvoiceEmail] = []

    def send_invoice(self, email: InvoiceEmail) -> None:
        if self.fail:
            raise ConnectionError("SMTP relay refused connection")
        self.sent.append(email)


def make_render_request(
    order: dict[str, Any] | None = None,
    store_state: str = "MH",
    invoice_number: str = "INV-1001",
    **overrides: Any,
) -> RenderRequest:
    """RenderRequest for ``order`` with the breakdown the TaxEngine gives it."""
    snapshot = OrderSnapshot.from_mapping(order or make_order())
    snapshot = replace(snapshot, line_items=annotate_line_items(snapshot.line_items))
    breakdown = TaxEngine(clock=DeterministicClock(FIXED_NOW)).calculate(
        TaxInput(
            order_total=snapshot.total,
            subtotal=snapshot.subtotal,
            customer_state=snapshot.customer_state,
            store_state=store_state,
            order_id=snapshot.order_id,
        )
    )
    values: dict[str, Any] = {
        "order": snapshot,
        "breakdown": breakdown,
        "business": make_business(),
        "invoice_number": invoice_number,
        "invoice_date": FIXED_NOW,
    }
    values.update(overrides)
    return RenderRequest(**values)
