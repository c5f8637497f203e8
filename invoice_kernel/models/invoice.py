"""
ORM model for generated invoices.

Contract:
    InvoiceRecordModel persists one row per successfully generated invoice,
    with ``to_dto()`` / ``from_dto()`` round-trip methods.

Invariants enforced:
    - UNIQUE (shop, invoice_number): the allocator must never hand out a
      number twice; this constraint turns a bug there into an
      IntegrityError instead of a silent duplicate.
    - Rows are inserted only after render + persist succeed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from invoice_kernel.db.base import TrackedBase, as_utc
from invoice_kernel.domain.invoice import InvoiceRecord, InvoiceStatus


class InvoiceRecordModel(TrackedBase):
    """Persistent invoice record, keyed by (shop, id)."""

    __tablename__ = "invoice_records"

    __table_args__ = (
        UniqueConstraint("shop", "invoice_number", name="uq_invoice_shop_number"),
        Index("ix_invoice_records_shop_order", "shop", "order_id"),
    )

    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    order_number: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    gst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    sgst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    igst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    artifact_key: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.GENERATED.value,
    )
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_dto(self) -> InvoiceRecord:
        return InvoiceRecord(
            invoice_id=self.id,
            shop=self.shop,
            order_id=self.order_id,
            order_number=self.order_number,
            invoice_number=self.invoice_number,
            total=self.total,
            gst_amount=self.gst_amount,
            cgst_amount=self.cgst_amount,
            sgst_amount=self.sgst_amount,
            igst_amount=self.igst_amount,
            artifact_key=self.artifact_key,
            status=InvoiceStatus(self.status),
            customer_name=self.customer_name,
            customer_email=self.customer_email,
            generated_at=as_utc(self.generated_at),
        )

    @classmethod
    def from_dto(cls, dto: InvoiceRecord) -> InvoiceRecordModel:
        return cls(
            id=dto.invoice_id,
            shop=dto.shop,
            order_id=dto.order_id,
            order_number=dto.order_number,
            invoice_number=dto.invoice_number,
            total=dto.total,
            gst_amount=dto.gst_amount,
            cgst_amount=dto.cgst_amount,
            sgst_amount=dto.sgst_amount,
            igst_amount=dto.igst_amount,
            artifact_key=dto.artifact_key,
            status=dto.status.value,
            customer_name=dto.customer_name,
            customer_email=dto.customer_email,
            generated_at=dto.generated_at,
        )
