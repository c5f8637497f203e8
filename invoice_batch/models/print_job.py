"""
ORM models for print job persistence.

Contract:
    PrintJobModel and PrintJobItemModel persist job state and per-order
    results.  Each has ``to_dto()`` / ``from_dto()`` round-trip methods.

Architecture: invoice_batch/models. Imports from invoice_kernel.db.base only.

Invariants enforced:
    - Only the JobOrchestrator writes these rows.
    - (job_id, item_index) is UNIQUE: one result row per order position.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_kernel.db.base import TrackedBase, UUIDString, as_utc

if TYPE_CHECKING:
    from invoice_batch.domain.types import PrintJob, PrintJobItem


class PrintJobModel(TrackedBase):
    """Persistent print job record."""

    __tablename__ = "print_jobs"

    __table_args__ = (
        Index("ix_print_jobs_shop_status", "shop", "status"),
        Index("ix_print_jobs_updated_at", "updated_at"),
    )

    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    job_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    order_ids: Mapped[list] = mapped_column(JSON, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancel_requested: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    artifact_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    download_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    items: Mapped[list["PrintJobItemModel"]] = relationship(
        "PrintJobItemModel",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="PrintJobItemModel.item_index",
    )

    def to_dto(self) -> PrintJob:
        from invoice_batch.domain.types import JobType, PrintJob, PrintJobStatus

        return PrintJob(
            job_id=self.id,
            shop=self.shop,
            job_type=JobType(self.job_type),
            status=PrintJobStatus(self.status),
            order_ids=tuple(self.order_ids or ()),
            progress=self.progress,
            completed_count=self.completed_count,
            failed_count=self.failed_count,
            attempts=self.attempts,
            cancel_requested=self.cancel_requested,
            artifact_key=self.artifact_key,
            download_url=self.download_url,
            error=self.error,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            completed_at=as_utc(self.completed_at),
        )

    @classmethod
    def from_dto(cls, dto: PrintJob) -> PrintJobModel:
        model = cls(
            id=dto.job_id,
            shop=dto.shop,
            job_type=dto.job_type.value,
            status=dto.status.value,
            order_ids=list(dto.order_ids),
            progress=dto.progress,
            completed_count=dto.completed_count,
            failed_count=dto.failed_count,
            attempts=dto.attempts,
            cancel_requested=dto.cancel_requested,
            artifact_key=dto.artifact_key,
            download_url=dto.download_url,
            error=dto.error,
            completed_at=dto.completed_at,
        )
        if dto.created_at is not None:
            model.created_at = dto.created_at
            model.updated_at = dto.updated_at or dto.created_at
        return model


class PrintJobItemModel(TrackedBase):
    """Per-order result within a print job."""

    __tablename__ = "print_job_items"

    __table_args__ = (
        UniqueConstraint("job_id", "item_index", name="uq_print_job_item_index"),
        Index("ix_print_job_items_job_status", "job_id", "status"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("print_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    artifact_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    job: Mapped["PrintJobModel"] = relationship(
        "PrintJobModel",
        back_populates="items",
    )

    def to_dto(self) -> PrintJobItem:
        from invoice_batch.domain.types import PrintJobItem, PrintJobItemStatus

        return PrintJobItem(
            order_id=self.order_id,
            item_index=self.item_index,
            status=PrintJobItemStatus(self.status),
            invoice_number=self.invoice_number,
            artifact_key=self.artifact_key,
            error_code=self.error_code,
            error_message=self.error_message,
            duration_ms=self.duration_ms,
        )

    @classmethod
    def from_dto(cls, dto: PrintJobItem, job_id: UUID) -> PrintJobItemModel:
        return cls(
            job_id=job_id,
            item_index=dto.item_index,
            order_id=dto.order_id,
            status=dto.status.value,
            invoice_number=dto.invoice_number,
            artifact_key=dto.artifact_key,
            error_code=dto.error_code,
            error_message=dto.error_message,
            duration_ms=dto.duration_ms,
        )
