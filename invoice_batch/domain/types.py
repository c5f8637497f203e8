"""
invoice_batch.domain.types -- Pure frozen dataclasses for print jobs.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Job lifecycle: queued -> processing -> {completed, failed, cancelled};
      a queued job may also be cancelled directly.  Terminal statuses
      have no outgoing transitions.
    - Progress is round_half_up(100 * processed / total), clamped to
      [0, 100].
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class PrintJobStatus(str, Enum):
    """Job-level lifecycle status."""

    QUEUED = "queued"  # Created, waiting for a worker
    PROCESSING = "processing"  # A worker owns it
    COMPLETED = "completed"  # Finished with at least one invoice
    FAILED = "failed"  # Nothing usable produced
    CANCELLED = "cancelled"  # Stopped on request

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    def can_transition_to(self, target: PrintJobStatus) -> bool:
        return target in _TRANSITIONS[self]


_TERMINAL = frozenset({
    PrintJobStatus.COMPLETED,
    PrintJobStatus.FAILED,
    PrintJobStatus.CANCELLED,
})

_TRANSITIONS: dict[PrintJobStatus, frozenset[PrintJobStatus]] = {
    PrintJobStatus.QUEUED: frozenset({
        PrintJobStatus.PROCESSING,
        PrintJobStatus.CANCELLED,
        PrintJobStatus.FAILED,
    }),
    PrintJobStatus.PROCESSING: frozenset({
        PrintJobStatus.COMPLETED,
        PrintJobStatus.FAILED,
        PrintJobStatus.CANCELLED,
    }),
    PrintJobStatus.COMPLETED: frozenset(),
    PrintJobStatus.FAILED: frozenset(),
    PrintJobStatus.CANCELLED: frozenset(),
}


class JobType(str, Enum):
    SINGLE = "single"
    BULK = "bulk"


class PrintJobItemStatus(str, Enum):
    """Per-order result within a job."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def compute_progress(processed: int, total: int) -> int:
    """Percentage of items processed, rounded half up."""
    if total <= 0:
        return 0
    processed = max(0, min(processed, total))
    percent = (Decimal(100) * processed / total).quantize(
        Decimal(1), rounding=ROUND_HALF_UP,
    )
    return int(percent)


# =============================================================================
# DTOs
# =============================================================================


@dataclass(frozen=True)
class PrintJob:
    """Immutable snapshot of a print job."""

    job_id: UUID
    shop: str
    job_type: JobType
    status: PrintJobStatus
    order_ids: tuple[str, ...]
    progress: int = 0
    completed_count: int = 0
    failed_count: int = 0
    attempts: int = 0
    cancel_requested: bool = False
    artifact_key: str | None = None
    download_url: str | None = None
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def total_orders(self) -> int:
        return len(self.order_ids)


@dataclass(frozen=True)
class PrintJobItem:
    order_id: str
    item_index: int
    status: PrintJobItemStatus
    invoice_number: str | None = None
    artifact_key: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class JobStatusView:
    """What a caller polling a job sees."""

    job_id: UUID
    status: PrintJobStatus
    progress: int
    completed_count: int
    failed_count: int
    total_orders: int
    download_url: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class JobRunResult:
    """Outcome of one ``execute_job`` call."""

    job_id: UUID
    status: PrintJobStatus
    total: int
    completed: int
    failed: int
    items: tuple[PrintJobItem, ...] = ()
    artifact_key: str | None = None
    download_url: str | None = None
    missing_from_archive: tuple[str, ...] = ()
    duration_ms: int = 0

    @property
    def is_partial_failure(self) -> bool:
        return self.completed > 0 and self.failed > 0


@dataclass(frozen=True)
class SingleInvoiceResult:
    job_id: UUID
    invoice_number: str
    artifact_key: str
    download_url: str
    email_sent: bool = False


@dataclass(frozen=True)
class DownloadPayload:
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)
