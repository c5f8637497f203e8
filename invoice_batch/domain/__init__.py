"""invoice_batch.domain -- pure print-job types."""

from invoice_batch.domain.types import (
    DownloadPayload,
    JobRunResult,
    JobStatusView,
    JobType,
    PrintJob,
    PrintJobItem,
    PrintJobItemStatus,
    PrintJobStatus,
    SingleInvoiceResult,
    compute_progress,
)

__all__ = [
    "DownloadPayload",
    "JobRunResult",
    "JobStatusView",
    "JobType",
    "PrintJob",
    "PrintJobItem",
    "PrintJobItemStatus",
    "PrintJobStatus",
    "SingleInvoiceResult",
    "compute_progress",
]
