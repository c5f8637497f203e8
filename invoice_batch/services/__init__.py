"""invoice_batch.services -- orchestration, archiving and workers."""

from invoice_batch.services.archive import ArchiveBundler, ArchiveEntry, BundleResult
from invoice_batch.services.job_orchestrator import JobOrchestrator
from invoice_batch.services.worker import JobWorker, RetryPolicy, make_workers

__all__ = [
    "ArchiveBundler",
    "ArchiveEntry",
    "BundleResult",
    "JobOrchestrator",
    "JobWorker",
    "RetryPolicy",
    "make_workers",
]
