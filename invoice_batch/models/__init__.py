"""
invoice_batch.models -- ORM models for print job persistence.

Architecture: invoice_batch/models. Imports from invoice_kernel.db.base only.
"""

from invoice_batch.models.print_job import PrintJobItemModel, PrintJobModel

__all__ = [
    "PrintJobItemModel",
    "PrintJobModel",
]
