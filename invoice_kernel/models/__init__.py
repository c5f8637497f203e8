"""Kernel ORM models.  Importing this package registers their tables."""

from invoice_kernel.models.invoice import InvoiceRecordModel
from invoice_kernel.services.sequence_service import SequenceCounter

__all__ = ["InvoiceRecordModel", "SequenceCounter"]
