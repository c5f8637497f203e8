"""
InvoiceNumberAllocator -- unique, sequential invoice numbers per shop.

Responsibility:
    Issues ``<prefix>-<number>`` identifiers.  The number is
    ``start_number + n - 1`` where ``n`` is the shop's sequence value after
    an atomic increment.

Architecture position:
    Kernel > Services.  Depends only on SequenceService and the invoice
    model (for seeding).

Invariants enforced:
    - Unique and monotonic per shop, even under concurrent generation.
      The sequence row, not a COUNT of existing invoices, decides the next
      number.
    - Seeding: the first allocation for a shop starts after the invoices
      that already exist for it, so a shop migrating from count-based
      numbering continues where it left off (3 existing invoices, start
      1001 -> 1004).
    - Gap-safe under rollback: a generation that fails before commit
      returns its number.

Failure modes:
    - SequenceContentionError from SequenceService.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.invoice import InvoiceRecordModel
from invoice_kernel.services.sequence_service import SequenceService

logger = get_logger("services.invoice_numbering")


def invoice_sequence_name(shop: str) -> str:
    return f"invoice:{shop}"


def format_invoice_number(prefix: str, number: int) -> str:
    return f"{prefix.strip()}-{number}"


class InvoiceNumberAllocator:
    """
    Per-shop invoice number allocator.

    Contract:
        ``allocate()`` must be called inside the transaction that will
        insert the InvoiceRecord, so that both commit or roll back together.

    Non-goals:
        - Does NOT commit.
        - Does NOT re-number when the prefix or start number changes; the
          sequence is per shop, the formatting is per call.
    """

    def __init__(
        self,
        session: Session,
        sequence_service: SequenceService | None = None,
    ):
        self._session = session
        self._sequence = sequence_service or SequenceService(session)

    def allocate(self, shop: str, prefix: str = "INV", start_number: int = 1001) -> str:
        value = self._sequence.next_value(
            invoice_sequence_name(shop),
            initial_value=lambda: self._existing_invoice_count(shop),
        )
        invoice_number = format_invoice_number(prefix, start_number + value - 1)
        logger.info(
            "invoice_number_allocated",
            extra={
                "shop": shop,
                "invoice_number": invoice_number,
                "sequence_value": value,
            },
        )
        return invoice_number

    def peek_next(self, shop: str, prefix: str = "INV", start_number: int = 1001) -> str:
        """The number ``allocate()`` would return now, without consuming it."""
        current = self._sequence.current_value(invoice_sequence_name(shop))
        if current is None:
            current = self._existing_invoice_count(shop)
        return format_invoice_number(prefix, start_number + current)

    def _existing_invoice_count(self, shop: str) -> int:
        return self._session.execute(
            select(func.count())
            .select_from(InvoiceRecordModel)
            .where(InvoiceRecordModel.shop == shop)
        ).scalar_one()
