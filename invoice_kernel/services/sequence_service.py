"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing integers per named sequence.  Invoice
    numbering uses one sequence per shop.  Uses a dedicated counter table
    with row-level locking (``SELECT ... FOR UPDATE``) and a
    compare-and-swap UPDATE so that the guarantee also holds on backends
    that ignore FOR UPDATE (SQLite).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by InvoiceNumberAllocator.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth.
      Deriving the next value from COUNT(*) or MAX()+1 is FORBIDDEN.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.
    - Bounded retries: a lost compare-and-swap is retried at most
      ``max_attempts`` times, then SequenceContentionError.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
    - SequenceContentionError: CAS lost ``max_attempts`` times in a row.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import BigInteger, String, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from invoice_kernel.db.base import Base
from invoice_kernel.exceptions import SequenceContentionError
from invoice_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # e.g. "invoice:acme.myshopify.com"
    name: Mapped[str] = mapped_column(
        String(300),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly-monotonic
        integer value.  The increment is committed with the caller's
        transaction.

    Guarantees:
        - Strictly monotonic per name, never reused after commit.
        - Concurrency safety: FOR UPDATE serializes allocations on
          PostgreSQL; the CAS predicate ``current_value = :expected``
          detects lost updates everywhere else.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    DEFAULT_MAX_ATTEMPTS = 5

    def __init__(self, session: Session, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self._session = session
        self._max_attempts = max_attempts

    def next_value(
        self,
        sequence_name: str,
        initial_value: Callable[[], int] | None = None,
    ) -> int:
        """
        Get the next value for a named sequence.

        Preconditions:
            - The caller is within an active database transaction and has
              flushed its own pending changes.

        Postconditions:
            - Returns an integer strictly greater than any value previously
              committed for this name.

        Args:
            sequence_name: Name of the sequence.
            initial_value: Called once, only when the counter row does not
                exist yet; its result seeds the counter (the first value
                returned is ``initial_value() + 1``).

        Raises:
            SequenceContentionError: CAS retries exhausted.
        """
        for attempt in range(1, self._max_attempts + 1):
            current = self._locked_current(sequence_name)

            if current is None:
                seed = initial_value() if initial_value is not None else 0
                created = self._try_create(sequence_name, seed + 1)
                if created:
                    logger.debug(
                        "sequence_allocated",
                        extra={"sequence_name": sequence_name, "value": seed + 1},
                    )
                    return seed + 1
                continue

            result = self._session.execute(
                update(SequenceCounter)
                .where(
                    SequenceCounter.name == sequence_name,
                    SequenceCounter.current_value == current,
                )
                .values(current_value=current + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": current + 1},
                )
                return current + 1

            logger.debug(
                "sequence_cas_retry",
                extra={"sequence_name": sequence_name, "attempt": attempt},
            )

        logger.warning(
            "sequence_contention_exhausted",
            extra={"sequence_name": sequence_name, "attempts": self._max_attempts},
        )
        raise SequenceContentionError(sequence_name, self._max_attempts)

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: tests and migration scripts only.  Resetting an invoice
        sequence in production re-issues numbers.
        """
        existing = self._locked_current(sequence_name)
        if existing is None:
            self._session.add(SequenceCounter(name=sequence_name, current_value=value))
        else:
            self._session.execute(
                update(SequenceCounter)
                .where(SequenceCounter.name == sequence_name)
                .values(current_value=value)
                .execution_options(synchronize_session=False)
            )
        self._session.flush()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _locked_current(self, sequence_name: str) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
        ).scalar_one_or_none()

    def _try_create(self, sequence_name: str, value: int) -> bool:
        # Savepoint so a lost creation race does not roll back caller work
        savepoint = self._session.begin_nested()
        try:
            self._session.add(SequenceCounter(name=sequence_name, current_value=value))
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            return False
        savepoint.commit()
        return True
