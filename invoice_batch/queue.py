"""
WorkQueue -- hand-off of bulk jobs from the request side to workers.

Contract:
    ``enqueue(message, delay_seconds)`` makes a message visible after the
    delay; ``dequeue(timeout)`` returns the next visible message or None;
    ``acknowledge(message)`` confirms it was handled.

Architecture: invoice_batch.  The orchestrator and workers depend on the
    WorkQueue ABC only; deployments plug in a broker-backed queue, tests
    and single-process runs use InMemoryWorkQueue.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import UUID, uuid4

from invoice_kernel.logging_config import get_logger

logger = get_logger("batch.queue")


@dataclass(frozen=True)
class QueuedMessage:
    job_id: UUID
    attempt: int = 1
    message_id: UUID = field(default_factory=uuid4)


class WorkQueue(ABC):
    @abstractmethod
    def enqueue(self, message: QueuedMessage, delay_seconds: float = 0.0) -> None: ...

    @abstractmethod
    def dequeue(self, timeout: float | None = None) -> QueuedMessage | None: ...

    @abstractmethod
    def acknowledge(self, message: QueuedMessage) -> None: ...

    def submit(self, job_id: UUID) -> QueuedMessage:
        message = QueuedMessage(job_id=job_id)
        self.enqueue(message)
        return message


class InMemoryWorkQueue(WorkQueue):
    """
    Thread-safe delayed queue ordered by visibility time.

    Guarantees:
        - Messages become visible in (available_at, enqueue order).
        - A delayed message is never returned before its delay elapses.

    Non-goals:
        - Durability: messages live in process memory only.
        - Redelivery of unacknowledged messages.
    """

    def __init__(self, monotonic: Callable[[], float] = time.monotonic):
        self._monotonic = monotonic
        self._heap: list[tuple[float, int, QueuedMessage]] = []
        self._counter = itertools.count()
        self._in_flight: dict[UUID, QueuedMessage] = {}
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return len(self._heap)

    @property
    def in_flight(self) -> int:
        with self._cond:
            return len(self._in_flight)

    def enqueue(self, message: QueuedMessage, delay_seconds: float = 0.0) -> None:
        available_at = self._monotonic() + max(0.0, delay_seconds)
        with self._cond:
            heapq.heappush(self._heap, (available_at, next(self._counter), message))
            self._cond.notify()
        logger.info(
            "job_enqueued",
            extra={
                "job_id": str(message.job_id),
                "attempt": message.attempt,
                "delay_seconds": delay_seconds,
            },
        )

    def dequeue(self, timeout: float | None = None) -> QueuedMessage | None:
        deadline = None if timeout is None else self._monotonic() + timeout
        with self._cond:
            while True:
                now = self._monotonic()
                if self._heap and self._heap[0][0] <= now:
                    _, _, message = heapq.heappop(self._heap)
                    self._in_flight[message.message_id] = message
                    return message

                if deadline is not None and now >= deadline:
                    return None
                waits = []
                if self._heap:
                    waits.append(self._heap[0][0] - now)
                if deadline is not None:
                    waits.append(deadline - now)
                self._cond.wait(min(waits) if waits else None)

    def acknowledge(self, message: QueuedMessage) -> None:
        with self._cond:
            self._in_flight.pop(message.message_id, None)

    def pending(self) -> list[QueuedMessage]:
        with self._cond:
            return [entry[2] for entry in sorted(self._heap)]
