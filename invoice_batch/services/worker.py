"""
JobWorker -- drains the WorkQueue and runs bulk jobs.

Contract:
    ``run_once()`` takes at most one message, executes its job through the
    JobOrchestrator and acknowledges the message.  ``start()`` / ``stop()``
    run the same loop on a background thread.

Architecture: invoice_batch/services.  Depends on the WorkQueue ABC and
    JobOrchestrator only.

Invariants enforced:
    - Every dequeued message is acknowledged exactly once.
    - A job whose infrastructure failed is re-enqueued with exponential
      backoff until RetryPolicy.max_attempts, then marked failed.
    - A job that is already terminal is skipped, never re-run.
    - Stop is honoured between messages; the current job completes.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from invoice_batch.queue import QueuedMessage, WorkQueue
from invoice_batch.services.job_orchestrator import JobOrchestrator
from invoice_kernel.exceptions import (
    InvalidJobTransitionError,
    InvoiceKernelError,
    JobNotFoundError,
)
from invoice_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.worker")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff between whole-job attempts."""

    max_attempts: int = 3
    base_seconds: float = 2.0
    factor: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_seconds < 0:
            raise ValueError("base_seconds cannot be negative")
        if self.factor < 1:
            raise ValueError("factor must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay before ``attempt + 1`` after ``attempt`` failed."""
        return self.base_seconds * self.factor ** max(0, attempt - 1)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts


class JobWorker:
    """Single-threaded consumer of print jobs.

    Non-goals:
        - Does NOT redeliver unacknowledged messages after a crash; that
          belongs to a durable queue implementation.
    """

    def __init__(
        self,
        orchestrator: JobOrchestrator,
        work_queue: WorkQueue,
        retry_policy: RetryPolicy | None = None,
        poll_interval_seconds: float = 1.0,
        worker_id: str = "worker-1",
    ):
        self._orchestrator = orchestrator
        self._queue = work_queue
        self._retry = retry_policy or RetryPolicy()
        self._poll_interval = poll_interval_seconds
        self._worker_id = worker_id
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_once(self, timeout: float | None = 0.0) -> bool:
        """Process one message if one is visible within ``timeout``.

        Returns True when a message was handled.
        """
        message = self._queue.dequeue(timeout=timeout)
        if message is None:
            return False
        try:
            with LogContext.bind(worker_id=self._worker_id, job_id=str(message.job_id)):
                self._handle(message)
        finally:
            self._queue.acknowledge(message)
        return True

    def drain(self) -> int:
        """Handle every message visible right now.  Returns the count."""
        handled = 0
        while self.run_once(timeout=0.0):
            handled += 1
        return handled

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"invoice-{self._worker_id}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "worker_started",
            extra={"worker_id": self._worker_id, "poll_interval": self._poll_interval},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current job to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("worker_stopped", extra={"worker_id": self._worker_id})

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once(timeout=self._poll_interval)
            except Exception:
                logger.exception("worker_iteration_failed")
                self._stop_event.wait(timeout=self._poll_interval)

    def _handle(self, message: QueuedMessage) -> None:
        try:
            result = self._orchestrator.execute_job(message.job_id)
        except (InvalidJobTransitionError, JobNotFoundError) as exc:
            logger.info(
                "job_skipped",
                extra={"attempt": message.attempt, "error_code": exc.code, "error": str(exc)},
            )
            return
        except InvoiceKernelError as exc:
            if exc.retryable and self._retry.should_retry(message.attempt):
                delay = self._retry.delay_for(message.attempt)
                logger.warning(
                    "job_retry_scheduled",
                    extra={
                        "attempt": message.attempt,
                        "delay_seconds": delay,
                        "error_code": exc.code,
                        "error": str(exc),
                    },
                )
                self._queue.enqueue(
                    QueuedMessage(job_id=message.job_id, attempt=message.attempt + 1),
                    delay_seconds=delay,
                )
                return
            self._give_up(message, exc)
            return
        except Exception as exc:
            self._give_up(message, exc)
            return

        logger.info(
            "job_handled",
            extra={
                "attempt": message.attempt,
                "status": result.status.value,
                "completed": result.completed,
                "failed": result.failed,
            },
        )

    def _give_up(self, message: QueuedMessage, exc: Exception) -> None:
        logger.error(
            "job_attempts_exhausted",
            extra={
                "attempt": message.attempt,
                "error_code": getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                "error": str(exc),
            },
        )
        self._orchestrator.fail_job(
            message.job_id, f"Failed after {message.attempt} attempt(s): {exc}",
        )


def make_workers(
    orchestrator: JobOrchestrator,
    work_queue: WorkQueue,
    count: int,
    retry_policy: RetryPolicy | None = None,
    poll_interval_seconds: float = 1.0,
    factory: Callable[..., JobWorker] = JobWorker,
) -> list[JobWorker]:
    """``count`` workers sharing one queue, named worker-1..worker-N."""
    return [
        factory(
            orchestrator,
            work_queue,
            retry_policy=retry_policy,
            poll_interval_seconds=poll_interval_seconds,
            worker_id=f"worker-{n}",
        )
        for n in range(1, count + 1)
    ]
