"""
JobOrchestrator -- single and bulk invoice generation with progress.

Contract:
    ``generate_single()`` produces one invoice synchronously.
    ``generate_bulk()`` creates a queued job and hands it to the
    WorkQueue; a worker later calls ``execute_job()``.  Status, cancel,
    download and email delivery are served from the same object.

Architecture: invoice_batch/services.  Imports from invoice_batch.domain,
    invoice_batch.models, invoice_render and kernel services.  Owns its
    transaction boundaries: every unit of work (job creation, one order,
    job completion) commits in its own session.

Invariants enforced:
    - Job lifecycle follows PrintJobStatus.can_transition_to; only this
      class writes PrintJobModel rows.
    - An InvoiceRecord exists only for an order whose document was
      rendered, rasterized and stored.  Any failure after the artifact was
      stored deletes it again, and rolls back the invoice number.
    - One order's failure never aborts a bulk job: it is recorded on its
      item row and the job continues.
    - Progress is committed after every item and never decreases while
      the job runs.
    - Each order is bounded by a wall-clock deadline checked between
      pipeline stages; the rasterizer is given only the time remaining.
    - Cancellation is cooperative: the persisted flag is re-read before
      every order.

Failure modes:
    - EmptyOrderListError: bulk request without orders.
    - JobNotFoundError: unknown job, or a job of another shop.
    - InvalidJobTransitionError: e.g. cancelling a finished job.
    - JobInfrastructureError: the rendering engine or storage is down;
      the job stays ``processing`` and the worker retries it.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoice_batch.collaborators import (
    InvoiceMailer,
    OrderSource,
    SettingsSource,
    build_invoice_email,
)
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
from invoice_batch.models.print_job import PrintJobItemModel, PrintJobModel
from invoice_batch.queue import WorkQueue
from invoice_batch.services.archive import ArchiveBundler, ArchiveEntry
from invoice_kernel.db.base import as_utc
from invoice_kernel.db.engine import session_scope
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.hsn import annotate_line_items
from invoice_kernel.domain.invoice import InvoiceRecord, InvoiceStatus, invoice_filename
from invoice_kernel.domain.money import round_money
from invoice_kernel.domain.order import OrderSnapshot
from invoice_kernel.domain.profile import ShopSettings
from invoice_kernel.domain.tax import TaxEngine, TaxInput
from invoice_kernel.exceptions import (
    ArtifactNotFoundError,
    DuplicateInvoiceNumberError,
    EmptyOrderListError,
    InvalidJobTransitionError,
    InvoiceDeliveryError,
    InvoiceNotFoundError,
    ItemTimeoutError,
    JobInfrastructureError,
    JobNotFoundError,
    MailerNotConfiguredError,
    RenderingEngineUnavailableError,
    StorageError,
    ValidationError,
)
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.models.invoice import InvoiceRecordModel
from invoice_kernel.services.invoice_numbering import InvoiceNumberAllocator
from invoice_kernel.services.sequence_service import SequenceService
from invoice_kernel.services.storage_gateway import StorageGateway, download_url
from invoice_render.rasterizer import DocumentRasterizer
from invoice_render.renderer import DocumentRenderer, RenderRequest

logger = get_logger("batch.orchestrator")

# Failures of shared infrastructure: retrying the same order would fail
# the same way, so the whole job is handed back to the worker.
_INFRASTRUCTURE_ERRORS = (RenderingEngineUnavailableError, StorageError)

CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".zip": "application/zip",
}


def content_type_for(filename: str) -> str:
    for suffix, content_type in CONTENT_TYPES.items():
        if filename.lower().endswith(suffix):
            return content_type
    return "application/octet-stream"


def display_name(key: str) -> str:
    """``shop/1700000000000-invoice-INV-1001.pdf`` -> ``invoice-INV-1001.pdf``."""
    name = key.rsplit("/", 1)[-1]
    stamp, sep, rest = name.partition("-")
    return rest if sep and stamp.isdigit() and rest else name


@dataclass(frozen=True)
class GeneratedInvoice:
    record: InvoiceRecord
    pdf: bytes
    page_count: int


class JobOrchestrator:
    """Print job lifecycle and the per-order generation pipeline.

    Contract:
        Public methods open their own sessions from ``session_factory``
        and commit before returning.

    Non-goals:
        - Does NOT run background threads; JobWorker drives execute_job.
        - Does NOT retry individual orders inside a run.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        order_source: OrderSource,
        settings_source: SettingsSource,
        storage: StorageGateway,
        rasterizer: DocumentRasterizer,
        work_queue: WorkQueue,
        renderer: DocumentRenderer | None = None,
        tax_engine: TaxEngine | None = None,
        mailer: InvoiceMailer | None = None,
        clock: Clock | None = None,
        item_timeout_seconds: float = 60.0,
        sequence_max_attempts: int = SequenceService.DEFAULT_MAX_ATTEMPTS,
        finished_job_retention: timedelta = timedelta(hours=24),
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._orders = order_source
        self._settings = settings_source
        self._storage = storage
        self._rasterizer = rasterizer
        self._queue = work_queue
        self._renderer = renderer or DocumentRenderer()
        self._clock = clock or SystemClock()
        self._tax = tax_engine or TaxEngine(clock=self._clock)
        self._mailer = mailer
        self._item_timeout = item_timeout_seconds
        self._sequence_attempts = sequence_max_attempts
        self._finished_job_retention = finished_job_retention
        self._monotonic = monotonic
        self._bundler = ArchiveBundler(storage)

    # -------------------------------------------------------------------------
    # Single
    # -------------------------------------------------------------------------

    def generate_single(self, shop: str, order_id: str) -> SingleInvoiceResult:
        """Generate one invoice now.

        Raises:
            Whatever stage failed; the job is marked failed first.
        """
        job_id = self._create_job(
            shop, (order_id,), JobType.SINGLE, PrintJobStatus.PROCESSING,
        )
        with LogContext.bind(shop=shop, job_id=str(job_id), order_id=order_id):
            start = self._monotonic()
            try:
                settings = self._settings.get_settings(shop)
                with self._session_factory() as session:
                    generated = self._generate(
                        session, shop, settings, order_id, start + self._item_timeout,
                    )
                    record = generated.record
                    try:
                        job = self._get_job_model(session, job_id)
                        self._save_item(
                            session, job_id, 0, order_id,
                            status=PrintJobItemStatus.SUCCEEDED,
                            invoice_number=record.invoice_number,
                            artifact_key=record.artifact_key,
                            duration_ms=self._elapsed_ms(start),
                        )
                        job.completed_count = 1
                        job.progress = 100
                        job.artifact_key = record.artifact_key
                        job.download_url = download_url(record.artifact_key, shop)
                        self._transition(job, PrintJobStatus.COMPLETED)
                        session.commit()
                    except BaseException:
                        session.rollback()
                        self._discard_artifact(shop, record.artifact_key)
                        raise
            except Exception as exc:
                self._fail_single(job_id, order_id, exc, self._elapsed_ms(start))
                raise

            email_sent = False
            if settings.auto_send_invoice and self._mailer and record.customer_email:
                try:
                    self.send_invoice(shop, record.invoice_number)
                    email_sent = True
                except InvoiceDeliveryError as exc:
                    # the invoice exists; delivery failure is on the record
                    logger.warning(
                        "invoice_auto_send_failed",
                        extra={"invoice_number": record.invoice_number, "error": str(exc)},
                    )

            logger.info(
                "single_invoice_generated",
                extra={
                    "invoice_number": record.invoice_number,
                    "page_count": generated.page_count,
                    "duration_ms": self._elapsed_ms(start),
                },
            )
            return SingleInvoiceResult(
                job_id=job_id,
                invoice_number=record.invoice_number,
                artifact_key=record.artifact_key,
                download_url=download_url(record.artifact_key, shop),
                email_sent=email_sent,
            )

    def _fail_single(self, job_id: UUID, order_id: str, exc: Exception, duration_ms: int) -> None:
        with session_scope(self._session_factory) as session:
            job = self._get_job_model(session, job_id)
            self._save_item(
                session, job_id, 0, order_id,
                status=PrintJobItemStatus.FAILED,
                error_code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                error_message=str(exc),
                duration_ms=duration_ms,
            )
            job.failed_count = 1
            job.progress = 100
            job.error = str(exc)
            self._transition(job, PrintJobStatus.FAILED)
        logger.error(
            "single_invoice_failed",
            extra={"error_code": getattr(exc, "code", type(exc).__name__), "error": str(exc)},
        )

    # -------------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------------

    def generate_bulk(self, shop: str, order_ids: Sequence[str]) -> UUID:
        """Queue a bulk job and return its id immediately.

        Blank ids are dropped and duplicates collapsed, keeping first
        occurrence order.

        Raises:
            EmptyOrderListError: nothing left to generate.
        """
        cleaned = list(dict.fromkeys(
            str(order_id).strip()
            for order_id in order_ids or ()
            if order_id is not None and str(order_id).strip()
        ))
        if not cleaned:
            raise EmptyOrderListError()

        job_id = self._create_job(shop, tuple(cleaned), JobType.BULK, PrintJobStatus.QUEUED)
        try:
            self._queue.submit(job_id)
        except Exception as exc:
            self.fail_job(job_id, f"Could not enqueue job: {exc}")
            raise
        return job_id

    def execute_job(self, job_id: UUID) -> JobRunResult:
        """Process a queued (or retried) bulk job to a terminal status.

        Raises:
            JobNotFoundError: unknown job.
            InvalidJobTransitionError: the job is already terminal.
            JobInfrastructureError: rendering engine or storage failure.
        """
        start = self._monotonic()
        with self._session_factory() as session, LogContext.bind(job_id=str(job_id)):
            job = self._lock_job(session, job_id)
            self._transition(job, PrintJobStatus.PROCESSING)
            job.attempts += 1
            shop = job.shop
            order_ids = list(job.order_ids)
            attempt = job.attempts
            session.commit()

            with LogContext.bind(shop=shop):
                logger.info(
                    "job_started",
                    extra={"total_orders": len(order_ids), "attempt": attempt},
                )
                try:
                    settings = self._settings.get_settings(shop)
                except ValidationError as exc:
                    return self._close_job(
                        session, job_id, start, cancelled=False,
                        reason=f"Shop settings invalid: {exc}",
                    )

                done = {
                    row.item_index
                    for row in session.execute(
                        select(PrintJobItemModel).where(
                            PrintJobItemModel.job_id == job_id,
                            PrintJobItemModel.status == PrintJobItemStatus.SUCCEEDED.value,
                        )
                    ).scalars()
                }

                cancelled = False
                for index, order_id in enumerate(order_ids):
                    if self._cancel_requested(session, job_id):
                        cancelled = True
                        logger.info("job_cancel_observed", extra={"next_index": index})
                        break
                    if index in done:
                        continue
                    with LogContext.bind(order_id=order_id):
                        self._process_item(session, shop, settings, job_id, index, order_id)

                return self._close_job(session, job_id, start, cancelled=cancelled)

    def _process_item(
        self,
        session: Session,
        shop: str,
        settings: ShopSettings,
        job_id: UUID,
        index: int,
        order_id: str,
    ) -> None:
        start = self._monotonic()
        try:
            generated = self._generate(
                session, shop, settings, order_id, start + self._item_timeout,
            )
        except _INFRASTRUCTURE_ERRORS as exc:
            session.rollback()
            logger.error(
                "job_infrastructure_failure",
                extra={"error_code": exc.code, "error": str(exc)},
            )
            raise JobInfrastructureError(str(job_id), str(exc), exc.code) from exc
        except Exception as exc:
            session.rollback()
            error_code = getattr(exc, "code", "UNHANDLED_EXCEPTION")
            self._save_item(
                session, job_id, index, order_id,
                status=PrintJobItemStatus.FAILED,
                error_code=error_code,
                error_message=str(exc),
                duration_ms=self._elapsed_ms(start),
            )
            self._update_progress(session, job_id)
            session.commit()
            logger.warning(
                "job_item_failed",
                extra={"item_index": index, "error_code": error_code, "error": str(exc)},
            )
            return

        record = generated.record
        try:
            self._save_item(
                session, job_id, index, order_id,
                status=PrintJobItemStatus.SUCCEEDED,
                invoice_number=record.invoice_number,
                artifact_key=record.artifact_key,
                duration_ms=self._elapsed_ms(start),
            )
            self._update_progress(session, job_id)
            session.commit()
        except BaseException:
            session.rollback()
            self._discard_artifact(shop, record.artifact_key)
            raise
        logger.info(
            "job_item_succeeded",
            extra={
                "item_index": index,
                "invoice_number": record.invoice_number,
                "duration_ms": self._elapsed_ms(start),
            },
        )

    def _close_job(
        self,
        session: Session,
        job_id: UUID,
        start: float,
        cancelled: bool,
        reason: str | None = None,
    ) -> JobRunResult:
        job = self._get_job_model(session, job_id)
        shop = job.shop
        total = len(job.order_ids)
        succeeded = [item for item in job.items if item.status == PrintJobItemStatus.SUCCEEDED.value]

        artifact_key = None
        missing: tuple[str, ...] = ()
        if succeeded and reason is None:
            entries = [
                ArchiveEntry(key=item.artifact_key, arcname=invoice_filename(item.invoice_number))
                for item in succeeded
            ]
            archive_name = f"invoices-{self._clock.now():%Y%m%d-%H%M%S}.zip"
            try:
                bundle = self._bundler.bundle(shop, entries, archive_name)
            except StorageError as exc:
                session.rollback()
                raise JobInfrastructureError(str(job_id), str(exc), exc.code) from exc
            artifact_key = bundle.artifact.key
            missing = bundle.missing

        job = self._get_job_model(session, job_id)
        if reason is not None:
            target, error = PrintJobStatus.FAILED, reason
        elif cancelled:
            target, error = PrintJobStatus.CANCELLED, "Cancelled by request"
        elif job.completed_count > 0:
            target = PrintJobStatus.COMPLETED
            error = f"{job.failed_count} of {total} orders failed" if job.failed_count else None
        else:
            target, error = PrintJobStatus.FAILED, f"All {total} orders failed"

        if artifact_key is not None:
            job.artifact_key = artifact_key
            job.download_url = download_url(artifact_key, shop)
        job.error = error
        if target != PrintJobStatus.CANCELLED:
            job.progress = 100
        self._transition(job, target)
        session.commit()

        result = JobRunResult(
            job_id=job_id,
            status=target,
            total=total,
            completed=job.completed_count,
            failed=job.failed_count,
            items=tuple(item.to_dto() for item in job.items),
            artifact_key=job.artifact_key,
            download_url=job.download_url,
            missing_from_archive=missing,
            duration_ms=self._elapsed_ms(start),
        )
        logger.info(
            "job_finished",
            extra={
                "status": target.value,
                "completed": result.completed,
                "failed": result.failed,
                "total_orders": total,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def fail_job(self, job_id: UUID, reason: str) -> None:
        """Force a non-terminal job to ``failed`` (retries exhausted)."""
        with session_scope(self._session_factory) as session:
            job = self._lock_job(session, job_id)
            if PrintJobStatus(job.status).is_terminal:
                logger.info(
                    "job_fail_ignored",
                    extra={"job_id": str(job_id), "status": job.status},
                )
                return
            job.error = reason
            self._transition(job, PrintJobStatus.FAILED)

    # -------------------------------------------------------------------------
    # Queries and control
    # -------------------------------------------------------------------------

    def get_job(self, shop: str, job_id: UUID) -> PrintJob:
        with self._session_factory() as session:
            return self._shop_job(session, shop, job_id).to_dto()

    def get_job_items(self, shop: str, job_id: UUID) -> list[PrintJobItem]:
        with self._session_factory() as session:
            return [item.to_dto() for item in self._shop_job(session, shop, job_id).items]

    def get_job_status(self, shop: str, job_id: UUID) -> JobStatusView:
        with self._session_factory() as session:
            return self._status_view(self._shop_job(session, shop, job_id))

    def cancel_job(self, shop: str, job_id: UUID) -> JobStatusView:
        """Cancel a queued job now, or flag a running one.

        Raises:
            JobNotFoundError: unknown job for this shop.
            InvalidJobTransitionError: the job already finished.
        """
        with session_scope(self._session_factory) as session:
            job = self._shop_job(session, shop, job_id, lock=True)
            status = PrintJobStatus(job.status)
            if status == PrintJobStatus.QUEUED:
                job.error = "Cancelled by request"
                self._transition(job, PrintJobStatus.CANCELLED)
            elif status == PrintJobStatus.PROCESSING:
                job.cancel_requested = True
                job.updated_at = self._clock.now()
                logger.info("job_cancel_requested", extra={"job_id": str(job_id), "shop": shop})
            else:
                raise InvalidJobTransitionError(
                    str(job_id), status.value, PrintJobStatus.CANCELLED.value,
                )
            session.flush()
            return self._status_view(job)

    def prune_finished_jobs(self, older_than: timedelta | None = None) -> int:
        """Delete terminal jobs finished before ``now - older_than``."""
        cutoff = self._clock.now() - (older_than or self._finished_job_retention)
        terminal = [status.value for status in PrintJobStatus if status.is_terminal]
        deleted = 0
        with session_scope(self._session_factory) as session:
            jobs = session.execute(
                select(PrintJobModel).where(PrintJobModel.status.in_(terminal))
            ).scalars().all()
            for job in jobs:
                finished = as_utc(job.completed_at or job.updated_at)
                if finished is not None and finished < cutoff:
                    session.delete(job)
                    deleted += 1
        logger.info("finished_jobs_pruned", extra={"deleted": deleted, "cutoff": cutoff})
        return deleted

    # -------------------------------------------------------------------------
    # Downloads and delivery
    # -------------------------------------------------------------------------

    def download(self, shop: str, artifact_key: str) -> DownloadPayload:
        """Artifact bytes for ``shop``.

        Raises:
            ArtifactNotFoundError: missing, foreign or malformed key.
        """
        content = self._storage.read(shop, artifact_key)
        filename = display_name(artifact_key)
        return DownloadPayload(
            filename=filename,
            content_type=content_type_for(filename),
            content=content,
        )

    def download_invoice(self, shop: str, invoice_number: str) -> DownloadPayload:
        with self._session_factory() as session:
            record = self._find_invoice(session, shop, invoice_number)
            key = record.artifact_key
        payload = self.download(shop, key)
        return replace(payload, filename=invoice_filename(invoice_number))

    def get_invoice(self, shop: str, invoice_number: str) -> InvoiceRecord:
        with self._session_factory() as session:
            return self._find_invoice(session, shop, invoice_number).to_dto()

    def send_invoice(self, shop: str, invoice_number: str) -> InvoiceRecord:
        """Email an existing invoice and record the delivery outcome.

        Raises:
            InvoiceNotFoundError: unknown invoice for this shop.
            ValidationError: the order had no customer email.
            InvoiceDeliveryError: the mailer failed; status is ``failed``.
            MailerNotConfiguredError: the orchestrator has no mailer.
        """
        if self._mailer is None:
            raise MailerNotConfiguredError(shop, invoice_number)

        with session_scope(self._session_factory) as session:
            record = self._find_invoice(session, shop, invoice_number)
            if not record.customer_email:
                raise ValidationError(
                    ["Customer email is required to send an invoice"],
                    subject=invoice_number,
                )
            settings = self._settings.get_settings(shop)
            email = build_invoice_email(
                shop=shop,
                to=record.customer_email,
                invoice_number=invoice_number,
                business_name=settings.business.company_name,
                customer_name=record.customer_name,
                pdf=self._storage.read(shop, record.artifact_key),
            )
            record.updated_at = self._clock.now()
            try:
                self._mailer.send_invoice(email)
            except Exception as exc:
                record.status = InvoiceStatus.FAILED.value
                session.commit()
                logger.error(
                    "invoice_email_failed",
                    extra={"shop": shop, "invoice_number": invoice_number, "error": str(exc)},
                )
                raise InvoiceDeliveryError(invoice_number, shop, str(exc)) from exc
            record.status = InvoiceStatus.SENT.value
            session.flush()
            logger.info(
                "invoice_email_sent",
                extra={"shop": shop, "invoice_number": invoice_number},
            )
            return record.to_dto()

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _generate(
        self,
        session: Session,
        shop: str,
        settings: ShopSettings,
        order_id: str,
        deadline: float,
    ) -> GeneratedInvoice:
        """Run one order through the pipeline inside ``session``.

        The caller commits.  On any failure after storage, the stored
        artifact is deleted before the exception propagates.
        """
        payload = self._orders.fetch_order(shop, order_id)
        self._check_deadline(deadline, order_id, "fetch")

        snapshot = OrderSnapshot.from_mapping(payload)
        snapshot = replace(snapshot, line_items=annotate_line_items(snapshot.line_items))
        breakdown = self._tax.calculate(
            TaxInput(
                order_total=snapshot.total,
                subtotal=snapshot.subtotal,
                customer_state=snapshot.customer_state,
                store_state=(
                    snapshot.store_state
                    or settings.business.state_code
                    or settings.default_state
                ),
                hsn_code=snapshot.hsn_code,
                product_type=snapshot.product_type,
                order_id=snapshot.order_id,
            )
        )

        allocator = InvoiceNumberAllocator(
            session, SequenceService(session, max_attempts=self._sequence_attempts),
        )
        invoice_number = allocator.allocate(
            shop, settings.invoice_prefix, settings.invoice_start_number,
        )

        with LogContext.bind(invoice_number=invoice_number):
            now = self._clock.now()
            markup = self._renderer.render(
                RenderRequest(
                    order=snapshot,
                    breakdown=breakdown,
                    business=settings.business,
                    invoice_number=invoice_number,
                    invoice_date=now,
                    layout=settings.layout,
                    copy_labels=settings.copy_labels,
                    date_format=settings.date_format,
                )
            )
            remaining = self._check_deadline(deadline, order_id, "render")
            document = self._rasterizer.rasterize(
                markup, timeout=min(remaining, self._rasterizer.timeout_seconds),
            )
            self._check_deadline(deadline, order_id, "rasterize")

            stored = self._storage.save(shop, invoice_filename(invoice_number), document.content)
            try:
                model = InvoiceRecordModel(
                    id=uuid4(),
                    shop=shop,
                    order_id=snapshot.order_id,
                    order_number=snapshot.order_number,
                    invoice_number=invoice_number,
                    total=round_money(snapshot.total),
                    gst_amount=breakdown.total_tax,
                    cgst_amount=breakdown.cgst_amount,
                    sgst_amount=breakdown.sgst_amount,
                    igst_amount=breakdown.igst_amount,
                    artifact_key=stored.key,
                    status=InvoiceStatus.GENERATED.value,
                    customer_name=snapshot.customer_name or snapshot.billing_address.name,
                    customer_email=snapshot.customer_email,
                    generated_at=now,
                )
                model.created_at = now
                model.updated_at = now
                session.add(model)
                try:
                    session.flush()
                except IntegrityError as exc:
                    raise DuplicateInvoiceNumberError(invoice_number, shop) from exc
            except BaseException:
                self._discard_artifact(shop, stored.key)
                raise

            logger.info(
                "invoice_generated",
                extra={
                    "gst_type": breakdown.gst_type.value,
                    "total_tax": breakdown.total_tax,
                    "key": stored.key,
                    "page_count": document.page_count,
                },
            )
            return GeneratedInvoice(
                record=model.to_dto(),
                pdf=document.content,
                page_count=document.page_count,
            )

    def _check_deadline(self, deadline: float, order_id: str, stage: str) -> float:
        remaining = deadline - self._monotonic()
        if remaining <= 0:
            raise ItemTimeoutError(order_id, self._item_timeout, stage)
        return remaining

    def _discard_artifact(self, shop: str, key: str) -> None:
        try:
            self._storage.delete(shop, key)
        except ArtifactNotFoundError:
            return
        except StorageError as exc:
            # the original failure is already propagating
            logger.error(
                "artifact_cleanup_failed",
                extra={"shop": shop, "key": key, "error": str(exc)},
            )
            return
        logger.info("artifact_discarded", extra={"shop": shop, "key": key})

    # -------------------------------------------------------------------------
    # Persistence helpers
    # -------------------------------------------------------------------------

    def _create_job(
        self,
        shop: str,
        order_ids: tuple[str, ...],
        job_type: JobType,
        status: PrintJobStatus,
    ) -> UUID:
        now = self._clock.now()
        dto = PrintJob(
            job_id=uuid4(),
            shop=shop,
            job_type=job_type,
            status=status,
            order_ids=order_ids,
            created_at=now,
            updated_at=now,
        )
        with session_scope(self._session_factory) as session:
            session.add(PrintJobModel.from_dto(dto))
        logger.info(
            "job_created",
            extra={
                "job_id": str(dto.job_id),
                "shop": shop,
                "job_type": job_type.value,
                "status": status.value,
                "total_orders": len(order_ids),
            },
        )
        return dto.job_id

    def _transition(self, job: PrintJobModel, target: PrintJobStatus) -> None:
        current = PrintJobStatus(job.status)
        if current == target:
            return
        if not current.can_transition_to(target):
            raise InvalidJobTransitionError(str(job.id), current.value, target.value)
        now = self._clock.now()
        job.status = target.value
        job.updated_at = now
        if target.is_terminal:
            job.completed_at = now
        logger.info(
            "job_status_changed",
            extra={
                "job_id": str(job.id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )

    def _save_item(
        self,
        session: Session,
        job_id: UUID,
        index: int,
        order_id: str,
        status: PrintJobItemStatus,
        invoice_number: str | None = None,
        artifact_key: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        duration_ms: int = 0,
    ) -> None:
        now = self._clock.now()
        item = session.execute(
            select(PrintJobItemModel).where(
                PrintJobItemModel.job_id == job_id,
                PrintJobItemModel.item_index == index,
            )
        ).scalar_one_or_none()
        if item is None:
            item = PrintJobItemModel.from_dto(
                PrintJobItem(order_id=order_id, item_index=index, status=status),
                job_id=job_id,
            )
            item.created_at = now
            session.add(item)
        item.status = status.value
        item.invoice_number = invoice_number
        item.artifact_key = artifact_key
        item.error_code = error_code
        item.error_message = error_message
        item.duration_ms = duration_ms
        item.updated_at = now

    def _update_progress(self, session: Session, job_id: UUID) -> None:
        session.flush()
        counts = dict(
            session.execute(
                select(PrintJobItemModel.status, func.count())
                .where(PrintJobItemModel.job_id == job_id)
                .group_by(PrintJobItemModel.status)
            ).all()
        )
        job = self._get_job_model(session, job_id)
        completed = counts.get(PrintJobItemStatus.SUCCEEDED.value, 0)
        failed = counts.get(PrintJobItemStatus.FAILED.value, 0)
        job.completed_count = completed
        job.failed_count = failed
        job.progress = max(
            job.progress, compute_progress(completed + failed, len(job.order_ids)),
        )
        job.updated_at = self._clock.now()

    def _cancel_requested(self, session: Session, job_id: UUID) -> bool:
        return bool(
            session.execute(
                select(PrintJobModel.cancel_requested).where(PrintJobModel.id == job_id)
            ).scalar_one()
        )

    @staticmethod
    def _get_job_model(session: Session, job_id: UUID) -> PrintJobModel:
        job = session.get(PrintJobModel, job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    @staticmethod
    def _lock_job(session: Session, job_id: UUID) -> PrintJobModel:
        job = session.execute(
            select(PrintJobModel).where(PrintJobModel.id == job_id).with_for_update()
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    @staticmethod
    def _shop_job(
        session: Session, shop: str, job_id: UUID, lock: bool = False,
    ) -> PrintJobModel:
        stmt = select(PrintJobModel).where(PrintJobModel.id == job_id)
        if lock:
            stmt = stmt.with_for_update()
        job = session.execute(stmt).scalar_one_or_none()
        if job is None or job.shop != shop:
            raise JobNotFoundError(str(job_id), shop)
        return job

    @staticmethod
    def _find_invoice(session: Session, shop: str, invoice_number: str) -> InvoiceRecordModel:
        record = session.execute(
            select(InvoiceRecordModel).where(
                InvoiceRecordModel.shop == shop,
                InvoiceRecordModel.invoice_number == invoice_number,
            )
        ).scalar_one_or_none()
        if record is None:
            raise InvoiceNotFoundError(invoice_number, shop)
        return record

    @staticmethod
    def _status_view(job: PrintJobModel) -> JobStatusView:
        return JobStatusView(
            job_id=job.id,
            status=PrintJobStatus(job.status),
            progress=job.progress,
            completed_count=job.completed_count,
            failed_count=job.failed_count,
            total_orders=len(job.order_ids),
            download_url=job.download_url,
            error=job.error,
        )

    def _elapsed_ms(self, start: float) -> int:
        return int((self._monotonic() - start) * 1000)
