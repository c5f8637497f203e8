"""
InvoiceServices -- wires configuration into a ready orchestrator and workers.

Responsibility:
    Single place that turns an InvoicingConfig plus the three external
    collaborators into concrete storage, rendering, tax and job objects.
    Scripts and embedding applications build one InvoiceServices per
    process and share it.

Architecture position:
    invoice_batch top level.  May import invoice_config, invoice_render,
    invoice_kernel and invoice_batch.services.  Nothing imports this
    module except entrypoints and tests.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from invoice_batch.collaborators import InvoiceMailer, OrderSource, SettingsSource
from invoice_batch.queue import InMemoryWorkQueue, WorkQueue
from invoice_batch.services.job_orchestrator import JobOrchestrator
from invoice_batch.services.worker import JobWorker, RetryPolicy, make_workers
from invoice_config.schema import InvoicingConfig
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.tax import TaxEngine
from invoice_kernel.logging_config import get_logger
from invoice_kernel.services.storage_gateway import FileStorageGateway, StorageGateway
from invoice_render.layouts import LayoutRegistry
from invoice_render.rasterizer import DocumentRasterizer, ImageLoader, RenderingPool
from invoice_render.renderer import DocumentRenderer

logger = get_logger("batch.container")


@dataclass
class InvoiceServices:
    config: InvoicingConfig
    storage: StorageGateway
    rasterizer: DocumentRasterizer
    renderer: DocumentRenderer
    tax_engine: TaxEngine
    work_queue: WorkQueue
    orchestrator: JobOrchestrator
    retry_policy: RetryPolicy

    @classmethod
    def from_config(
        cls,
        config: InvoicingConfig,
        session_factory: Callable[[], Session],
        order_source: OrderSource,
        settings_source: SettingsSource,
        mailer: InvoiceMailer | None = None,
        work_queue: WorkQueue | None = None,
        storage: StorageGateway | None = None,
        clock: Clock | None = None,
        image_loader: ImageLoader | None = None,
    ) -> InvoiceServices:
        clock = clock or SystemClock()
        storage = storage or FileStorageGateway(config.storage.root, clock=clock)
        pool = RenderingPool(
            size=config.rasterizer.pool_size,
            acquire_timeout=config.rasterizer.acquire_timeout_seconds,
        )
        rasterizer = DocumentRasterizer(
            pool=pool,
            timeout_seconds=config.rasterizer.render_timeout_seconds,
            image_loader=image_loader,
        )
        renderer = DocumentRenderer(
            LayoutRegistry(default=config.shop_defaults.layout),
        )
        tax_engine = TaxEngine(config=config.gst, clock=clock)
        work_queue = work_queue or InMemoryWorkQueue()
        orchestrator = JobOrchestrator(
            session_factory=session_factory,
            order_source=order_source,
            settings_source=settings_source,
            storage=storage,
            rasterizer=rasterizer,
            work_queue=work_queue,
            renderer=renderer,
            tax_engine=tax_engine,
            mailer=mailer,
            clock=clock,
            item_timeout_seconds=config.jobs.item_timeout_seconds,
            sequence_max_attempts=config.sequence.max_attempts,
            finished_job_retention=config.jobs.finished_job_retention,
        )
        retry_policy = RetryPolicy(
            max_attempts=config.jobs.max_attempts,
            base_seconds=config.jobs.backoff_base_seconds,
            factor=config.jobs.backoff_factor,
        )
        logger.info(
            "invoice_services_built",
            extra={
                "pool_size": pool.size,
                "render_timeout_seconds": rasterizer.timeout_seconds,
                "item_timeout_seconds": config.jobs.item_timeout_seconds,
                "config_checksum": config.checksum,
            },
        )
        return cls(
            config=config,
            storage=storage,
            rasterizer=rasterizer,
            renderer=renderer,
            tax_engine=tax_engine,
            work_queue=work_queue,
            orchestrator=orchestrator,
            retry_policy=retry_policy,
        )

    def workers(self, count: int = 1) -> list[JobWorker]:
        return make_workers(
            self.orchestrator,
            self.work_queue,
            count,
            retry_policy=self.retry_policy,
            poll_interval_seconds=self.config.jobs.poll_interval_seconds,
        )

    def close(self) -> None:
        self.rasterizer.close()
