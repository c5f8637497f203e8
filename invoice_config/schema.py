"""
Configuration schema -- frozen dataclasses built by ``invoice_config.loader``.

Every section validates itself in ``__post_init__`` so an invalid YAML
value fails at load time rather than in the middle of a job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from invoice_kernel.domain.profile import BusinessProfile, ShopSettings
from invoice_kernel.domain.states import is_known_state
from invoice_kernel.domain.tax import GSTRateConfig
from invoice_kernel.logging_config import get_logger

logger = get_logger("config.schema")


@dataclass(frozen=True)
class SequenceConfig:
    max_attempts: int = 5

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("sequence.max_attempts must be at least 1")


@dataclass(frozen=True)
class StorageConfig:
    root: str = "/var/lib/invoice-kernel/artifacts"
    retention_days: int = 30

    def __post_init__(self):
        if not self.root or not self.root.strip():
            raise ValueError("storage.root cannot be empty")
        if self.retention_days < 1:
            raise ValueError("storage.retention_days must be at least 1")

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)


@dataclass(frozen=True)
class RasterizerConfig:
    pool_size: int = 2
    render_timeout_seconds: float = 30.0
    acquire_timeout_seconds: float = 10.0

    def __post_init__(self):
        if self.pool_size < 1:
            raise ValueError("rasterizer.pool_size must be at least 1")
        if self.render_timeout_seconds <= 0 or self.acquire_timeout_seconds <= 0:
            raise ValueError("rasterizer timeouts must be positive")


@dataclass(frozen=True)
class JobConfig:
    item_timeout_seconds: float = 60.0
    max_attempts: int = 3
    backoff_base_seconds: float = 2.0
    backoff_factor: float = 2.0
    finished_job_retention_hours: int = 24
    poll_interval_seconds: float = 1.0

    def __post_init__(self):
        if self.item_timeout_seconds <= 0:
            raise ValueError("jobs.item_timeout_seconds must be positive")
        if self.max_attempts < 1:
            raise ValueError("jobs.max_attempts must be at least 1")
        if self.backoff_base_seconds < 0 or self.backoff_factor < 1:
            raise ValueError("jobs backoff must be non-negative with factor >= 1")

    @property
    def finished_job_retention(self) -> timedelta:
        return timedelta(hours=self.finished_job_retention_hours)


@dataclass(frozen=True)
class ShopDefaults:
    """Fallbacks used when the settings collaborator leaves a field unset."""

    default_state: str = "MH"
    layout: str = "classic"
    invoice_prefix: str = "INV"
    invoice_start_number: int = 1001
    date_format: str = "%d/%m/%Y"
    currency: str = "INR"
    auto_send_invoice: bool = False

    def __post_init__(self):
        if not is_known_state(self.default_state):
            raise ValueError(f"Unknown default_state: {self.default_state}")
        if self.currency != "INR":
            raise ValueError("Only INR invoicing is supported")
        logger.debug(
            "shop_defaults_initialized",
            extra={"default_state": self.default_state, "layout": self.layout},
        )

    def settings_for(
        self,
        business: BusinessProfile,
        copy_labels: tuple[str, ...] = ("ORIGINAL",),
        **overrides: Any,
    ) -> ShopSettings:
        """ShopSettings for ``business`` with these defaults filled in."""
        values: dict[str, Any] = {
            "invoice_prefix": self.invoice_prefix,
            "invoice_start_number": self.invoice_start_number,
            "layout": self.layout,
            "default_state": self.default_state,
            "date_format": self.date_format,
            "auto_send_invoice": self.auto_send_invoice,
            "copy_labels": copy_labels,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ShopSettings(business=business, **values)


@dataclass(frozen=True)
class InvoicingConfig:
    """Complete runtime configuration."""

    gst: GSTRateConfig = field(default_factory=GSTRateConfig)
    sequence: SequenceConfig = field(default_factory=SequenceConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    rasterizer: RasterizerConfig = field(default_factory=RasterizerConfig)
    jobs: JobConfig = field(default_factory=JobConfig)
    shop_defaults: ShopDefaults = field(default_factory=ShopDefaults)
    checksum: str = ""
