"""
invoice_config -- single public entrypoint for invoicing configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  YAML loading lives in ``invoice_config.loader``.

Architecture position:
    Sits above ``invoice_kernel`` (it builds kernel value objects such as
    ``GSTRateConfig``) and below ``invoice_batch``.  The kernel MUST NEVER
    import from ``invoice_config``.

Audit relevance:
    Every call emits an ``INVOICE_CONFIG_TRACE`` log entry with the
    checksum of the merged configuration, tying generated invoices to the
    exact rate slabs in force.
"""

from __future__ import annotations

from pathlib import Path

from invoice_config.loader import load_config
from invoice_config.schema import (
    InvoicingConfig,
    JobConfig,
    RasterizerConfig,
    SequenceConfig,
    ShopDefaults,
    StorageConfig,
)
from invoice_kernel.logging_config import get_logger

_logger = get_logger("config")

__all__ = [
    "InvoicingConfig",
    "JobConfig",
    "RasterizerConfig",
    "SequenceConfig",
    "ShopDefaults",
    "StorageConfig",
    "get_active_config",
]


def get_active_config(config_path: Path | None = None) -> InvoicingConfig:
    """Load, validate and trace the active configuration."""
    config = load_config(config_path)
    _logger.info(
        "INVOICE_CONFIG_TRACE",
        extra={
            "config_path": str(config_path) if config_path else "defaults",
            "checksum": config.checksum,
            "gst_threshold": config.gst.threshold,
            "gst_low_rate": config.gst.low_rate,
            "gst_high_rate": config.gst.high_rate,
        },
    )
    return config
