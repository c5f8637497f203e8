"""
Configuration Loader (``invoice_config.loader``).

Responsibility
--------------
Loads the packaged ``defaults.yaml``, merges an optional deployment YAML
file over it, and parses the result into ``invoice_config.schema``
dataclasses.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown top-level sections raise ``ValueError`` (typos do not silently
  fall back to defaults).
* ``compute_checksum`` produces a deterministic SHA-256 hash of the merged
  configuration for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from the schema ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from invoice_config.schema import (
    InvoicingConfig,
    JobConfig,
    RasterizerConfig,
    SequenceConfig,
    ShopDefaults,
    StorageConfig,
)
from invoice_kernel.domain.tax import GSTRateConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS = ("gst", "sequence", "storage", "rasterizer", "jobs", "shop_defaults")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursive merge; ``override`` wins on scalar conflicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_gst(data: dict[str, Any]) -> GSTRateConfig:
    return GSTRateConfig(
        threshold=Decimal(str(data["threshold"])),
        low_rate=Decimal(str(data["low_rate"])),
        high_rate=Decimal(str(data["high_rate"])),
    )


def parse_storage(data: dict[str, Any]) -> StorageConfig:
    return StorageConfig(
        root=str(data["root"]),
        retention_days=int(data.get("retention_days", 30)),
    )


def parse_rasterizer(data: dict[str, Any]) -> RasterizerConfig:
    return RasterizerConfig(
        pool_size=int(data["pool_size"]),
        render_timeout_seconds=float(data["render_timeout_seconds"]),
        acquire_timeout_seconds=float(data["acquire_timeout_seconds"]),
    )


def parse_jobs(data: dict[str, Any]) -> JobConfig:
    return JobConfig(
        item_timeout_seconds=float(data["item_timeout_seconds"]),
        max_attempts=int(data["max_attempts"]),
        backoff_base_seconds=float(data["backoff_base_seconds"]),
        backoff_factor=float(data["backoff_factor"]),
        finished_job_retention_hours=int(data["finished_job_retention_hours"]),
        poll_interval_seconds=float(data.get("poll_interval_seconds", 1.0)),
    )


def parse_shop_defaults(data: dict[str, Any]) -> ShopDefaults:
    return ShopDefaults(
        default_state=str(data["default_state"]).strip().upper(),
        layout=str(data["layout"]),
        invoice_prefix=str(data["invoice_prefix"]),
        invoice_start_number=int(data["invoice_start_number"]),
        date_format=str(data["date_format"]),
        currency=str(data.get("currency", "INR")),
        auto_send_invoice=bool(data.get("auto_send_invoice", False)),
    )


def parse_config(data: dict[str, Any]) -> InvoicingConfig:
    """
    Parse a fully merged configuration mapping.

    Raises:
        KeyError: a required key is missing.
        ValueError: unknown section or invalid value.
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    return InvoicingConfig(
        gst=parse_gst(data["gst"]),
        sequence=SequenceConfig(
            max_attempts=int(data["sequence"]["max_attempts"]),
        ),
        storage=parse_storage(data["storage"]),
        rasterizer=parse_rasterizer(data["rasterizer"]),
        jobs=parse_jobs(data["jobs"]),
        shop_defaults=parse_shop_defaults(data["shop_defaults"]),
        checksum=compute_checksum(data),
    )


def load_config(path: Path | None = None) -> InvoicingConfig:
    """Defaults merged with the optional override file at ``path``."""
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge_dicts(data, load_yaml_file(Path(path)))
    return parse_config(data)
