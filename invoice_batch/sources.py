"""
File-backed collaborators for standalone runs.

A deployment embedded in a commerce platform supplies its own OrderSource,
SettingsSource and InvoiceMailer.  These adapters let the worker run
against plain files:

    orders/<shop>/<order_id>.json      one order payload per file
    shops.yaml                         business profile and overrides per shop
    outbox/<shop>/<invoice>.eml        one RFC 5322 message per sent invoice
"""

from __future__ import annotations

from collections.abc import Mapping
from email.message import EmailMessage
from pathlib import Path
from typing import Any

import yaml

from invoice_batch.collaborators import InvoiceEmail
from invoice_config.schema import ShopDefaults
from invoice_kernel.domain.profile import BusinessProfile, ShopSettings
from invoice_kernel.exceptions import InvalidShopError, OrderNotFoundError, ValidationError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.services.storage_gateway import sanitize_component, shop_directory

logger = get_logger("batch.sources")

_SETTINGS_KEYS = (
    "invoice_prefix",
    "invoice_start_number",
    "layout",
    "default_state",
    "date_format",
    "auto_send_invoice",
)


class DirectoryOrderSource:
    """Reads ``<root>/<shop>/<order_id>.json`` (JSON is valid YAML)."""

    def __init__(self, root: str | Path):
        self._root = Path(root)

    def fetch_order(self, shop: str, order_id: str) -> Mapping[str, Any]:
        try:
            shop_dir = shop_directory(shop)
        except InvalidShopError as exc:
            raise OrderNotFoundError(order_id, shop) from exc
        path = self._root / shop_dir / f"{sanitize_component(order_id)}.json"
        if not path.is_file():
            raise OrderNotFoundError(order_id, shop)
        with path.open(encoding="utf-8") as f:
            payload = yaml.safe_load(f)
        if not isinstance(payload, Mapping):
            raise ValidationError([f"Order file is not a mapping: {path.name}"], subject=order_id)
        return payload


class YamlSettingsSource:
    """Shop settings from a YAML file keyed by shop domain.

    Each entry holds a ``business`` mapping plus optional overrides of
    the configured ShopDefaults.  Parsed settings are cached per shop.
    """

    def __init__(self, path: str | Path, defaults: ShopDefaults | None = None):
        self._path = Path(path)
        self._defaults = defaults or ShopDefaults()
        self._cache: dict[str, ShopSettings] = {}
        with self._path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, Mapping):
            raise ValueError(f"Shops file must contain a mapping: {self._path}")
        self._shops: Mapping[str, Any] = data.get("shops", data)

    @property
    def shops(self) -> list[str]:
        return sorted(self._shops)

    def get_settings(self, shop: str) -> ShopSettings:
        if shop in self._cache:
            return self._cache[shop]
        entry = self._shops.get(shop)
        if not isinstance(entry, Mapping):
            raise ValidationError([f"No settings configured for shop {shop}"], subject=shop)

        business = BusinessProfile.from_mapping(entry.get("business") or {})
        overrides = {key: entry.get(key) for key in _SETTINGS_KEYS}
        labels = entry.get("copy_labels") or ("ORIGINAL",)
        try:
            settings = self._defaults.settings_for(
                business, copy_labels=tuple(str(label) for label in labels), **overrides,
            )
        except ValueError as exc:
            raise ValidationError([str(exc)], subject=shop) from exc
        self._cache[shop] = settings
        logger.info("shop_settings_loaded", extra={"shop": shop, "layout": settings.layout})
        return settings


class OutboxMailer:
    """Writes each invoice email as ``.eml`` under ``<root>/<shop>/``."""

    def __init__(self, root: str | Path, sender: str = "invoices@localhost"):
        self._root = Path(root)
        self._sender = sender

    def send_invoice(self, email: InvoiceEmail) -> None:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = email.to
        message["Subject"] = email.subject
        message.set_content(email.body)
        message.add_attachment(
            email.attachment,
            maintype="application",
            subtype="pdf",
            filename=email.attachment_name,
        )
        directory = self._root / shop_directory(email.shop)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{sanitize_component(email.invoice_number)}.eml"
        path.write_bytes(bytes(message))
        logger.info(
            "invoice_email_written",
            extra={"shop": email.shop, "invoice_number": email.invoice_number, "path": str(path)},
        )
