#!/usr/bin/env python3
"""
Delete expired invoice artifacts and finished print jobs.

Artifacts older than ``storage.retention_days`` are removed per shop;
terminal jobs older than ``jobs.finished_job_retention_hours`` are
deleted with their item rows.  Invoice records are never touched.

Usage:
    python3 scripts/prune_artifacts.py [--db-url URL] [--config PATH] [--dry-run]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///invoices.db"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Prune expired artifacts and finished jobs.")
    parser.add_argument("--config", type=Path, default=None, help="Override YAML.")
    parser.add_argument("--db-url", default=DB_URL, help=f"Database URL (default: {DB_URL!r}).")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List what would be pruned without deleting.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    from invoice_batch.container import InvoiceServices
    from invoice_config import get_active_config
    from invoice_kernel.db.engine import get_session_factory, init_engine_from_url
    from invoice_kernel.domain.clock import SystemClock
    from invoice_kernel.logging_config import configure_logging
    from invoice_kernel.services.storage_gateway import FileStorageGateway

    configure_logging()
    config = get_active_config(args.config)
    storage = FileStorageGateway(config.storage.root, clock=SystemClock())

    shops = sorted(p.name for p in storage.root.iterdir() if p.is_dir()) if storage.root.is_dir() else []
    removed = 0
    for shop in shops:
        if args.dry_run:
            cutoff = SystemClock().now() - config.storage.retention
            stale = [a.key for a in storage.list(shop) if a.created_at < cutoff]
            for key in stale:
                print(f"  would delete {key}")
            removed += len(stale)
        else:
            removed += len(storage.prune_older_than(shop, config.storage.retention))
    print(f"Artifacts {'to prune' if args.dry_run else 'pruned'}: {removed}")

    if args.dry_run:
        return 0

    init_engine_from_url(args.db_url)
    services = InvoiceServices.from_config(
        config,
        session_factory=get_session_factory(),
        order_source=_Unavailable(),
        settings_source=_Unavailable(),
        storage=storage,
    )
    try:
        deleted = services.orchestrator.prune_finished_jobs()
    finally:
        services.close()
    print(f"Finished jobs deleted: {deleted}")
    return 0


class _Unavailable:
    """Pruning never reads orders or settings."""

    def fetch_order(self, shop: str, order_id: str):
        raise LookupError(f"orders are not available while pruning: {order_id}")

    def get_settings(self, shop: str):
        raise LookupError(f"settings are not available while pruning: {shop}")


if __name__ == "__main__":
    sys.exit(main())
