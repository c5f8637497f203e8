#!/usr/bin/env python3
"""
Generate invoices for one shop from file-backed orders.

Orders are read from ``<orders-dir>/<shop>/<order_id>.json`` and shop
settings from a YAML shops file (see invoice_batch.sources).  With one
order id and ``--single`` the invoice is produced synchronously; otherwise
a bulk job is queued and drained by in-process workers.

Usage:
    python3 scripts/generate_invoices.py --shop SHOP --orders ID [ID ...] [options]

Examples:
    # One invoice, emailed if the shop has auto-send enabled
    python3 scripts/generate_invoices.py --shop demo.myshop.com --orders 1001 --single

    # Bulk job with two workers, ZIP written to the artifact store
    python3 scripts/generate_invoices.py --shop demo.myshop.com --orders 1001 1002 1003 --workers 2
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///invoices.db"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate GST invoices: single (synchronous) or bulk (queued).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--shop", required=True, help="Shop domain.")
    parser.add_argument("--orders", nargs="+", required=True, help="Order ids.")
    parser.add_argument(
        "--single",
        action="store_true",
        help="Generate one invoice synchronously (requires exactly one order id).",
    )
    parser.add_argument("--orders-dir", type=Path, default=Path("orders"))
    parser.add_argument("--shops-file", type=Path, default=Path("shops.yaml"))
    parser.add_argument("--outbox", type=Path, default=None, help="Write emails here.")
    parser.add_argument("--config", type=Path, default=None, help="Override YAML.")
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--db-url", default=DB_URL, help=f"Database URL (default: {DB_URL!r}).")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    if args.single and len(args.orders) != 1:
        print("ERROR: --single takes exactly one order id", file=sys.stderr)
        return 2

    # Lazy imports so we fail fast on args first
    from invoice_batch.container import InvoiceServices
    from invoice_batch.sources import DirectoryOrderSource, OutboxMailer, YamlSettingsSource
    from invoice_config import get_active_config
    from invoice_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from invoice_kernel.exceptions import InvoiceKernelError
    from invoice_kernel.logging_config import configure_logging

    configure_logging()
    config = get_active_config(args.config)
    init_engine_from_url(args.db_url)
    create_tables()

    services = InvoiceServices.from_config(
        config,
        session_factory=get_session_factory(),
        order_source=DirectoryOrderSource(args.orders_dir),
        settings_source=YamlSettingsSource(args.shops_file, config.shop_defaults),
        mailer=OutboxMailer(args.outbox) if args.outbox else None,
    )
    orchestrator = services.orchestrator

    try:
        if args.single:
            try:
                result = orchestrator.generate_single(args.shop, args.orders[0])
            except InvoiceKernelError as exc:
                print(f"FAILED [{exc.code}]: {exc}", file=sys.stderr)
                return 1
            print(f"Invoice {result.invoice_number}: {result.artifact_key}")
            if result.email_sent:
                print("  emailed to customer")
            return 0

        job_id = orchestrator.generate_bulk(args.shop, args.orders)
        print(f"Queued job {job_id}")
        workers = services.workers(args.workers)
        for worker in workers:
            worker.start()
        try:
            while True:
                status = orchestrator.get_job_status(args.shop, job_id)
                print(
                    f"  {status.status.value:<10} {status.progress:>3}% "
                    f"({status.completed_count} ok, {status.failed_count} failed)"
                )
                if status.status.is_terminal and not len(services.work_queue):
                    break
                time.sleep(config.jobs.poll_interval_seconds)
        except KeyboardInterrupt:
            orchestrator.cancel_job(args.shop, job_id)
            print("Cancellation requested")
        finally:
            for worker in workers:
                worker.stop()

        status = orchestrator.get_job_status(args.shop, job_id)
        for item in orchestrator.get_job_items(args.shop, job_id):
            mark = item.invoice_number or f"{item.error_code}: {item.error_message}"
            print(f"  order {item.order_id}: {mark}")
        if status.download_url:
            print(f"Download: {status.download_url}")
        if status.error:
            print(f"Note: {status.error}")
        return 0 if status.completed_count else 1
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
