#!/usr/bin/env python3
"""
Repair stored invoice status and balance from the recorded payments.

Re-runs the status engine for every invoice that is not cancelled. Use it
after importing legacy data or after fixing payments directly in the
database.

Usage:
    # Show what would change without writing
    python recalculate_invoice_statuses.py --dry-run

    # Recalculate and commit
    python recalculate_invoice_statuses.py
"""

import argparse
import asyncio
import sys

import structlog

from invoicing.database import AsyncSessionLocal, engine
from invoicing.middleware.logging import setup_logging
from invoicing.services.invoice_status_service import InvoiceStatusService

logger = structlog.get_logger(__name__)


async def recalculate(dry_run: bool) -> dict[str, int]:
    """Recalculate all invoices in one transaction, rolled back on --dry-run."""
    async with AsyncSessionLocal() as session:
        service = InvoiceStatusService(session)
        try:
            counts = await service.recalculate_all()
            if dry_run:
                await session.rollback()
            else:
                await session.commit()
        except Exception:
            await session.rollback()
            raise

    await engine.dispose()
    return counts


def main() -> int:
    parser = argparse.ArgumentParser(description="Recalculate invoice status and balance")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without committing them")
    args = parser.parse_args()

    setup_logging()
    logger.info("invoice_status_repair_started", dry_run=args.dry_run)

    counts = asyncio.run(recalculate(args.dry_run))

    logger.info("invoice_status_repair_finished", dry_run=args.dry_run, **counts)
    print(
        f"Processed {counts['processed']} invoices: "
        f"{counts['updated']} updated, {counts['unchanged']} unchanged"
        + (" (dry run, nothing written)" if args.dry_run else "")
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
