"""Rebuild journal indexes from stored entries.

Usage::

    python -m services.journal.reconcile OWNER [OWNER ...]

Prints one JSON report per owner. Exits with status 1 when Redis cannot be
reached or a rebuild fails part way.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional, Sequence

from services.common import configure_logging, get_logger

from .config import JournalSettings
from .errors import BackendUnavailable
from .schemas import ReconcileReport
from .storage import BackendLink
from .store import JournalStore

logger = get_logger(__name__)


async def reconcile_owners(store: JournalStore, owners: Sequence[str]) -> List[ReconcileReport]:
    reports = []
    for owner in owners:
        reports.append(await store.reconcile(owner))
    return reports


async def _run(owners: Sequence[str], settings: JournalSettings) -> int:
    link = BackendLink.from_settings(settings)
    # one-shot tool: do not sit in the backoff loop
    link.max_retries = 0
    try:
        if not await link.connect():
            logger.error("Redis unavailable; nothing reconciled")
            return 1
        store = JournalStore(link, ttl=settings.ttl_seconds)
        try:
            reports = await reconcile_owners(store, owners)
        except BackendUnavailable as exc:
            logger.error("Reconciliation aborted", extra={"error": str(exc)})
            return 1
    finally:
        await link.close()
    for report in reports:
        print(report.model_dump_json())
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Rebuild per-owner journal indexes")
    parser.add_argument("owners", nargs="+", help="owner identifiers to reconcile")
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")
    args = parser.parse_args(argv)

    settings = JournalSettings.from_env()
    configure_logging(args.log_level or settings.log_level, "text")
    return asyncio.run(_run(args.owners, settings))


if __name__ == "__main__":
    sys.exit(main())
