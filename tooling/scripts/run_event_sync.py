"""Run a single gift card event sync tick.

Intended usage: schedule via cron when the in-process worker is disabled, or
run manually to reconcile the off-chain index after an outage.

Example:
    python tooling/scripts/run_event_sync.py --ttl-days 30
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync gift card ledger events once")
    parser.add_argument(
        "--ttl-days",
        type=int,
        default=None,
        help="Override the pending gift card expiry window for this tick.",
    )
    return parser.parse_args()


async def _run(ttl_days: int | None) -> dict[str, int] | None:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from unwrap_api.core.settings import settings  # type: ignore import-position
    from unwrap_api.db.session import async_session  # type: ignore import-position
    from unwrap_api.services.ledger import build_ledger_client  # type: ignore import-position
    from unwrap_api.workers import GiftCardEventSyncWorker  # type: ignore import-position

    worker = GiftCardEventSyncWorker(
        async_session,  # type: ignore[arg-type]
        build_ledger_client(settings),
        interval_seconds=settings.event_sync_interval_seconds,
        ttl_days=ttl_days or settings.gift_card_ttl_days,
    )
    return await worker.run_once()


def main() -> int:
    args = parse_args()
    if args.ttl_days is not None and args.ttl_days <= 0:
        logger.error("TTL days must be positive", ttl_days=args.ttl_days)
        return 1

    summary = asyncio.run(_run(args.ttl_days))
    if summary is None:
        logger.warning("Gift card event sync skipped; another tick is in progress")
        return 1
    logger.success("Gift card event sync completed", **summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
