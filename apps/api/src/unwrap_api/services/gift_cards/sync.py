"""Reconcile the off-chain gift card table with ledger events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from unwrap_api.models.gift_card import GiftCardStatusEnum
from unwrap_api.services.ledger.client import LedgerClient
from unwrap_api.services.ledger.contract import (
    EVENT_GIFT_CARD_CREATED,
    EVENT_GIFT_CARD_REDEEMED,
    LedgerEvent,
)
from unwrap_api.services.ledger.units import format_wei

from .store import GiftCardStore


@dataclass(slots=True)
class SyncSummary:
    from_block: int
    synced_to_block: int
    created: int = 0
    backfilled: int = 0
    redeemed: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "from_block": self.from_block,
            "synced_to_block": self.synced_to_block,
            "created": self.created,
            "backfilled": self.backfilled,
            "redeemed": self.redeemed,
            "skipped": self.skipped,
        }


def _missing(args: dict[str, Any], *keys: str) -> list[str]:
    return [key for key in keys if args.get(key) in (None, "")]


async def sync_gift_card_events(store: GiftCardStore, ledger: LedgerClient) -> SyncSummary:
    """Apply every creation and redemption event since the last synced block.

    The range is inclusive on both ends and starts at the highest stored
    ``block_number``; re-reading that block is harmless because each event is
    applied idempotently.
    """

    from_block = await store.latest_block_number() or 0
    to_block = await ledger.get_block_number()
    summary = SyncSummary(from_block=from_block, synced_to_block=to_block)
    if from_block > to_block:
        logger.warning("Ledger head is behind stored block", from_block=from_block, to_block=to_block)
        summary.synced_to_block = from_block
        return summary

    created_events = await ledger.get_events(EVENT_GIFT_CARD_CREATED, from_block=from_block, to_block=to_block)
    redeemed_events = await ledger.get_events(EVENT_GIFT_CARD_REDEEMED, from_block=from_block, to_block=to_block)

    for event in created_events:
        await _apply_created(store, event, summary)
    for event in redeemed_events:
        await _apply_redeemed(store, event, summary)

    logger.info("Gift card event sync completed", **summary.as_dict())
    return summary


async def _apply_created(store: GiftCardStore, event: LedgerEvent, summary: SyncSummary) -> None:
    missing = _missing(event.args, "creator", "amount", "codeHash")
    if missing:
        summary.skipped += 1
        logger.warning(
            "Skipping malformed creation event",
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
            missing=missing,
        )
        return

    amount = format_wei(int(event.args["amount"]))
    record, created = await store.insert_if_absent(
        event.args["codeHash"],
        amount=amount,
        creator=event.args["creator"],
        status=GiftCardStatusEnum.PENDING,
        block_number=event.block_number,
        transaction_hash=event.transaction_hash,
    )
    if created:
        summary.created += 1
        return
    if record.block_number is None:
        await store.backfill_creation(
            record,
            amount=amount,
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
        )
        summary.backfilled += 1


async def _apply_redeemed(store: GiftCardStore, event: LedgerEvent, summary: SyncSummary) -> None:
    missing = _missing(event.args, "redeemer", "codeHash")
    if missing:
        summary.skipped += 1
        logger.warning(
            "Skipping malformed redemption event",
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
            missing=missing,
        )
        return

    code_hash = event.args["codeHash"]
    record = await store.mark_redeemed_by_hash(
        code_hash,
        event.args["redeemer"],
        transaction_hash=event.transaction_hash,
        block_number=event.block_number,
    )
    if record is not None:
        summary.redeemed += 1
        return

    record = await store.get_by_code_hash(code_hash)
    if record is None:
        summary.skipped += 1
        logger.warning("Redemption event for unknown gift card", code_hash=code_hash)
        return
    if record.redemption_block_number is None:
        await store.fill_redemption_provenance(
            record,
            transaction_hash=event.transaction_hash,
            block_number=event.block_number,
        )
        summary.backfilled += 1


__all__ = ["SyncSummary", "sync_gift_card_events"]
