"""Worker wiring for periodic ledger event reconciliation."""

from __future__ import annotations

import asyncio
from typing import Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from unwrap_api.core.settings import settings
from unwrap_api.observability.gift_cards import get_gift_card_store
from unwrap_api.services.gift_cards.store import GiftCardStore
from unwrap_api.services.gift_cards.sync import sync_gift_card_events
from unwrap_api.services.ledger.client import LedgerClient

SessionFactory = Callable[[], AsyncSession]


class GiftCardEventSyncWorker:
    """Keeps the gift card table consistent with ledger events and expires stale rows."""

    def __init__(
        self,
        session_factory: SessionFactory,
        ledger: LedgerClient,
        *,
        interval_seconds: float | None = None,
        ttl_days: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._ledger = ledger
        self.interval_seconds = interval_seconds or settings.event_sync_interval_seconds
        self._ttl_days = ttl_days or settings.gift_card_ttl_days
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._tick_lock = asyncio.Lock()
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info("Gift card event sync worker started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Gift card event sync worker stopped")

    async def run_once(self) -> Dict[str, int] | None:
        """Run one reconciliation tick; returns ``None`` if a tick is already in flight."""

        if self._tick_lock.locked():
            logger.debug("Gift card event sync tick skipped; previous tick still running")
            return None

        metrics = get_gift_card_store()
        async with self._tick_lock:
            try:
                async with self._session_factory() as session:
                    store = GiftCardStore(session)
                    summary = await sync_gift_card_events(store, self._ledger)
                    expired = await store.expire_stale(ttl_days=self._ttl_days)
            except Exception as exc:
                metrics.record_sync_failure(str(exc))
                raise

        counts = summary.as_dict()
        counts["expired"] = expired
        metrics.record_sync_success(counts)
        return counts

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("Gift card event sync iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue


__all__ = ["GiftCardEventSyncWorker"]
