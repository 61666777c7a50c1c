"""Background workers."""

from .event_sync import GiftCardEventSyncWorker

__all__ = ["GiftCardEventSyncWorker"]
