"""Dependencies resolving process-wide collaborators from application state."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from unwrap_api.services.ledger.client import LedgerClient
from unwrap_api.services.notifications.service import NotificationService
from unwrap_api.workers.event_sync import GiftCardEventSyncWorker


def get_ledger_client(request: Request) -> LedgerClient:
    ledger = getattr(request.app.state, "ledger_client", None)
    if ledger is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ledger client not configured",
        )
    return ledger


def get_notification_service(request: Request) -> NotificationService:
    service = getattr(request.app.state, "notification_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification service not configured",
        )
    return service


def get_event_sync_worker(request: Request) -> GiftCardEventSyncWorker:
    worker = getattr(request.app.state, "event_sync_worker", None)
    if worker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event sync worker not configured",
        )
    return worker
