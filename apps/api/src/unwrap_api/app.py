from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from unwrap_api.core.settings import settings
from unwrap_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.ledger import LedgerClient, build_ledger_client
from .services.notifications import EmailBackend, NotificationService
from .workers import GiftCardEventSyncWorker


APP_VERSION = "0.1.0"


def _session_factory() -> AsyncSession:
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    sync_worker: GiftCardEventSyncWorker = app.state.event_sync_worker

    sync_enabled = settings.event_sync_worker_enabled
    if sync_enabled:
        sync_worker.start()
        logger.info(
            "Gift card event sync worker enabled",
            interval_seconds=sync_worker.interval_seconds,
        )
    else:
        logger.info(
            "Gift card event sync worker disabled",
            reason="event_sync_worker_enabled is false",
        )

    try:
        yield
    finally:
        if sync_enabled and sync_worker.is_running:
            await sync_worker.stop()


def create_app(
    *,
    ledger_client: LedgerClient | None = None,
    email_backend: EmailBackend | None = None,
    session_factory: Callable[[], AsyncSession] | None = None,
) -> FastAPI:
    """Application factory for the Unwrap FastAPI service."""
    configure_logging(
        service_name="unwrap-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Unwrap API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name="unwrap-api",
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    ledger = ledger_client or build_ledger_client(settings)
    app.state.ledger_client = ledger
    app.state.notification_service = NotificationService(email_backend)
    app.state.event_sync_worker = GiftCardEventSyncWorker(
        session_factory=session_factory or _session_factory,
        ledger=ledger,
        interval_seconds=settings.event_sync_interval_seconds,
        ttl_days=settings.gift_card_ttl_days,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
