from __future__ import annotations

from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from unwrap_api.core.settings import settings
from unwrap_api.db.session import get_session
from unwrap_api.observability.gift_cards import get_gift_card_store
from unwrap_api.services.ledger.errors import LedgerError

router = APIRouter()

ComponentState = Literal["ready", "starting", "disabled", "error", "degraded"]


class ComponentStatus(BaseModel):
    status: ComponentState
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]
    gift_cards: Dict[str, Any] = Field(default_factory=dict)


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/healthz", include_in_schema=False)
async def service_health_alias() -> dict[str, str]:
    """Backward-compatible alias under /health."""

    return await service_health()


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except SQLAlchemyError as exc:
        logger.warning("Readiness database probe failed", error=str(exc))
        components["database"] = ComponentStatus(status="error", detail=str(exc))
        status = "error"

    ledger = getattr(request.app.state, "ledger_client", None)
    if ledger is None:
        components["ledger"] = ComponentStatus(status="error", detail="Ledger client not configured")
        status = "error"
    else:
        try:
            block_number = await ledger.get_block_number()
            components["ledger"] = ComponentStatus(status="ready", detail=f"Head block {block_number}")
        except LedgerError as exc:
            components["ledger"] = ComponentStatus(status="degraded", detail=str(exc))
            status = "degraded" if status != "error" else status

    snapshot = get_gift_card_store().snapshot()
    sync_worker = getattr(request.app.state, "event_sync_worker", None)
    if settings.event_sync_worker_enabled and sync_worker is not None:
        running = bool(getattr(sync_worker, "is_running", False))
        sync_status: ComponentState = "ready" if running else "starting"
        detail: str | None = None if running else "Gift card event sync worker not running"
        runs = snapshot.sync_runs
        if runs.last_failure_at and (runs.last_success_at is None or runs.last_failure_at >= runs.last_success_at):
            sync_status = "degraded"
            detail = runs.last_failure_reason
        if sync_status != "ready":
            status = "degraded" if status != "error" else status
        components["event_sync"] = ComponentStatus(
            status=sync_status,
            detail=detail,
            last_error_at=runs.last_failure_at.isoformat() if runs.last_failure_at else None,
            last_success_at=runs.last_success_at.isoformat() if runs.last_success_at else None,
        )
    else:
        components["event_sync"] = ComponentStatus(
            status="disabled",
            detail="Event sync worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components, gift_cards=snapshot.as_dict())


@router.get("/health/readyz", include_in_schema=False)
async def service_readiness_alias(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    """Backward-compatible alias for readiness checks under /health."""

    return await service_readiness(request, session)
