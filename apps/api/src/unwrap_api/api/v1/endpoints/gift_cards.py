"""API endpoints for gift card records, ledger checks and email resends."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from unwrap_api.api.dependencies.services import (
    get_event_sync_worker,
    get_ledger_client,
    get_notification_service,
)
from unwrap_api.db.session import get_session
from unwrap_api.models.gift_card import GiftCardStatusEnum
from unwrap_api.schemas.gift_card import (
    GiftCardCheckResponse,
    GiftCardCodeRequest,
    GiftCardCreateRequest,
    GiftCardDetailsResponse,
    GiftCardRedeemRequest,
    GiftCardResponse,
    GiftCardSyncResponse,
    GiftCardUpdateRequest,
    MessageResponse,
)
from unwrap_api.services.gift_cards.codes import normalize_redemption_code
from unwrap_api.services.gift_cards.store import DuplicateGiftCardError, GiftCardStore
from unwrap_api.services.ledger.client import LedgerClient
from unwrap_api.services.ledger.errors import LedgerError
from unwrap_api.services.ledger.units import format_wei, hash_redemption_code
from unwrap_api.services.notifications.service import NotificationDeliveryError, NotificationService
from unwrap_api.workers.event_sync import GiftCardEventSyncWorker

router = APIRouter(tags=["Gift Cards"])


def _require_code(code: str | None) -> str:
    if not code or not code.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Redemption code is required")
    return normalize_redemption_code(code)


@router.post("/gift-cards", response_model=GiftCardResponse, status_code=status.HTTP_201_CREATED)
async def create_gift_card_record(
    payload: GiftCardCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> GiftCardResponse:
    """Store the off-chain record for a gift card already escrowed on the ledger."""

    fields = payload.to_fields()
    expected_hash = hash_redemption_code(payload.redemption_code)
    if fields.get("code_hash") and fields["code_hash"].lower() != expected_hash:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Code hash does not match redemption code",
        )
    fields["code_hash"] = expected_hash

    store = GiftCardStore(session)
    try:
        record = await store.insert_or_claim(**fields)
    except DuplicateGiftCardError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception("Error creating gift card", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create gift card",
        ) from exc
    return GiftCardResponse.model_validate(record)


@router.get("/gift-cards", response_model=GiftCardResponse)
async def get_gift_card(
    code: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> GiftCardResponse:
    record = await GiftCardStore(session).get_by_code(_require_code(code))
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift card not found")
    return GiftCardResponse.model_validate(record)


@router.put("/gift-cards", response_model=GiftCardResponse)
async def update_gift_card(
    payload: GiftCardUpdateRequest,
    code: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> GiftCardResponse:
    code = _require_code(code)
    patch = payload.model_dump(exclude_unset=True)
    record = await GiftCardStore(session).update_by_code(code, patch)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift card not found")
    return GiftCardResponse.model_validate(record)


@router.get("/gift-cards/details", response_model=GiftCardDetailsResponse)
async def get_gift_card_details(
    code: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    ledger: LedgerClient = Depends(get_ledger_client),
) -> GiftCardDetailsResponse:
    """Stored record merged with the live ledger view of the same code hash."""

    record = await GiftCardStore(session).get_by_code(_require_code(code))
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift card not found")

    details = GiftCardDetailsResponse.model_validate(record)
    try:
        valid, amount_wei = await ledger.check_gift_card(record.code_hash)
    except LedgerError as exc:
        logger.warning("Ledger check failed for gift card details", code_hash=record.code_hash, error=str(exc))
        return details
    details.valid = valid
    details.blockchain_amount = format_wei(amount_wei)
    return details


@router.post("/gift-card/check", response_model=GiftCardCheckResponse)
async def check_gift_card(
    payload: GiftCardCodeRequest,
    session: AsyncSession = Depends(get_session),
) -> GiftCardCheckResponse:
    record = await GiftCardStore(session).get_by_code(_require_code(payload.code))
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift card not found in database")
    return GiftCardCheckResponse(
        exists=True,
        status=record.status,
        amount=record.amount,
        code_hash=record.code_hash,
        created_at=record.created_at,
        redeemed_at=record.redeemed_at,
        redeemed_by=record.redeemed_by,
        transaction_hash=record.transaction_hash,
        redemption_transaction_hash=record.redemption_transaction_hash,
    )


@router.post("/gift-cards/redeem", response_model=GiftCardResponse)
async def redeem_gift_card(
    payload: GiftCardRedeemRequest,
    session: AsyncSession = Depends(get_session),
) -> GiftCardResponse:
    """Flip a pending record to redeemed; at most one concurrent caller wins."""

    if not payload.code or not payload.redeemer:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    record = await GiftCardStore(session).mark_redeemed(
        normalize_redemption_code(payload.code),
        payload.redeemer,
        transaction_hash=payload.redemption_transaction_hash,
        block_number=payload.redemption_block_number,
    )
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or already redeemed gift card",
        )
    return GiftCardResponse.model_validate(record)


@router.post("/gift-cards/resend", response_model=MessageResponse)
async def resend_gift_card_email(
    payload: GiftCardCodeRequest,
    session: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> MessageResponse:
    if not payload.code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing redemption code")

    record = await GiftCardStore(session).get_by_code(normalize_redemption_code(payload.code))
    if record is None or record.status != GiftCardStatusEnum.PENDING or not record.recipient_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or already redeemed gift card",
        )

    try:
        await notifications.send_gift_card_email(
            record.recipient_email,
            record.redemption_code,
            record.amount,
            record.creator,
            message=record.message,
            template=record.template.value,
        )
    except NotificationDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to resend email",
        ) from exc
    return MessageResponse(message="Email resent successfully")


@router.post("/gift-cards/sync", response_model=GiftCardSyncResponse)
async def sync_gift_cards(
    worker: GiftCardEventSyncWorker = Depends(get_event_sync_worker),
) -> GiftCardSyncResponse:
    """Run one ledger reconciliation tick on demand."""

    try:
        counts = await worker.run_once()
    except LedgerError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Ledger unavailable: {exc}",
        ) from exc
    if counts is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Sync already in progress")
    return GiftCardSyncResponse(**counts)
