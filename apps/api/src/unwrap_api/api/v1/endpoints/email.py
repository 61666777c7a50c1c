"""API endpoint for sending gift card emails directly."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from unwrap_api.api.dependencies.services import get_notification_service
from unwrap_api.schemas.gift_card import GiftCardEmailRequest, MessageResponse
from unwrap_api.services.notifications.service import NotificationDeliveryError, NotificationService

router = APIRouter(tags=["Email"])


@router.post("/email", response_model=MessageResponse)
async def send_gift_card_email(
    payload: GiftCardEmailRequest,
    notifications: NotificationService = Depends(get_notification_service),
) -> MessageResponse:
    """Render and deliver a gift card email."""

    if not payload.to or not payload.redemption_code or not payload.amount or not payload.sender:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    try:
        await notifications.send_gift_card_email(
            payload.to,
            payload.redemption_code,
            payload.amount,
            payload.sender,
            message=payload.message,
            template=payload.template or "default",
        )
    except NotificationDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send email",
        ) from exc
    return MessageResponse(message="Email sent successfully")
