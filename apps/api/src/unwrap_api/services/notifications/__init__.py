"""Notification service package."""

from .backend import EmailBackend, InMemoryEmailBackend, ResendEmailBackend, SMTPEmailBackend
from .service import (
    NotificationDeliveryError,
    NotificationEvent,
    NotificationService,
    build_email_backend,
)
from .templates import GIFT_CARD_TEMPLATES, RenderedTemplate, render_gift_card

__all__ = [
    "EmailBackend",
    "SMTPEmailBackend",
    "ResendEmailBackend",
    "InMemoryEmailBackend",
    "NotificationService",
    "NotificationEvent",
    "NotificationDeliveryError",
    "build_email_backend",
    "GIFT_CARD_TEMPLATES",
    "RenderedTemplate",
    "render_gift_card",
]
