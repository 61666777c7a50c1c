"""High-level notification service for gift card emails."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx
from loguru import logger

from unwrap_api.core.settings import Settings, get_settings

from .backend import EmailBackend, InMemoryEmailBackend, ResendEmailBackend, SMTPEmailBackend
from .templates import RenderedTemplate, render_gift_card


class NotificationDeliveryError(RuntimeError):
    """Raised when an email could not be handed to the delivery backend."""


@dataclass
class NotificationEvent:
    """Representation of a notification that was sent."""

    recipient: str
    subject: str
    body_text: str
    body_html: str | None
    event_type: str
    metadata: dict[str, Any]


class NotificationService:
    """Coordinates notification delivery via pluggable backends."""

    def __init__(
        self,
        backend: Optional[EmailBackend] = None,
        *,
        app_url: str | None = None,
    ) -> None:
        settings = get_settings()
        self._backend = backend or build_email_backend(settings)
        self._app_url = app_url or settings.app_url
        self._events: list[NotificationEvent] = []

    @property
    def backend(self) -> EmailBackend:
        return self._backend

    @property
    def sent_events(self) -> list[NotificationEvent]:
        """Expose events (useful for tests when using in-memory backend)."""
        return self._events

    async def send_gift_card_email(
        self,
        to: str,
        redemption_code: str,
        amount: str,
        sender: str,
        message: str | None = None,
        template: str = "default",
    ) -> None:
        rendered = render_gift_card(
            redemption_code=redemption_code,
            amount=amount,
            sender=sender,
            app_url=self._app_url,
            message=message,
            template=template,
        )
        await self._deliver(
            to,
            rendered,
            event_type="gift_card",
            metadata={"amount": amount, "template": template},
        )

    async def _deliver(
        self,
        recipient: str,
        rendered: RenderedTemplate,
        *,
        event_type: str,
        metadata: dict[str, Any],
    ) -> None:
        try:
            await self._backend.send_email(
                recipient,
                rendered.subject,
                rendered.text_body,
                body_html=rendered.html_body,
            )
        except (httpx.HTTPError, OSError) as exc:
            logger.exception("Email delivery failed", recipient=recipient, event_type=event_type, error=str(exc))
            raise NotificationDeliveryError(f"Failed to send email: {exc}") from exc

        self._events.append(
            NotificationEvent(
                recipient=recipient,
                subject=rendered.subject,
                body_text=rendered.text_body,
                body_html=rendered.html_body,
                event_type=event_type,
                metadata=metadata,
            )
        )
        logger.info("Email sent", recipient=recipient, event_type=event_type)


def build_email_backend(settings: Settings) -> EmailBackend:
    """Resend when an API key is configured, SMTP when a host is, in-memory otherwise."""

    if settings.resend_api_key:
        return ResendEmailBackend(
            api_key=settings.resend_api_key,
            sender=settings.resend_sender,
            api_url=settings.resend_api_url,
        )
    if settings.smtp_host and settings.smtp_sender_email:
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender_email=settings.smtp_sender_email,
        )
    logger.warning("No email transport configured; gift card emails are kept in memory")
    return InMemoryEmailBackend()


__all__ = [
    "NotificationDeliveryError",
    "NotificationEvent",
    "NotificationService",
    "build_email_backend",
]
