"""Notification templates for gift card delivery."""

from __future__ import annotations

import html
from dataclasses import dataclass

GIFT_CARD_EXPIRY_DAYS = 30


@dataclass
class RenderedTemplate:
    subject: str
    text_body: str
    html_body: str


@dataclass(frozen=True)
class _GiftCardVariant:
    subject: str
    heading: str
    intro: str


_VARIANTS: dict[str, _GiftCardVariant] = {
    "default": _GiftCardVariant(
        subject="You received a cUSD Gift Card! 🎁",
        heading="You received a cUSD Gift Card! 🎁",
        intro="Someone sent you {amount} cUSD as a gift card.",
    ),
    "birthday": _GiftCardVariant(
        subject="Happy Birthday! 🎂 Your cUSD Gift Card is here!",
        heading="Happy Birthday! 🎂",
        intro="You've received a special birthday gift of {amount} cUSD!",
    ),
    "holiday": _GiftCardVariant(
        subject="Season's Greetings! 🎄 Your cUSD Gift Card is here!",
        heading="Season's Greetings! 🎄",
        intro="You've received a holiday gift of {amount} cUSD!",
    ),
}

GIFT_CARD_TEMPLATES = tuple(_VARIANTS)


def render_gift_card(
    *,
    redemption_code: str,
    amount: str,
    sender: str,
    app_url: str,
    message: str | None = None,
    template: str | None = None,
) -> RenderedTemplate:
    """Render the gift card email; unknown templates fall back to ``default``."""

    variant = _VARIANTS.get(template or "default", _VARIANTS["default"])
    redeem_url = f"{app_url.rstrip('/')}/redeem"
    intro = variant.intro.format(amount=amount)
    note = message.strip() if message and message.strip() else None

    text_lines = [variant.heading, "", intro]
    if note:
        text_lines.extend(["", f"“{note}”"])
    text_lines.extend(
        [
            "",
            "To redeem your gift card:",
            f"1. Visit {redeem_url}",
            "2. Connect your wallet",
            f"3. Enter your redemption code: {redemption_code}",
            "",
            f"This gift card will expire in {GIFT_CARD_EXPIRY_DAYS} days.",
            "",
            f"Sent by: {sender}",
        ]
    )
    text_body = "\n".join(text_lines)

    note_html = f'\n    <p style="font-style: italic">&ldquo;{html.escape(note)}&rdquo;</p>' if note else ""
    safe_url = html.escape(redeem_url)
    html_body = f"""<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6">
    <h2>{html.escape(variant.heading)}</h2>
    <p>{html.escape(intro)}</p>{note_html}
    <p><strong>To redeem your gift card:</strong></p>
    <ol>
      <li>Visit <a href="{safe_url}">{safe_url}</a></li>
      <li>Connect your wallet</li>
      <li>Enter your redemption code: <strong>{html.escape(redemption_code)}</strong></li>
    </ol>
    <p style="color: #666">This gift card will expire in {GIFT_CARD_EXPIRY_DAYS} days.</p>
    <hr />
    <p style="color: #666">Sent by: {html.escape(sender)}</p>
  </body>
</html>"""

    return RenderedTemplate(subject=variant.subject, text_body=text_body, html_body=html_body)


__all__ = ["GIFT_CARD_TEMPLATES", "RenderedTemplate", "render_gift_card"]
