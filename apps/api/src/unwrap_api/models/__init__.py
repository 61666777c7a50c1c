"""SQLAlchemy models for the Unwrap API."""

from .gift_card import GiftCard, GiftCardStatusEnum, GiftCardTemplateEnum

__all__ = [
    "GiftCard",
    "GiftCardStatusEnum",
    "GiftCardTemplateEnum",
]
