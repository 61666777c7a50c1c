from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import BigInteger, Column, DateTime, Enum as SqlEnum, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID

from unwrap_api.db.base import Base


class GiftCardStatusEnum(str, Enum):
    PENDING = "pending"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


class GiftCardTemplateEnum(str, Enum):
    DEFAULT = "default"
    BIRTHDAY = "birthday"
    HOLIDAY = "holiday"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GiftCard(Base):
    """Off-chain index of an escrowed gift card.

    The ledger entry keyed by ``code_hash`` owns the funds; this row carries the
    data the chain never sees (plaintext code, recipient, message) and caches
    the escrowed amount for queries.
    """

    __tablename__ = "gift_cards"
    __table_args__ = (
        Index("ix_gift_cards_recipient_email", "recipient_email"),
        Index("ix_gift_cards_status", "status"),
        Index("ix_gift_cards_block_number", "block_number"),
        Index("ix_gift_cards_created_at", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    # Null only for rows backfilled from ledger events.
    redemption_code = Column(String(19), nullable=True, unique=True)
    code_hash = Column(String(66), nullable=False, unique=True)
    amount = Column(String, nullable=False)
    creator = Column(String(42), nullable=False)
    recipient_email = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    template = Column(
        SqlEnum(
            GiftCardTemplateEnum,
            name="gift_card_template_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=GiftCardTemplateEnum.DEFAULT,
        server_default=GiftCardTemplateEnum.DEFAULT.value,
    )
    status = Column(
        SqlEnum(
            GiftCardStatusEnum,
            name="gift_card_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=GiftCardStatusEnum.PENDING,
        server_default=GiftCardStatusEnum.PENDING.value,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_by = Column(String(42), nullable=True)
    block_number = Column(BigInteger, nullable=True)
    transaction_hash = Column(String(66), nullable=True)
    redemption_block_number = Column(BigInteger, nullable=True)
    redemption_transaction_hash = Column(String(66), nullable=True)
