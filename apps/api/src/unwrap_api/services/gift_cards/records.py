"""Gateways the orchestrator uses to reach gift card records and email delivery."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from unwrap_api.models.gift_card import GiftCard

from .store import GiftCardStore

SessionFactory = Callable[[], AsyncSession]


@dataclass(slots=True)
class GiftCardSnapshot:
    """Detached view of a stored gift card."""

    code_hash: str
    amount: str
    creator: str
    status: str
    redemption_code: str | None = None
    recipient_email: str | None = None
    message: str | None = None
    template: str = "default"
    created_at: datetime | None = None
    redeemed_at: datetime | None = None
    redeemed_by: str | None = None
    block_number: int | None = None
    transaction_hash: str | None = None
    redemption_block_number: int | None = None
    redemption_transaction_hash: str | None = None

    @classmethod
    def from_model(cls, record: GiftCard) -> "GiftCardSnapshot":
        return cls(
            code_hash=record.code_hash,
            amount=record.amount,
            creator=record.creator,
            status=record.status.value,
            redemption_code=record.redemption_code,
            recipient_email=record.recipient_email,
            message=record.message,
            template=record.template.value if record.template else "default",
            created_at=record.created_at,
            redeemed_at=record.redeemed_at,
            redeemed_by=record.redeemed_by,
            block_number=record.block_number,
            transaction_hash=record.transaction_hash,
            redemption_block_number=record.redemption_block_number,
            redemption_transaction_hash=record.redemption_transaction_hash,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GiftCardSnapshot":
        """Build from the camelCase JSON returned by the gift card API."""

        def _dt(value: Any) -> datetime | None:
            return datetime.fromisoformat(value) if isinstance(value, str) else None

        return cls(
            code_hash=payload["codeHash"],
            amount=str(payload["amount"]),
            creator=payload.get("creator") or payload.get("sender") or "",
            status=payload.get("status", "pending"),
            redemption_code=payload.get("redemptionCode"),
            recipient_email=payload.get("recipientEmail"),
            message=payload.get("message"),
            template=payload.get("template") or "default",
            created_at=_dt(payload.get("createdAt")),
            redeemed_at=_dt(payload.get("redeemedAt")),
            redeemed_by=payload.get("redeemedBy"),
            block_number=payload.get("blockNumber"),
            transaction_hash=payload.get("transactionHash"),
            redemption_block_number=payload.get("redemptionBlockNumber"),
            redemption_transaction_hash=payload.get("redemptionTransactionHash"),
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class GiftCardRecords(Protocol):
    async def create_record(
        self,
        *,
        redemption_code: str,
        code_hash: str,
        amount: str,
        creator: str,
        recipient_email: str | None,
        message: str | None,
        template: str,
        transaction_hash: str | None,
        block_number: int | None,
    ) -> GiftCardSnapshot:
        ...

    async def find_record(self, code: str) -> GiftCardSnapshot | None:
        ...

    async def mark_redeemed(
        self,
        code: str,
        redeemer: str,
        *,
        transaction_hash: str | None = None,
        block_number: int | None = None,
    ) -> GiftCardSnapshot | None:
        ...


class GiftCardNotifier(Protocol):
    async def send_gift_card_email(
        self,
        to: str,
        redemption_code: str,
        amount: str,
        sender: str,
        message: str | None = None,
        template: str = "default",
    ) -> None:
        ...


class StoreGiftCardRecords:
    """Direct database gateway; each call runs in its own session."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create_record(
        self,
        *,
        redemption_code: str,
        code_hash: str,
        amount: str,
        creator: str,
        recipient_email: str | None,
        message: str | None,
        template: str,
        transaction_hash: str | None,
        block_number: int | None,
    ) -> GiftCardSnapshot:
        async with self._session_factory() as session:
            record = await GiftCardStore(session).insert_or_claim(
                redemption_code=redemption_code,
                code_hash=code_hash,
                amount=amount,
                creator=creator,
                recipient_email=recipient_email,
                message=message,
                template=template,
                transaction_hash=transaction_hash,
                block_number=block_number,
            )
            return GiftCardSnapshot.from_model(record)

    async def find_record(self, code: str) -> GiftCardSnapshot | None:
        async with self._session_factory() as session:
            record = await GiftCardStore(session).get_by_code(code)
            return GiftCardSnapshot.from_model(record) if record else None

    async def mark_redeemed(
        self,
        code: str,
        redeemer: str,
        *,
        transaction_hash: str | None = None,
        block_number: int | None = None,
    ) -> GiftCardSnapshot | None:
        async with self._session_factory() as session:
            record = await GiftCardStore(session).mark_redeemed(
                code,
                redeemer,
                transaction_hash=transaction_hash,
                block_number=block_number,
            )
            return GiftCardSnapshot.from_model(record) if record else None


__all__ = [
    "GiftCardNotifier",
    "GiftCardRecords",
    "GiftCardSnapshot",
    "SessionFactory",
    "StoreGiftCardRecords",
]
