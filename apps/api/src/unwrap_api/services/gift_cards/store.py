"""Persistence operations for off-chain gift card records."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unwrap_api.models.gift_card import GiftCard, GiftCardStatusEnum, GiftCardTemplateEnum
from unwrap_api.services.ledger.units import normalize_hash

DEFAULT_TTL_DAYS = 30

# Fields callers may patch through ``update_by_code``.
UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "recipient_email",
        "message",
        "template",
        "redeemed_at",
        "redeemed_by",
        "block_number",
        "transaction_hash",
        "redemption_block_number",
        "redemption_transaction_hash",
    }
)


class GiftCardStoreError(RuntimeError):
    """Base exception for gift card persistence failures."""


class DuplicateGiftCardError(GiftCardStoreError):
    """Raised when a code or code hash is already stored."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    values = dict(fields)
    if "code_hash" in values and values["code_hash"] is not None:
        values["code_hash"] = normalize_hash(values["code_hash"])
    if isinstance(values.get("status"), str):
        values["status"] = GiftCardStatusEnum(values["status"])
    if isinstance(values.get("template"), str):
        values["template"] = GiftCardTemplateEnum(values["template"])
    for key in ("creator", "redeemed_by"):
        if isinstance(values.get(key), str):
            values[key] = values[key].lower()
    return values


class GiftCardStore:
    """Gift card table access bound to a single session.

    Every mutating method commits. Status transitions out of ``pending`` go
    through conditional ``UPDATE`` statements so concurrent redeemers can
    never both win.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def insert(self, **fields: Any) -> GiftCard:
        record = GiftCard(**_coerce_fields(fields))
        self._session.add(record)
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise DuplicateGiftCardError("Gift card code already exists") from exc
        await self._session.refresh(record)
        logger.info(
            "Gift card stored",
            code_hash=record.code_hash,
            amount=record.amount,
            block_number=record.block_number,
        )
        return record

    async def insert_if_absent(self, code_hash: str, **fields: Any) -> tuple[GiftCard, bool]:
        existing = await self.get_by_code_hash(code_hash)
        if existing is not None:
            return existing, False
        try:
            record = await self.insert(code_hash=code_hash, **fields)
        except DuplicateGiftCardError:
            existing = await self.get_by_code_hash(code_hash)
            if existing is None:
                raise
            return existing, False
        return record, True

    async def insert_or_claim(self, **fields: Any) -> GiftCard:
        """Insert a full record, or complete the bare row event sync stored first.

        Raises ``DuplicateGiftCardError`` only when the code or hash already
        belongs to a record that carries a plaintext code.
        """

        try:
            return await self.insert(**fields)
        except DuplicateGiftCardError:
            claimed = await self.claim_synced_record(
                fields["code_hash"],
                redemption_code=fields["redemption_code"],
                recipient_email=fields.get("recipient_email"),
                message=fields.get("message"),
                template=fields.get("template"),
                transaction_hash=fields.get("transaction_hash"),
                block_number=fields.get("block_number"),
            )
            if claimed is None:
                raise
            return claimed

    async def claim_synced_record(
        self,
        code_hash: str,
        *,
        redemption_code: str,
        recipient_email: str | None = None,
        message: str | None = None,
        template: GiftCardTemplateEnum | str | None = None,
        transaction_hash: str | None = None,
        block_number: int | None = None,
    ) -> GiftCard | None:
        """Attach off-chain fields to a row stored by event sync without a code.

        Returns ``None`` when no code-less row exists for ``code_hash``.
        """

        code_hash = normalize_hash(code_hash)
        values: dict[str, Any] = {
            "redemption_code": redemption_code,
            "recipient_email": recipient_email,
            "message": message,
            "transaction_hash": func.coalesce(GiftCard.transaction_hash, transaction_hash),
            "block_number": func.coalesce(GiftCard.block_number, block_number),
        }
        if template is not None:
            values["template"] = GiftCardTemplateEnum(template)
        stmt = (
            update(GiftCard)
            .where(GiftCard.code_hash == code_hash, GiftCard.redemption_code.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(stmt)
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise DuplicateGiftCardError("Gift card code already exists") from exc
        if not result.rowcount:
            return None

        stmt = (
            select(GiftCard)
            .where(GiftCard.code_hash == code_hash)
            .execution_options(populate_existing=True)
        )
        record = (await self._session.execute(stmt)).scalar_one()
        logger.info("Attached off-chain fields to synced gift card", code_hash=code_hash)
        return record

    async def get_by_code(self, code: str) -> GiftCard | None:
        stmt = select(GiftCard).where(GiftCard.redemption_code == code)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_code_hash(self, code_hash: str) -> GiftCard | None:
        stmt = select(GiftCard).where(GiftCard.code_hash == normalize_hash(code_hash))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_redeemed(
        self,
        code: str,
        redeemer: str,
        *,
        transaction_hash: str | None = None,
        block_number: int | None = None,
        redeemed_at: datetime | None = None,
    ) -> GiftCard | None:
        """Flip a pending record to redeemed; ``None`` when nothing was pending."""

        return await self._mark_redeemed(
            GiftCard.redemption_code == code,
            redeemer,
            transaction_hash=transaction_hash,
            block_number=block_number,
            redeemed_at=redeemed_at,
        )

    async def mark_redeemed_by_hash(
        self,
        code_hash: str,
        redeemer: str,
        *,
        transaction_hash: str | None = None,
        block_number: int | None = None,
        redeemed_at: datetime | None = None,
    ) -> GiftCard | None:
        """Hash-keyed variant used by event sync; the ledger wins over expiry."""

        return await self._mark_redeemed(
            GiftCard.code_hash == normalize_hash(code_hash),
            redeemer,
            transaction_hash=transaction_hash,
            block_number=block_number,
            redeemed_at=redeemed_at,
            from_statuses=(GiftCardStatusEnum.PENDING, GiftCardStatusEnum.EXPIRED),
        )

    async def update_by_code(self, code: str, patch: Mapping[str, Any]) -> GiftCard | None:
        record = await self.get_by_code(code)
        if record is None:
            return None
        values = _coerce_fields({key: value for key, value in patch.items() if key in UPDATABLE_FIELDS})
        for key, value in values.items():
            setattr(record, key, value)
        await self._session.commit()
        await self._session.refresh(record)
        return record

    async def fill_redemption_provenance(
        self,
        record: GiftCard,
        *,
        transaction_hash: str | None,
        block_number: int | None,
    ) -> GiftCard:
        record.redemption_transaction_hash = transaction_hash
        record.redemption_block_number = block_number
        await self._session.commit()
        await self._session.refresh(record)
        return record

    async def backfill_creation(
        self,
        record: GiftCard,
        *,
        amount: str,
        block_number: int,
        transaction_hash: str | None,
    ) -> GiftCard:
        record.amount = amount
        record.block_number = block_number
        record.transaction_hash = transaction_hash
        await self._session.commit()
        await self._session.refresh(record)
        return record

    async def latest_block_number(self) -> int | None:
        stmt = select(func.max(GiftCard.block_number))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def expire_stale(self, now: datetime | None = None, ttl_days: int = DEFAULT_TTL_DAYS) -> int:
        """Mark pending records older than ``ttl_days`` as expired; returns the count."""

        cutoff = (now or _utcnow()) - timedelta(days=ttl_days)
        stmt = (
            update(GiftCard)
            .where(GiftCard.status == GiftCardStatusEnum.PENDING, GiftCard.created_at < cutoff)
            .values(status=GiftCardStatusEnum.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        expired = result.rowcount or 0
        if expired:
            logger.info("Expired stale gift cards", expired=expired, ttl_days=ttl_days)
        return expired

    async def _mark_redeemed(
        self,
        condition: Any,
        redeemer: str,
        *,
        transaction_hash: str | None,
        block_number: int | None,
        redeemed_at: datetime | None,
        from_statuses: tuple[GiftCardStatusEnum, ...] = (GiftCardStatusEnum.PENDING,),
    ) -> GiftCard | None:
        stmt = (
            update(GiftCard)
            .where(condition, GiftCard.status.in_(from_statuses))
            .values(
                status=GiftCardStatusEnum.REDEEMED,
                redeemed_at=redeemed_at or _utcnow(),
                redeemed_by=redeemer.lower(),
                redemption_transaction_hash=transaction_hash,
                redemption_block_number=block_number,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        if not result.rowcount:
            return None

        # Reload so callers never see attributes cached before the UPDATE.
        stmt = select(GiftCard).where(condition).execution_options(populate_existing=True)
        record = (await self._session.execute(stmt)).scalar_one()
        logger.info(
            "Gift card marked redeemed",
            code_hash=record.code_hash,
            redeemed_by=record.redeemed_by,
            transaction_hash=transaction_hash,
        )
        return record


__all__ = [
    "DEFAULT_TTL_DAYS",
    "DuplicateGiftCardError",
    "GiftCardStore",
    "GiftCardStoreError",
    "UPDATABLE_FIELDS",
]
