"""Create and redeem orchestration across the ledger, the record store and email.

Both flows are single-flight and never raise for expected failures: every
outcome is returned as a result object carrying a stable error code (create)
or status (redeem), the final flow state and the ordered state history.

Creation is logically atomic. Once the ledger write has landed, any later
failure still returns the plaintext code and transaction hash with
``partial=True`` so funded codes are never lost.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from unwrap_api.core.settings import Settings
from unwrap_api.models.gift_card import GiftCardStatusEnum, GiftCardTemplateEnum
from unwrap_api.observability.gift_cards import get_gift_card_store
from unwrap_api.services.ledger.client import LedgerClient, TransactionReceipt
from unwrap_api.services.ledger.contract import BASIS_POINTS, DEFAULT_FEE_PERCENTAGE
from unwrap_api.services.ledger.errors import (
    REVERT_ALREADY_REDEEMED,
    REVERT_CODE_USED,
    REVERT_INSUFFICIENT_ALLOWANCE,
    REVERT_INSUFFICIENT_BALANCE,
    REVERT_NOT_FOUND,
    InsufficientGasFundsError,
    InvalidAmountError,
    LedgerError,
    LedgerRevertError,
    TransactionRejectedError,
)
from unwrap_api.services.ledger.units import format_wei, hash_redemption_code, to_wei
from unwrap_api.services.notifications.service import NotificationDeliveryError

from .codes import generate_redemption_code, normalize_redemption_code
from .flow import FlowState, FlowStateMachine
from .records import GiftCardNotifier, GiftCardRecords
from .store import GiftCardStoreError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_RECORD_ERRORS = (GiftCardStoreError, SQLAlchemyError)

Sleep = Callable[[float], Awaitable[None]]


class CreateErrorCode(str, Enum):
    INVALID_INPUT = "invalid_input"
    WALLET_NOT_CONNECTED = "wallet_not_connected"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    TRANSACTION_REJECTED = "transaction_rejected"
    INSUFFICIENT_GAS_FUNDS = "insufficient_gas_funds"
    CODE_ALREADY_USED = "code_already_used"
    TRANSACTION_FAILED = "transaction_failed"
    VERIFICATION_TIMEOUT = "verification_timeout"
    AMOUNT_MISMATCH = "amount_mismatch"
    DATABASE_WRITE_FAILED = "database_write_failed"
    EMAIL_FAILED = "email_failed"


class RedeemStatus(str, Enum):
    SUCCESS = "success"
    INVALID = "invalid"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass(slots=True)
class Wallet:
    """The connected signer on whose behalf a flow runs."""

    address: str | None = None

    @property
    def connected(self) -> bool:
        return bool(self.address)


@dataclass(slots=True)
class CreateGiftCardResult:
    success: bool
    state: FlowState
    history: list[FlowState]
    code: str | None = None
    code_hash: str | None = None
    amount: str | None = None
    fee: str | None = None
    tx_hash: str | None = None
    block_number: int | None = None
    error: str | None = None
    error_code: CreateErrorCode | None = None
    partial: bool = False


@dataclass(slots=True)
class RedeemGiftCardResult:
    success: bool
    status: RedeemStatus
    state: FlowState
    history: list[FlowState]
    amount: str | None = None
    tx_hash: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ApproveResult:
    success: bool
    state: FlowState
    history: list[FlowState]
    approved_amount: str | None = None
    tx_hash: str | None = None
    error: str | None = None
    error_code: CreateErrorCode | None = None


@dataclass(slots=True)
class GiftCardCheckResult:
    valid: bool
    amount: str = "0"
    status: str | None = None
    error: str | None = None


class GiftCardOrchestrator:
    """Coordinates ledger writes, verification, persistence and delivery."""

    def __init__(
        self,
        ledger: LedgerClient,
        records: GiftCardRecords,
        notifier: GiftCardNotifier,
        *,
        settle_delay_seconds: float = 2.0,
        verification_attempts: int = 3,
        verification_delay_seconds: float = 2.0,
        default_fee_bps: int = DEFAULT_FEE_PERCENTAGE,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if verification_attempts < 1:
            raise ValueError("verification_attempts must be at least 1")
        self._ledger = ledger
        self._records = records
        self._notifier = notifier
        self._settle_delay = settle_delay_seconds
        self._verification_attempts = verification_attempts
        self._verification_delay = verification_delay_seconds
        self._default_fee_bps = default_fee_bps
        self._sleep = sleep
        self._metrics = get_gift_card_store()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        ledger: LedgerClient,
        records: GiftCardRecords,
        notifier: GiftCardNotifier,
    ) -> "GiftCardOrchestrator":
        return cls(
            ledger,
            records,
            notifier,
            settle_delay_seconds=settings.settle_delay_seconds,
            verification_attempts=settings.verification_attempts,
            verification_delay_seconds=settings.verification_delay_seconds,
            default_fee_bps=settings.fee_percentage_bps,
        )

    async def create_gift_card(
        self,
        wallet: Wallet | None,
        amount: str,
        recipient_email: str,
        message: str | None = None,
        template: str = GiftCardTemplateEnum.DEFAULT.value,
    ) -> CreateGiftCardResult:
        flow = FlowStateMachine("create")

        try:
            amount_wei = to_wei(amount)
        except InvalidAmountError as exc:
            return self._create_failed(flow, CreateErrorCode.INVALID_INPUT, str(exc))
        if amount_wei <= 0:
            return self._create_failed(flow, CreateErrorCode.INVALID_INPUT, "Amount must be greater than 0")
        if not recipient_email or not EMAIL_PATTERN.match(recipient_email):
            return self._create_failed(flow, CreateErrorCode.INVALID_INPUT, "A valid recipient email is required")
        if template not in {member.value for member in GiftCardTemplateEnum}:
            return self._create_failed(flow, CreateErrorCode.INVALID_INPUT, f"Unknown template: {template}")
        if wallet is None or not wallet.connected:
            return self._create_failed(flow, CreateErrorCode.WALLET_NOT_CONNECTED, "Wallet not connected")

        sender = wallet.address
        code = generate_redemption_code()
        code_hash = hash_redemption_code(code)

        fee_wei = await self._resolve_fee(amount_wei)
        required = amount_wei + fee_wei
        try:
            allowance = await self._ledger.allowance(sender)
            balance = await self._ledger.balance_of(sender)
        except LedgerError as exc:
            logger.exception("Failed to read cUSD allowance or balance", sender=sender, error=str(exc))
            return self._create_failed(flow, CreateErrorCode.TRANSACTION_FAILED, "Failed to read cUSD balance")
        if allowance < required:
            return self._create_failed(
                flow,
                CreateErrorCode.INSUFFICIENT_ALLOWANCE,
                "Insufficient allowance",
                fee=format_wei(fee_wei),
            )
        if balance < required:
            return self._create_failed(
                flow,
                CreateErrorCode.INSUFFICIENT_BALANCE,
                "Insufficient balance",
                fee=format_wei(fee_wei),
            )

        flow.transition(FlowState.CREATING)
        try:
            tx_hash = await self._ledger.create_gift_card(sender, code_hash, amount_wei)
        except LedgerError as exc:
            error_code, error = _map_create_error(exc)
            logger.warning("Gift card creation transaction failed", sender=sender, error=str(exc))
            return self._create_failed(flow, error_code, error)

        with logger.contextualize(code_hash=code_hash, tx_hash=tx_hash):
            return await self._complete_creation(
                flow,
                sender=sender,
                code=code,
                code_hash=code_hash,
                amount_wei=amount_wei,
                fee_wei=fee_wei,
                tx_hash=tx_hash,
                recipient_email=recipient_email,
                message=message,
                template=template,
            )

    async def _complete_creation(
        self,
        flow: FlowStateMachine,
        *,
        sender: str,
        code: str,
        code_hash: str,
        amount_wei: int,
        fee_wei: int,
        tx_hash: str,
        recipient_email: str,
        message: str | None,
        template: str,
    ) -> CreateGiftCardResult:
        """Everything after submission: the code may already be funded on-chain."""

        amount_text = format_wei(amount_wei)
        fee_text = format_wei(fee_wei)
        block_number: int | None = None
        try:
            receipt = await self._ledger.wait_for_transaction_receipt(tx_hash)
        except LedgerError as exc:
            # The ledger read below decides whether the card exists.
            logger.warning("Receipt wait failed after submission", error=str(exc))
        else:
            if not receipt.succeeded:
                return self._create_failed(
                    flow,
                    CreateErrorCode.TRANSACTION_FAILED,
                    "Transaction failed or was reverted",
                    tx_hash=receipt.transaction_hash,
                )
            tx_hash = receipt.transaction_hash
            block_number = receipt.block_number

        partial = {
            "code": code,
            "code_hash": code_hash,
            "amount": amount_text,
            "fee": fee_text,
            "tx_hash": tx_hash,
            "block_number": block_number,
            "partial": True,
        }

        flow.transition(FlowState.VERIFYING)
        verified_amount = await self._verify_created(code_hash)
        if verified_amount is None:
            return self._create_failed(
                flow,
                CreateErrorCode.VERIFICATION_TIMEOUT,
                "Gift card was not created on the blockchain after multiple attempts",
                **partial,
            )
        if verified_amount != amount_wei:
            logger.error("Gift card amount mismatch on ledger", expected=amount_wei, actual=verified_amount)
            return self._create_failed(
                flow,
                CreateErrorCode.AMOUNT_MISMATCH,
                "Gift card amount mismatch on blockchain",
                **partial,
            )

        flow.transition(FlowState.PERSISTING)
        try:
            await self._records.create_record(
                redemption_code=code,
                code_hash=code_hash,
                amount=amount_text,
                creator=sender,
                recipient_email=recipient_email,
                message=message,
                template=template,
                transaction_hash=tx_hash,
                block_number=block_number,
            )
        except _RECORD_ERRORS as exc:
            logger.exception("Failed to save funded gift card; code returned to caller", error=str(exc))
            return self._create_failed(
                flow,
                CreateErrorCode.DATABASE_WRITE_FAILED,
                "Failed to save gift card in database",
                **partial,
            )

        flow.transition(FlowState.NOTIFYING)
        try:
            await self._notifier.send_gift_card_email(
                recipient_email,
                code,
                amount_text,
                sender,
                message=message,
                template=template,
            )
        except NotificationDeliveryError as exc:
            logger.warning("Gift card email delivery failed", error=str(exc))
            return self._create_failed(
                flow,
                CreateErrorCode.EMAIL_FAILED,
                "Gift card created but the email could not be sent",
                **partial,
            )

        flow.transition(FlowState.SUCCESS)
        self._metrics.record_create("succeeded")
        logger.info("Gift card created", amount=amount_text, block_number=block_number)
        return CreateGiftCardResult(
            success=True,
            state=flow.state,
            history=flow.history,
            code=code,
            code_hash=code_hash,
            amount=amount_text,
            fee=fee_text,
            tx_hash=tx_hash,
            block_number=block_number,
        )

    async def approve(self, wallet: Wallet | None, amount: str) -> ApproveResult:
        """Approve the escrow contract to pull ``amount`` plus the creation fee."""

        flow = FlowStateMachine("approve")
        try:
            amount_wei = to_wei(amount)
        except InvalidAmountError as exc:
            flow.fail()
            return ApproveResult(
                success=False,
                state=flow.state,
                history=flow.history,
                error=str(exc),
                error_code=CreateErrorCode.INVALID_INPUT,
            )
        if wallet is None or not wallet.connected:
            flow.fail()
            return ApproveResult(
                success=False,
                state=flow.state,
                history=flow.history,
                error="Wallet not connected",
                error_code=CreateErrorCode.WALLET_NOT_CONNECTED,
            )

        total = amount_wei + await self._resolve_fee(amount_wei)
        flow.transition(FlowState.APPROVING)
        try:
            tx_hash = await self._ledger.approve(wallet.address, total)
            receipt = await self._ledger.wait_for_transaction_receipt(tx_hash)
        except LedgerError as exc:
            error_code, error = _map_create_error(exc)
            if error_code not in (CreateErrorCode.TRANSACTION_REJECTED, CreateErrorCode.INSUFFICIENT_GAS_FUNDS):
                error_code, error = CreateErrorCode.TRANSACTION_FAILED, "Failed to approve cUSD"
            flow.fail()
            return ApproveResult(
                success=False,
                state=flow.state,
                history=flow.history,
                error=error,
                error_code=error_code,
            )
        if not receipt.succeeded:
            flow.fail()
            return ApproveResult(
                success=False,
                state=flow.state,
                history=flow.history,
                tx_hash=receipt.transaction_hash,
                error="Failed to approve cUSD",
                error_code=CreateErrorCode.TRANSACTION_FAILED,
            )

        flow.transition(FlowState.SUCCESS)
        return ApproveResult(
            success=True,
            state=flow.state,
            history=flow.history,
            approved_amount=format_wei(total),
            tx_hash=receipt.transaction_hash,
        )

    async def redeem_gift_card(self, wallet: Wallet | None, code: str) -> RedeemGiftCardResult:
        flow = FlowStateMachine("redeem")
        if wallet is None or not wallet.connected:
            return self._redeem_failed(flow, RedeemStatus.ERROR, "Wallet not connected")

        code = normalize_redemption_code(code or "")
        if not code:
            return self._redeem_failed(flow, RedeemStatus.INVALID, "Gift card code is required")

        try:
            record = await self._records.find_record(code)
        except _RECORD_ERRORS as exc:
            logger.exception("Gift card lookup failed", error=str(exc))
            return self._redeem_failed(flow, RedeemStatus.ERROR, "Failed to check gift card")
        if record is None:
            return self._redeem_failed(flow, RedeemStatus.INVALID, "This gift card code does not exist")
        if record.status == GiftCardStatusEnum.REDEEMED.value:
            return self._redeem_failed(flow, RedeemStatus.INVALID, "This gift card has already been redeemed")
        if record.status == GiftCardStatusEnum.EXPIRED.value:
            return self._redeem_failed(flow, RedeemStatus.INVALID, "This gift card has expired")

        try:
            valid, amount_wei = await self._ledger.check_gift_card(hash_redemption_code(code))
        except LedgerError as exc:
            logger.warning("Ledger gift card check failed", error=str(exc))
            return self._redeem_failed(flow, RedeemStatus.ERROR, "Failed to check gift card")
        if not valid:
            return self._redeem_failed(flow, RedeemStatus.INVALID, "Invalid or already redeemed gift card")

        flow.transition(FlowState.REDEEMING)
        try:
            tx_hash = await self._ledger.redeem_gift_card(wallet.address, code)
            receipt = await self._ledger.wait_for_transaction_receipt(tx_hash)
        except LedgerError as exc:
            status, error = _map_redeem_error(exc)
            logger.warning("Gift card redemption transaction failed", status=status.value, error=str(exc))
            return self._redeem_failed(flow, status, error)
        if not receipt.succeeded:
            return self._redeem_failed(
                flow,
                RedeemStatus.ERROR,
                "Transaction failed or was reverted",
                tx_hash=receipt.transaction_hash,
            )

        flow.transition(FlowState.PERSISTING)
        warnings = await self._record_redemption(code, wallet.address, receipt)
        flow.transition(FlowState.SUCCESS)
        self._metrics.record_redeem(RedeemStatus.SUCCESS.value)
        amount_text = format_wei(amount_wei)
        logger.info("Gift card redeemed", amount=amount_text, tx_hash=receipt.transaction_hash)
        return RedeemGiftCardResult(
            success=True,
            status=RedeemStatus.SUCCESS,
            state=flow.state,
            history=flow.history,
            amount=amount_text,
            tx_hash=receipt.transaction_hash,
            warnings=warnings,
        )

    async def check_gift_card(self, code: str) -> GiftCardCheckResult:
        code = normalize_redemption_code(code or "")
        if not code:
            return GiftCardCheckResult(valid=False, error="Gift card code is required")
        try:
            record = await self._records.find_record(code)
        except _RECORD_ERRORS as exc:
            logger.warning("Gift card lookup failed", error=str(exc))
            return GiftCardCheckResult(valid=False, error="Failed to check gift card")
        if record is None:
            return GiftCardCheckResult(valid=False, error="This gift card code does not exist")
        if record.status != GiftCardStatusEnum.PENDING.value:
            return GiftCardCheckResult(valid=False, status=record.status)

        try:
            valid, amount_wei = await self._ledger.check_gift_card(hash_redemption_code(code))
        except LedgerError as exc:
            logger.warning("Ledger gift card check failed", error=str(exc))
            return GiftCardCheckResult(valid=False, status=record.status, error="Failed to check gift card")
        return GiftCardCheckResult(valid=valid, amount=format_wei(amount_wei), status=record.status)

    async def _resolve_fee(self, amount_wei: int) -> int:
        try:
            return await self._ledger.calculate_fee(amount_wei)
        except LedgerError as exc:
            logger.warning("Contract fee calculation failed, using default fee", error=str(exc))
            return amount_wei * self._default_fee_bps // BASIS_POINTS

    async def _verify_created(self, code_hash: str) -> int | None:
        await self._sleep(self._settle_delay)
        for attempt in range(1, self._verification_attempts + 1):
            try:
                valid, amount_wei = await self._ledger.check_gift_card(code_hash)
            except LedgerError as exc:
                logger.warning("Verification read failed", code_hash=code_hash, attempt=attempt, error=str(exc))
                valid, amount_wei = False, 0
            if valid:
                return amount_wei
            if attempt < self._verification_attempts:
                await self._sleep(self._verification_delay)
        return None

    async def _record_redemption(self, code: str, redeemer: str, receipt: TransactionReceipt) -> list[str]:
        warnings: list[str] = []
        try:
            updated = await self._records.mark_redeemed(
                code,
                redeemer,
                transaction_hash=receipt.transaction_hash,
                block_number=receipt.block_number,
            )
        except _RECORD_ERRORS as exc:
            logger.exception(
                "Failed to update gift card record after redemption",
                tx_hash=receipt.transaction_hash,
                error=str(exc),
            )
            warnings.append("Redeemed on-chain but the gift card record could not be updated")
            return warnings
        if updated is None:
            logger.warning("Gift card record was no longer pending", tx_hash=receipt.transaction_hash)
            warnings.append("Gift card record was no longer pending; event sync will reconcile it")
        return warnings

    def _create_failed(
        self,
        flow: FlowStateMachine,
        error_code: CreateErrorCode,
        error: str,
        **fields: object,
    ) -> CreateGiftCardResult:
        flow.fail()
        self._metrics.record_create(error_code.value)
        return CreateGiftCardResult(
            success=False,
            state=flow.state,
            history=flow.history,
            error=error,
            error_code=error_code,
            **fields,  # type: ignore[arg-type]
        )

    def _redeem_failed(
        self,
        flow: FlowStateMachine,
        status: RedeemStatus,
        error: str,
        *,
        tx_hash: str | None = None,
    ) -> RedeemGiftCardResult:
        flow.fail()
        self._metrics.record_redeem(status.value)
        return RedeemGiftCardResult(
            success=False,
            status=status,
            state=flow.state,
            history=flow.history,
            tx_hash=tx_hash,
            error=error,
        )


def _map_create_error(exc: LedgerError) -> tuple[CreateErrorCode, str]:
    if isinstance(exc, TransactionRejectedError):
        return CreateErrorCode.TRANSACTION_REJECTED, "Transaction rejected by user"
    if isinstance(exc, InsufficientGasFundsError):
        return CreateErrorCode.INSUFFICIENT_GAS_FUNDS, "Insufficient funds for gas"
    if isinstance(exc, LedgerRevertError):
        if REVERT_CODE_USED in exc.reason:
            return CreateErrorCode.CODE_ALREADY_USED, "Gift card code already used"
        if REVERT_INSUFFICIENT_ALLOWANCE in exc.reason:
            return CreateErrorCode.INSUFFICIENT_ALLOWANCE, "Insufficient allowance"
        if REVERT_INSUFFICIENT_BALANCE in exc.reason:
            return CreateErrorCode.INSUFFICIENT_BALANCE, "Insufficient balance"
    return CreateErrorCode.TRANSACTION_FAILED, "Failed to create gift card on blockchain"


def _map_redeem_error(exc: LedgerError) -> tuple[RedeemStatus, str]:
    if isinstance(exc, LedgerRevertError):
        if REVERT_NOT_FOUND in exc.reason:
            return RedeemStatus.INVALID, "This gift card code does not exist"
        if REVERT_ALREADY_REDEEMED in exc.reason:
            return RedeemStatus.INVALID, "This gift card has already been redeemed"
        return RedeemStatus.INVALID, "Invalid or already redeemed gift card"
    if isinstance(exc, InsufficientGasFundsError):
        return RedeemStatus.INSUFFICIENT_FUNDS, "Insufficient funds for gas"
    if isinstance(exc, TransactionRejectedError):
        return RedeemStatus.REJECTED, "Transaction rejected by user"
    return RedeemStatus.ERROR, "Failed to redeem gift card"


__all__ = [
    "ApproveResult",
    "CreateErrorCode",
    "CreateGiftCardResult",
    "EMAIL_PATTERN",
    "GiftCardCheckResult",
    "GiftCardOrchestrator",
    "RedeemGiftCardResult",
    "RedeemStatus",
    "Wallet",
]
