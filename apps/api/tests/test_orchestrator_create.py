from unittest.mock import AsyncMock

import pytest

from unwrap_api.observability.gift_cards import get_gift_card_store
from unwrap_api.services.gift_cards import (
    CreateErrorCode,
    FlowState,
    GiftCardOrchestrator,
    RedeemStatus,
    StoreGiftCardRecords,
    Wallet,
    sync_gift_card_events,
)
from unwrap_api.services.gift_cards.store import GiftCardStore, GiftCardStoreError
from unwrap_api.services.ledger import (
    InsufficientGasFundsError,
    LedgerRevertError,
    LedgerUnavailableError,
    ReceiptTimeoutError,
    TransactionRejectedError,
    hash_redemption_code,
    to_wei,
)
from unwrap_api.services.ledger.client import RECEIPT_STATUS_REVERTED, TransactionReceipt
from unwrap_api.services.ledger.errors import REVERT_CODE_USED
from unwrap_api.services.notifications import NotificationDeliveryError, NotificationService

ALICE = "0x00000000000000000000000000000000000000a1"
BOB = "0x00000000000000000000000000000000000000b2"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FailingRecords(StoreGiftCardRecords):
    async def create_record(self, **fields):
        raise GiftCardStoreError("database is down")


class FailingNotifier:
    async def send_gift_card_email(self, *args, **kwargs) -> None:
        raise NotificationDeliveryError("smtp refused")


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def notifier(email_backend) -> NotificationService:
    return NotificationService(email_backend, app_url="https://unwrap.test")


@pytest.fixture
def build_orchestrator(ledger_client, session_factory, notifier, sleep):
    def _build(records=None, notifier_override=None) -> GiftCardOrchestrator:
        return GiftCardOrchestrator(
            ledger_client,
            records or StoreGiftCardRecords(session_factory),
            notifier_override or notifier,
            settle_delay_seconds=2.0,
            verification_attempts=3,
            verification_delay_seconds=2.0,
            sleep=sleep,
        )

    return _build


@pytest.fixture
def funded_wallet(ledger_client) -> Wallet:
    ledger_client.fund(ALICE, to_wei("100"))
    return Wallet(ALICE)


async def _approve(orchestrator: GiftCardOrchestrator, wallet: Wallet, amount: str = "10") -> None:
    result = await orchestrator.approve(wallet, amount)
    assert result.success


@pytest.mark.asyncio
async def test_create_gift_card_happy_path(
    build_orchestrator, funded_wallet, session_factory, email_backend, sleep
) -> None:
    orchestrator = build_orchestrator()
    await _approve(orchestrator, funded_wallet)

    result = await orchestrator.create_gift_card(
        funded_wallet,
        "10",
        "friend@example.com",
        message="Happy birthday!",
        template="birthday",
    )

    assert result.success
    assert result.partial is False
    assert result.amount == "10"
    assert result.fee == "0.05"
    assert result.history == [
        FlowState.IDLE,
        FlowState.CREATING,
        FlowState.VERIFYING,
        FlowState.PERSISTING,
        FlowState.NOTIFYING,
        FlowState.SUCCESS,
    ]
    assert sleep.delays == [2.0]

    async with session_factory() as session:
        record = await GiftCardStore(session).get_by_code(result.code)
    assert record.code_hash == result.code_hash
    assert record.transaction_hash == result.tx_hash
    assert record.block_number == result.block_number

    assert len(email_backend.sent_messages) == 1
    email = email_backend.sent_messages[0]
    assert email["To"] == "friend@example.com"
    assert email["Subject"] == "Happy Birthday! 🎂 Your cUSD Gift Card is here!"
    assert get_gift_card_store().snapshot().create_totals == {"succeeded": 1}


@pytest.mark.asyncio
async def test_approve_covers_amount_plus_fee(build_orchestrator, funded_wallet, ledger_client) -> None:
    orchestrator = build_orchestrator()

    result = await orchestrator.approve(funded_wallet, "10")

    assert result.success
    assert result.approved_amount == "10.05"
    assert result.history == [FlowState.IDLE, FlowState.APPROVING, FlowState.SUCCESS]
    assert await ledger_client.allowance(ALICE) == to_wei("10.05")


@pytest.mark.asyncio
async def test_approve_requires_wallet(build_orchestrator) -> None:
    result = await build_orchestrator().approve(Wallet(None), "10")

    assert not result.success
    assert result.error_code == CreateErrorCode.WALLET_NOT_CONNECTED
    assert result.state == FlowState.ERROR


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("amount", "email", "template", "error"),
    [
        ("abc", "friend@example.com", "default", "Invalid amount: 'abc'"),
        ("0", "friend@example.com", "default", "Amount must be greater than 0"),
        ("10", "not-an-email", "default", "A valid recipient email is required"),
        ("10", "friend@example.com", "wedding", "Unknown template: wedding"),
    ],
)
async def test_create_rejects_invalid_input(build_orchestrator, funded_wallet, amount, email, template, error) -> None:
    result = await build_orchestrator().create_gift_card(funded_wallet, amount, email, template=template)

    assert not result.success
    assert result.error_code == CreateErrorCode.INVALID_INPUT
    assert result.error == error
    assert result.history == [FlowState.IDLE, FlowState.ERROR]
    assert result.code is None


@pytest.mark.asyncio
async def test_create_requires_connected_wallet(build_orchestrator) -> None:
    result = await build_orchestrator().create_gift_card(None, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.WALLET_NOT_CONNECTED
    assert result.error == "Wallet not connected"


@pytest.mark.asyncio
async def test_create_reports_insufficient_allowance(build_orchestrator, funded_wallet) -> None:
    result = await build_orchestrator().create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.INSUFFICIENT_ALLOWANCE
    assert result.fee == "0.05"
    assert get_gift_card_store().snapshot().create_totals == {"insufficient_allowance": 1}


@pytest.mark.asyncio
async def test_create_reports_insufficient_balance(build_orchestrator, ledger_client) -> None:
    orchestrator = build_orchestrator()
    wallet = Wallet(ALICE)
    await _approve(orchestrator, wallet)

    result = await orchestrator.create_gift_card(wallet, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.INSUFFICIENT_BALANCE
    assert result.error == "Insufficient balance"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc", "error_code", "error"),
    [
        (TransactionRejectedError("User rejected the request"), CreateErrorCode.TRANSACTION_REJECTED, "Transaction rejected by user"),
        (InsufficientGasFundsError("insufficient funds for gas"), CreateErrorCode.INSUFFICIENT_GAS_FUNDS, "Insufficient funds for gas"),
        (LedgerRevertError(REVERT_CODE_USED), CreateErrorCode.CODE_ALREADY_USED, "Gift card code already used"),
        (LedgerUnavailableError("connection reset"), CreateErrorCode.TRANSACTION_FAILED, "Failed to create gift card on blockchain"),
    ],
)
async def test_create_maps_submission_errors(
    build_orchestrator, funded_wallet, ledger_client, monkeypatch, exc, error_code, error
) -> None:
    orchestrator = build_orchestrator()
    await _approve(orchestrator, funded_wallet)
    monkeypatch.setattr(ledger_client, "create_gift_card", AsyncMock(side_effect=exc))

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.error_code == error_code
    assert result.error == error
    assert result.partial is False
    assert result.history == [FlowState.IDLE, FlowState.CREATING, FlowState.ERROR]


@pytest.mark.asyncio
async def test_create_verification_timeout_returns_partial_result(
    build_orchestrator, funded_wallet, ledger_client, monkeypatch, sleep
) -> None:
    orchestrator = build_orchestrator()
    await _approve(orchestrator, funded_wallet)
    check = AsyncMock(return_value=(False, 0))
    monkeypatch.setattr(ledger_client, "check_gift_card", check)

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.VERIFICATION_TIMEOUT
    assert result.error == "Gift card was not created on the blockchain after multiple attempts"
    assert result.partial is True
    assert result.code is not None
    assert result.tx_hash is not None
    assert check.await_count == 3
    assert sleep.delays == [2.0, 2.0, 2.0]
    assert result.history[-2:] == [FlowState.VERIFYING, FlowState.ERROR]


@pytest.mark.asyncio
async def test_create_verification_retries_after_read_errors(
    build_orchestrator, funded_wallet, ledger_client, monkeypatch, sleep
) -> None:
    orchestrator = build_orchestrator()
    await _approve(orchestrator, funded_wallet)
    check = AsyncMock(side_effect=[LedgerUnavailableError("timeout"), (True, to_wei("10"))])
    monkeypatch.setattr(ledger_client, "check_gift_card", check)

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.success
    assert sleep.delays == [2.0, 2.0]


@pytest.mark.asyncio
async def test_create_amount_mismatch_returns_partial_result(
    build_orchestrator, funded_wallet, ledger_client, monkeypatch
) -> None:
    orchestrator = build_orchestrator()
    await _approve(orchestrator, funded_wallet)
    monkeypatch.setattr(ledger_client, "check_gift_card", AsyncMock(return_value=(True, 1)))

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.AMOUNT_MISMATCH
    assert result.partial is True


@pytest.mark.asyncio
async def test_create_database_failure_still_returns_code(
    build_orchestrator, funded_wallet, ledger_client, session_factory, email_backend
) -> None:
    orchestrator = build_orchestrator(records=FailingRecords(session_factory))
    await _approve(orchestrator, funded_wallet)

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.DATABASE_WRITE_FAILED
    assert result.error == "Failed to save gift card in database"
    assert result.partial is True
    assert await ledger_client.check_gift_card(result.code_hash) == (True, to_wei("10"))
    assert email_backend.sent_messages == []
    assert result.history[-2:] == [FlowState.PERSISTING, FlowState.ERROR]


@pytest.mark.asyncio
async def test_create_email_failure_keeps_record(build_orchestrator, funded_wallet, session_factory) -> None:
    orchestrator = build_orchestrator(notifier_override=FailingNotifier())
    await _approve(orchestrator, funded_wallet)

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.EMAIL_FAILED
    assert result.partial is True
    async with session_factory() as session:
        assert await GiftCardStore(session).get_by_code(result.code) is not None


@pytest.mark.asyncio
async def test_create_falls_back_to_default_fee(build_orchestrator, funded_wallet, ledger_client, monkeypatch) -> None:
    orchestrator = build_orchestrator()
    monkeypatch.setattr(ledger_client, "calculate_fee", AsyncMock(side_effect=LedgerUnavailableError("rpc down")))

    approval = await orchestrator.approve(funded_wallet, "10")
    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert approval.approved_amount == "10.05"
    assert result.success
    assert result.fee == "0.05"


def _record_submissions(ledger_client, monkeypatch) -> list[str]:
    submit = ledger_client.create_gift_card
    submitted: list[str] = []

    async def _submit(sender, code_hash, amount_wei):
        tx_hash = await submit(sender, code_hash, amount_wei)
        submitted.append(tx_hash)
        return tx_hash

    monkeypatch.setattr(ledger_client, "create_gift_card", _submit)
    return submitted


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [ReceiptTimeoutError("Transaction not mined within 120 seconds"), LedgerUnavailableError("connection reset")],
)
async def test_create_confirms_on_ledger_when_receipt_wait_fails(
    build_orchestrator, funded_wallet, ledger_client, monkeypatch, session_factory, email_backend, exc
) -> None:
    orchestrator = build_orchestrator()
    await _approve(orchestrator, funded_wallet)
    submitted = _record_submissions(ledger_client, monkeypatch)
    monkeypatch.setattr(ledger_client, "wait_for_transaction_receipt", AsyncMock(side_effect=exc))

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.success
    assert result.code is not None
    assert result.tx_hash == submitted[0]
    assert result.block_number is None
    assert await ledger_client.check_gift_card(result.code_hash) == (True, to_wei("10"))

    async with session_factory() as session:
        record = await GiftCardStore(session).get_by_code(result.code)
    assert record.transaction_hash == submitted[0]
    assert len(email_backend.sent_messages) == 1


@pytest.mark.asyncio
async def test_create_keeps_code_when_receipt_wait_and_verification_fail(
    build_orchestrator, funded_wallet, ledger_client, monkeypatch
) -> None:
    orchestrator = build_orchestrator()
    await _approve(orchestrator, funded_wallet)
    submitted = _record_submissions(ledger_client, monkeypatch)
    monkeypatch.setattr(
        ledger_client,
        "wait_for_transaction_receipt",
        AsyncMock(side_effect=ReceiptTimeoutError("Transaction not mined within 120 seconds")),
    )
    monkeypatch.setattr(ledger_client, "check_gift_card", AsyncMock(return_value=(False, 0)))

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.VERIFICATION_TIMEOUT
    assert result.partial is True
    assert result.code is not None
    assert hash_redemption_code(result.code) == result.code_hash
    assert result.tx_hash == submitted[0]
    assert result.history[-3:] == [FlowState.CREATING, FlowState.VERIFYING, FlowState.ERROR]


@pytest.mark.asyncio
async def test_create_reverted_receipt_is_not_partial(
    build_orchestrator, funded_wallet, ledger_client, monkeypatch
) -> None:
    orchestrator = build_orchestrator()
    await _approve(orchestrator, funded_wallet)
    reverted = TransactionReceipt("0x" + "de" * 32, status=RECEIPT_STATUS_REVERTED, block_number=9)
    monkeypatch.setattr(ledger_client, "wait_for_transaction_receipt", AsyncMock(return_value=reverted))

    result = await orchestrator.create_gift_card(funded_wallet, "10", "friend@example.com")

    assert result.error_code == CreateErrorCode.TRANSACTION_FAILED
    assert result.error == "Transaction failed or was reverted"
    assert result.tx_hash == reverted.transaction_hash
    assert result.partial is False
    assert result.code is None


class SyncingSleep(RecordingSleep):
    """Runs one event sync tick during the settle delay."""

    def __init__(self, session_factory, ledger_client) -> None:
        super().__init__()
        self._session_factory = session_factory
        self._ledger = ledger_client
        self.summaries = []

    async def __call__(self, delay: float) -> None:
        await super().__call__(delay)
        if len(self.delays) == 1:
            async with self._session_factory() as session:
                self.summaries.append(await sync_gift_card_events(GiftCardStore(session), self._ledger))


@pytest.mark.asyncio
async def test_create_completes_row_inserted_by_concurrent_sync(
    funded_wallet, ledger_client, session_factory, notifier, email_backend
) -> None:
    syncing_sleep = SyncingSleep(session_factory, ledger_client)
    orchestrator = GiftCardOrchestrator(
        ledger_client,
        StoreGiftCardRecords(session_factory),
        notifier,
        settle_delay_seconds=2.0,
        sleep=syncing_sleep,
    )
    await _approve(orchestrator, funded_wallet)

    result = await orchestrator.create_gift_card(
        funded_wallet, "10", "friend@example.com", message="Enjoy", template="holiday"
    )

    assert syncing_sleep.summaries[0].created == 1
    assert result.success
    assert result.partial is False
    assert len(email_backend.sent_messages) == 1

    async with session_factory() as session:
        record = await GiftCardStore(session).get_by_code(result.code)
    assert record.code_hash == result.code_hash
    assert record.recipient_email == "friend@example.com"
    assert record.message == "Enjoy"
    assert record.template.value == "holiday"
    assert record.block_number == result.block_number

    redeemed = await orchestrator.redeem_gift_card(Wallet(BOB), result.code.lower())
    assert redeemed.status == RedeemStatus.SUCCESS
