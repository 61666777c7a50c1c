import pytest

from unwrap_api.services.ledger import (
    EVENT_GIFT_CARD_CREATED,
    EVENT_GIFT_CARD_REDEEMED,
    EscrowLedger,
    InMemoryLedgerClient,
    LedgerRevertError,
    ReceiptTimeoutError,
    StableToken,
    hash_redemption_code,
    to_wei,
)
from unwrap_api.services.ledger.errors import (
    REVERT_ALREADY_REDEEMED,
    REVERT_CODE_USED,
    REVERT_INSUFFICIENT_ALLOWANCE,
    REVERT_INSUFFICIENT_BALANCE,
    REVERT_NOT_FOUND,
    REVERT_NOT_OWNER,
    REVERT_ZERO_AMOUNT,
)

CONTRACT = "0x00000000000000000000000000000000000000c0"
COLLECTOR = "0x00000000000000000000000000000000000000fe"
ALICE = "0x00000000000000000000000000000000000000a1"
BOB = "0x00000000000000000000000000000000000000b2"
CODE = "ABCD-EFGH-JKLM-NPQR"


def _ledger(fee_percentage: int = 50) -> EscrowLedger:
    token = StableToken(address="0x00000000000000000000000000000000000000cd")
    return EscrowLedger(token=token, address=CONTRACT, fee_collector=COLLECTOR, fee_percentage=fee_percentage)


def _fund_and_approve(ledger: EscrowLedger, owner: str, amount: int) -> None:
    ledger.token.mint(owner, amount)
    ledger.token.approve(owner, ledger.address, amount)


def test_create_gift_card_escrows_amount_and_pays_fee() -> None:
    ledger = _ledger()
    amount = to_wei("10")
    fee = ledger.calculate_fee(amount)
    assert fee == to_wei("0.05")
    _fund_and_approve(ledger, ALICE, amount + fee)

    events = ledger.create_gift_card(ALICE, hash_redemption_code(CODE), amount)

    assert ledger.token.balance_of(ALICE) == 0
    assert ledger.token.balance_of(CONTRACT) == amount
    assert ledger.token.balance_of(COLLECTOR) == fee
    assert ledger.check_gift_card(hash_redemption_code(CODE)) == (True, amount)
    assert [event.name for event in events] == [EVENT_GIFT_CARD_CREATED]
    assert events[0].args == {"creator": ALICE, "amount": amount, "codeHash": hash_redemption_code(CODE)}
    assert events[0].block_number == ledger.block_number == 1


def test_create_gift_card_rejects_zero_amount() -> None:
    ledger = _ledger()

    with pytest.raises(LedgerRevertError) as excinfo:
        ledger.create_gift_card(ALICE, hash_redemption_code(CODE), 0)

    assert excinfo.value.reason == REVERT_ZERO_AMOUNT
    assert ledger.block_number == 0


def test_create_gift_card_rejects_reused_code_hash() -> None:
    ledger = _ledger()
    amount = to_wei("1")
    _fund_and_approve(ledger, ALICE, 3 * amount)
    ledger.create_gift_card(ALICE, hash_redemption_code(CODE), amount)

    with pytest.raises(LedgerRevertError) as excinfo:
        ledger.create_gift_card(ALICE, hash_redemption_code(CODE), amount)

    assert excinfo.value.reason == REVERT_CODE_USED


def test_create_gift_card_requires_allowance_for_amount_plus_fee() -> None:
    ledger = _ledger()
    amount = to_wei("10")
    _fund_and_approve(ledger, ALICE, amount)

    with pytest.raises(LedgerRevertError) as excinfo:
        ledger.create_gift_card(ALICE, hash_redemption_code(CODE), amount)

    assert excinfo.value.reason == REVERT_INSUFFICIENT_ALLOWANCE
    assert ledger.token.balance_of(ALICE) == amount
    assert ledger.check_gift_card(hash_redemption_code(CODE)) == (False, 0)


def test_create_gift_card_requires_balance() -> None:
    ledger = _ledger()
    amount = to_wei("10")
    ledger.token.mint(ALICE, amount)
    ledger.token.approve(ALICE, CONTRACT, 2 * amount)

    with pytest.raises(LedgerRevertError) as excinfo:
        ledger.create_gift_card(ALICE, hash_redemption_code(CODE), amount)

    assert excinfo.value.reason == REVERT_INSUFFICIENT_BALANCE
    assert ledger.token.balance_of(CONTRACT) == 0


def test_redeem_pays_redeemer_exactly_once() -> None:
    ledger = _ledger(fee_percentage=0)
    amount = to_wei("25")
    _fund_and_approve(ledger, ALICE, amount)
    ledger.create_gift_card(ALICE, hash_redemption_code(CODE), amount)

    events = ledger.redeem_gift_card(BOB, CODE)

    assert ledger.token.balance_of(BOB) == amount
    assert ledger.token.balance_of(CONTRACT) == 0
    assert ledger.check_gift_card(hash_redemption_code(CODE)) == (False, 0)
    assert events[0].name == EVENT_GIFT_CARD_REDEEMED
    assert events[0].args["redeemer"] == BOB

    with pytest.raises(LedgerRevertError) as excinfo:
        ledger.redeem_gift_card(BOB, CODE)
    assert excinfo.value.reason == REVERT_ALREADY_REDEEMED
    assert ledger.token.balance_of(BOB) == amount


def test_redeem_unknown_code_reverts() -> None:
    ledger = _ledger()

    with pytest.raises(LedgerRevertError) as excinfo:
        ledger.redeem_gift_card(BOB, CODE)

    assert excinfo.value.reason == REVERT_NOT_FOUND


def test_redeem_is_case_sensitive_on_plaintext_code() -> None:
    ledger = _ledger(fee_percentage=0)
    amount = to_wei("1")
    _fund_and_approve(ledger, ALICE, amount)
    ledger.create_gift_card(ALICE, hash_redemption_code(CODE), amount)

    with pytest.raises(LedgerRevertError):
        ledger.redeem_gift_card(BOB, CODE.lower())


def test_fee_configuration_is_owner_only() -> None:
    ledger = _ledger()

    with pytest.raises(LedgerRevertError) as excinfo:
        ledger.set_fee_percentage(ALICE, 100)
    assert excinfo.value.reason == REVERT_NOT_OWNER

    ledger.set_fee_percentage(COLLECTOR, 100)
    ledger.set_fee_collector(COLLECTOR, BOB)

    assert ledger.fee_percentage == 100
    assert ledger.fee_collector == BOB
    assert ledger.calculate_fee(to_wei("10")) == to_wei("0.1")


def test_get_events_filters_by_inclusive_block_range() -> None:
    ledger = _ledger(fee_percentage=0)
    _fund_and_approve(ledger, ALICE, to_wei("3"))
    for index in range(3):
        ledger.create_gift_card(ALICE, hash_redemption_code(f"CODE-{index}"), to_wei("1"))

    events = ledger.get_events(EVENT_GIFT_CARD_CREATED, from_block=2, to_block=3)

    assert [event.block_number for event in events] == [2, 3]


@pytest.mark.asyncio
async def test_in_memory_client_mines_receipts() -> None:
    ledger = _ledger()
    client = InMemoryLedgerClient(ledger)
    amount = to_wei("5")
    client.fund(ALICE, 2 * amount)

    approve_hash = await client.approve(ALICE, 2 * amount)
    approve_receipt = await client.wait_for_transaction_receipt(approve_hash)
    assert approve_receipt.succeeded
    assert await client.allowance(ALICE) == 2 * amount

    create_hash = await client.create_gift_card(ALICE, hash_redemption_code(CODE), amount)
    receipt = await client.wait_for_transaction_receipt(create_hash)

    assert receipt.succeeded
    assert receipt.block_number == await client.get_block_number() == 2
    events = await client.get_events(EVENT_GIFT_CARD_CREATED, from_block=0, to_block=2)
    assert events[0].transaction_hash == create_hash


@pytest.mark.asyncio
async def test_in_memory_client_unknown_receipt_times_out() -> None:
    client = InMemoryLedgerClient(_ledger())

    with pytest.raises(ReceiptTimeoutError):
        await client.wait_for_transaction_receipt("0x" + "00" * 32)
