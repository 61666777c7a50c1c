"""Async ledger client seam and the in-memory implementation backed by ``EscrowLedger``."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from unwrap_api.core.settings import Settings

from .contract import EscrowLedger, LedgerEvent, StableToken
from .errors import LedgerUnavailableError, ReceiptTimeoutError

RECEIPT_STATUS_SUCCESS = 1
RECEIPT_STATUS_REVERTED = 0


@dataclass(slots=True)
class TransactionReceipt:
    transaction_hash: str
    status: int
    block_number: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RECEIPT_STATUS_SUCCESS


class LedgerClient(Protocol):
    """Operations the application needs from the escrow contract and its token."""

    contract_address: str

    async def get_block_number(self) -> int:
        ...

    async def get_code(self) -> bytes:
        ...

    async def calculate_fee(self, amount_wei: int) -> int:
        ...

    async def fee_percentage(self) -> int:
        ...

    async def fee_collector(self) -> str:
        ...

    async def token_address(self) -> str:
        ...

    async def check_gift_card(self, code_hash: str) -> tuple[bool, int]:
        ...

    async def allowance(self, owner: str) -> int:
        """Token allowance ``owner`` has granted to the escrow contract."""
        ...

    async def balance_of(self, owner: str) -> int:
        ...

    async def approve(self, owner: str, amount_wei: int) -> str:
        ...

    async def create_gift_card(self, sender: str, code_hash: str, amount_wei: int) -> str:
        ...

    async def redeem_gift_card(self, sender: str, code: str) -> str:
        ...

    async def wait_for_transaction_receipt(
        self,
        transaction_hash: str,
        *,
        timeout: float | None = None,
    ) -> TransactionReceipt:
        ...

    async def get_events(self, name: str, *, from_block: int, to_block: int) -> list[LedgerEvent]:
        ...


def _new_transaction_hash() -> str:
    return "0x" + secrets.token_hex(32)


class InMemoryLedgerClient:
    """Auto-mining, single-process chain used for development and tests."""

    def __init__(self, ledger: EscrowLedger) -> None:
        self._ledger = ledger
        self.contract_address = ledger.address
        self._receipts: dict[str, TransactionReceipt] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "InMemoryLedgerClient":
        token = StableToken(address=settings.cusd_token_address)
        ledger = EscrowLedger(
            token=token,
            address=settings.unwrap_contract_address,
            fee_collector=settings.fee_collector_address,
            fee_percentage=settings.fee_percentage_bps,
        )
        logger.info(
            "In-memory ledger initialised",
            contract=ledger.address,
            token=token.address,
            fee_percentage=ledger.fee_percentage,
        )
        return cls(ledger)

    @property
    def ledger(self) -> EscrowLedger:
        return self._ledger

    def fund(self, owner: str, amount_wei: int) -> None:
        """Mint test cUSD to ``owner``."""

        self._ledger.token.mint(owner, amount_wei)

    async def get_block_number(self) -> int:
        return self._ledger.block_number

    async def get_code(self) -> bytes:
        return b"\x60\x80"

    async def calculate_fee(self, amount_wei: int) -> int:
        return self._ledger.calculate_fee(amount_wei)

    async def fee_percentage(self) -> int:
        return self._ledger.fee_percentage

    async def fee_collector(self) -> str:
        return self._ledger.fee_collector

    async def token_address(self) -> str:
        return self._ledger.token_address

    async def check_gift_card(self, code_hash: str) -> tuple[bool, int]:
        return self._ledger.check_gift_card(code_hash)

    async def allowance(self, owner: str) -> int:
        return self._ledger.token.allowance(owner, self._ledger.address)

    async def balance_of(self, owner: str) -> int:
        return self._ledger.token.balance_of(owner)

    async def approve(self, owner: str, amount_wei: int) -> str:
        self._ledger.token.approve(owner, self._ledger.address, amount_wei)
        block = self._ledger.advance_block()
        return self._record_receipt(block, [])

    async def create_gift_card(self, sender: str, code_hash: str, amount_wei: int) -> str:
        events = self._ledger.create_gift_card(sender, code_hash, amount_wei)
        return self._record_receipt(events[0].block_number, events)

    async def redeem_gift_card(self, sender: str, code: str) -> str:
        events = self._ledger.redeem_gift_card(sender, code)
        return self._record_receipt(events[0].block_number, events)

    async def wait_for_transaction_receipt(
        self,
        transaction_hash: str,
        *,
        timeout: float | None = None,
    ) -> TransactionReceipt:
        receipt = self._receipts.get(transaction_hash)
        if receipt is None:
            raise ReceiptTimeoutError(f"Transaction {transaction_hash} is not in the chain")
        return receipt

    async def get_events(self, name: str, *, from_block: int, to_block: int) -> list[LedgerEvent]:
        if from_block > to_block:
            raise LedgerUnavailableError(f"Invalid block range {from_block}..{to_block}")
        return self._ledger.get_events(name, from_block=from_block, to_block=to_block)

    def _record_receipt(self, block_number: int, events: list[LedgerEvent]) -> str:
        transaction_hash = _new_transaction_hash()
        for index, event in enumerate(events):
            event.transaction_hash = transaction_hash
            event.log_index = index
        self._receipts[transaction_hash] = TransactionReceipt(
            transaction_hash=transaction_hash,
            status=RECEIPT_STATUS_SUCCESS,
            block_number=block_number,
        )
        return transaction_hash


__all__ = [
    "RECEIPT_STATUS_REVERTED",
    "RECEIPT_STATUS_SUCCESS",
    "InMemoryLedgerClient",
    "LedgerClient",
    "TransactionReceipt",
]
