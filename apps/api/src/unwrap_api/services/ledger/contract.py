"""In-process model of the Unwrap escrow contract and the cUSD token it custodies.

The contract semantics mirror the deployed Solidity program:

* ``create_gift_card`` pulls ``amount`` into escrow (plus the fee to the fee
  collector), records ``{amount, creator, redeemed=False}`` under the code hash
  and emits ``GiftCardCreated``.
* ``redeem_gift_card`` hashes the plaintext code, flips ``redeemed`` once and
  pays the escrowed amount to the caller, emitting ``GiftCardRedeemed``.
* ``check_gift_card`` is a pure read that never reverts.

Every successful state-mutating call is mined into its own block, and all
precondition checks run before any mutation so a revert leaves state untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Any

from .errors import (
    REVERT_ALREADY_REDEEMED,
    REVERT_CODE_USED,
    REVERT_INSUFFICIENT_ALLOWANCE,
    REVERT_INSUFFICIENT_BALANCE,
    REVERT_NOT_FOUND,
    REVERT_NOT_OWNER,
    REVERT_ZERO_AMOUNT,
    LedgerRevertError,
)
from .units import hash_redemption_code, normalize_hash

BASIS_POINTS = 10_000
DEFAULT_FEE_PERCENTAGE = 50

EVENT_GIFT_CARD_CREATED = "GiftCardCreated"
EVENT_GIFT_CARD_REDEEMED = "GiftCardRedeemed"


def _addr(value: str) -> str:
    return value.lower()


@dataclass(slots=True)
class GiftCardEntry:
    amount: int
    creator: str
    redeemed: bool = False


@dataclass(slots=True)
class LedgerEvent:
    """A decoded contract log."""

    name: str
    args: dict[str, Any]
    block_number: int
    transaction_hash: str | None = None
    log_index: int = 0


class StableToken:
    """Minimal ERC-20 ledger used as the cUSD stand-in."""

    def __init__(self, *, address: str, symbol: str = "cUSD") -> None:
        self.address = _addr(address)
        self.symbol = symbol
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self.total_supply = 0

    def balance_of(self, owner: str) -> int:
        return self._balances.get(_addr(owner), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((_addr(owner), _addr(spender)), 0)

    def mint(self, to: str, amount: int) -> None:
        self._balances[_addr(to)] = self.balance_of(to) + amount
        self.total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._allowances[(_addr(owner), _addr(spender))] = amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        self._require_balance(sender, amount)
        self._move(sender, to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        self.require_transfer_from(spender, owner, amount)
        self._allowances[(_addr(owner), _addr(spender))] = self.allowance(owner, spender) - amount
        self._move(owner, to, amount)

    def require_transfer_from(self, spender: str, owner: str, amount: int) -> None:
        if self.allowance(owner, spender) < amount:
            raise LedgerRevertError(REVERT_INSUFFICIENT_ALLOWANCE)
        self._require_balance(owner, amount)

    def _require_balance(self, owner: str, amount: int) -> None:
        if self.balance_of(owner) < amount:
            raise LedgerRevertError(REVERT_INSUFFICIENT_BALANCE)

    def _move(self, sender: str, to: str, amount: int) -> None:
        self._balances[_addr(sender)] = self.balance_of(sender) - amount
        self._balances[_addr(to)] = self.balance_of(to) + amount


@dataclass
class EscrowLedger:
    """Gift card escrow keyed by keccak-256 code hashes."""

    token: StableToken
    address: str
    fee_collector: str
    owner: str | None = None
    fee_percentage: int = DEFAULT_FEE_PERCENTAGE
    block_number: int = 0
    _gift_cards: dict[str, GiftCardEntry] = field(default_factory=dict)
    _events: list[LedgerEvent] = field(default_factory=list)
    _lock: RLock = field(default_factory=RLock)

    def __post_init__(self) -> None:
        self.address = _addr(self.address)
        self.fee_collector = _addr(self.fee_collector)
        self.owner = _addr(self.owner or self.fee_collector)

    @property
    def token_address(self) -> str:
        return self.token.address

    def calculate_fee(self, amount: int) -> int:
        return amount * self.fee_percentage // BASIS_POINTS

    def gift_card(self, code_hash: str) -> GiftCardEntry | None:
        entry = self._gift_cards.get(normalize_hash(code_hash))
        if entry is None:
            return None
        return GiftCardEntry(amount=entry.amount, creator=entry.creator, redeemed=entry.redeemed)

    def check_gift_card(self, code_hash: str) -> tuple[bool, int]:
        entry = self._gift_cards.get(normalize_hash(code_hash))
        if entry is None or entry.redeemed:
            return False, 0
        return True, entry.amount

    def create_gift_card(self, sender: str, code_hash: str, amount: int) -> list[LedgerEvent]:
        key = normalize_hash(code_hash)
        with self._lock:
            if amount <= 0:
                raise LedgerRevertError(REVERT_ZERO_AMOUNT)
            if key in self._gift_cards:
                raise LedgerRevertError(REVERT_CODE_USED)

            fee = self.calculate_fee(amount)
            self.token.require_transfer_from(self.address, sender, amount + fee)

            self.token.transfer_from(self.address, sender, self.address, amount)
            if fee:
                self.token.transfer_from(self.address, sender, self.fee_collector, fee)
            self._gift_cards[key] = GiftCardEntry(amount=amount, creator=_addr(sender))
            return self._mine(
                EVENT_GIFT_CARD_CREATED,
                {"creator": _addr(sender), "amount": amount, "codeHash": key},
            )

    def redeem_gift_card(self, sender: str, code: str) -> list[LedgerEvent]:
        key = hash_redemption_code(code)
        with self._lock:
            entry = self._gift_cards.get(key)
            if entry is None:
                raise LedgerRevertError(REVERT_NOT_FOUND)
            if entry.redeemed:
                raise LedgerRevertError(REVERT_ALREADY_REDEEMED)

            self.token.transfer(self.address, sender, entry.amount)
            entry.redeemed = True
            return self._mine(
                EVENT_GIFT_CARD_REDEEMED,
                {"redeemer": _addr(sender), "amount": entry.amount, "codeHash": key},
            )

    def set_fee_percentage(self, sender: str, fee_percentage: int) -> None:
        with self._lock:
            self._require_owner(sender)
            if fee_percentage < 0 or fee_percentage > BASIS_POINTS:
                raise LedgerRevertError("Fee percentage out of range")
            self.fee_percentage = fee_percentage
            self.block_number += 1

    def set_fee_collector(self, sender: str, fee_collector: str) -> None:
        with self._lock:
            self._require_owner(sender)
            self.fee_collector = _addr(fee_collector)
            self.block_number += 1

    def get_events(
        self,
        name: str,
        *,
        from_block: int = 0,
        to_block: int | None = None,
    ) -> list[LedgerEvent]:
        upper = self.block_number if to_block is None else to_block
        return [
            event
            for event in self._events
            if event.name == name and from_block <= event.block_number <= upper
        ]

    def advance_block(self) -> int:
        """Mine a block carrying no contract logs (token approvals, transfers)."""

        with self._lock:
            self.block_number += 1
            return self.block_number

    def _require_owner(self, sender: str) -> None:
        if _addr(sender) != self.owner:
            raise LedgerRevertError(REVERT_NOT_OWNER)

    def _mine(self, name: str, args: dict[str, Any]) -> list[LedgerEvent]:
        self.block_number += 1
        event = LedgerEvent(name=name, args=args, block_number=self.block_number)
        self._events.append(event)
        return [event]


__all__ = [
    "BASIS_POINTS",
    "DEFAULT_FEE_PERCENTAGE",
    "EVENT_GIFT_CARD_CREATED",
    "EVENT_GIFT_CARD_REDEEMED",
    "EscrowLedger",
    "GiftCardEntry",
    "LedgerEvent",
    "StableToken",
]
