"""Escrow ledger: contract model, client seam and web3 adapter."""

from unwrap_api.core.settings import Settings

from .client import InMemoryLedgerClient, LedgerClient, TransactionReceipt
from .contract import (
    EVENT_GIFT_CARD_CREATED,
    EVENT_GIFT_CARD_REDEEMED,
    EscrowLedger,
    GiftCardEntry,
    LedgerEvent,
    StableToken,
)
from .errors import (
    InsufficientGasFundsError,
    InvalidAmountError,
    LedgerError,
    LedgerRevertError,
    LedgerUnavailableError,
    ReceiptTimeoutError,
    TransactionRejectedError,
)
from .units import format_wei, hash_redemption_code, to_wei


def build_ledger_client(settings: Settings) -> LedgerClient:
    """Return the ledger client selected by ``settings.ledger_backend``."""

    if settings.ledger_backend == "web3":
        from .web3_client import Web3LedgerClient

        return Web3LedgerClient.from_settings(settings)
    return InMemoryLedgerClient.from_settings(settings)


__all__ = [
    "EVENT_GIFT_CARD_CREATED",
    "EVENT_GIFT_CARD_REDEEMED",
    "EscrowLedger",
    "GiftCardEntry",
    "InMemoryLedgerClient",
    "InsufficientGasFundsError",
    "InvalidAmountError",
    "LedgerClient",
    "LedgerError",
    "LedgerEvent",
    "LedgerRevertError",
    "LedgerUnavailableError",
    "ReceiptTimeoutError",
    "StableToken",
    "TransactionReceipt",
    "TransactionRejectedError",
    "build_ledger_client",
    "format_wei",
    "hash_redemption_code",
    "to_wei",
]
