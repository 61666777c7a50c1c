"""Exception taxonomy shared by every ledger client implementation."""

from __future__ import annotations


class LedgerError(RuntimeError):
    """Base exception for ledger interaction failures."""


class LedgerRevertError(LedgerError):
    """Raised when the contract (or token) rejects a call with a revert reason."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"execution reverted: {reason}")
        self.reason = reason


class TransactionRejectedError(LedgerError):
    """Raised when the signer refuses to sign or submit a transaction."""


class InsufficientGasFundsError(LedgerError):
    """Raised when the sender cannot pay for gas."""


class ReceiptTimeoutError(LedgerError):
    """Raised when a transaction receipt does not arrive within the configured bound."""


class LedgerUnavailableError(LedgerError):
    """Raised for transport-level failures talking to the node."""


class InvalidAmountError(ValueError):
    """Raised when a human cUSD amount cannot be converted into wei."""


# Contract revert reasons, verbatim from the escrow contract.
REVERT_ZERO_AMOUNT = "Amount must be greater than 0"
REVERT_CODE_USED = "Code already used"
REVERT_NOT_FOUND = "Gift card does not exist"
REVERT_ALREADY_REDEEMED = "Gift card already redeemed"
REVERT_INSUFFICIENT_ALLOWANCE = "ERC20: insufficient allowance"
REVERT_INSUFFICIENT_BALANCE = "ERC20: transfer amount exceeds balance"
REVERT_NOT_OWNER = "Ownable: caller is not the owner"

__all__ = [
    "LedgerError",
    "LedgerRevertError",
    "TransactionRejectedError",
    "InsufficientGasFundsError",
    "ReceiptTimeoutError",
    "LedgerUnavailableError",
    "InvalidAmountError",
    "REVERT_ZERO_AMOUNT",
    "REVERT_CODE_USED",
    "REVERT_NOT_FOUND",
    "REVERT_ALREADY_REDEEMED",
    "REVERT_INSUFFICIENT_ALLOWANCE",
    "REVERT_INSUFFICIENT_BALANCE",
    "REVERT_NOT_OWNER",
]
