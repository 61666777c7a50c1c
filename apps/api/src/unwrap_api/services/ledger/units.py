"""cUSD unit conversion and code hashing."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from web3 import Web3

from .errors import InvalidAmountError

CUSD_DECIMALS = 18


def to_wei(amount: str | Decimal | int) -> int:
    """Convert a human cUSD amount (``"100.5"``) into integer wei."""

    if isinstance(amount, bool):
        raise InvalidAmountError("Amount must be numeric")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise InvalidAmountError(f"Invalid amount: {amount!r}") from exc

    if not value.is_finite():
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise InvalidAmountError("Amount must not be negative")
    exponent = value.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -CUSD_DECIMALS:
        raise InvalidAmountError(f"Amount supports at most {CUSD_DECIMALS} decimal places")

    try:
        return int(Web3.to_wei(value, "ether"))
    except ValueError as exc:
        raise InvalidAmountError(f"Amount out of range: {amount!r}") from exc


def format_wei(amount_wei: int) -> str:
    """Render integer wei as the shortest exact decimal string (``"100.5"``)."""

    value = Web3.from_wei(amount_wei, "ether")
    text = format(Decimal(value), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def hash_redemption_code(code: str) -> str:
    """keccak-256 of the UTF-8 code, as a ``0x``-prefixed bytes32 hex string."""

    return "0x" + bytes(Web3.keccak(text=code)).hex()


def normalize_hash(value: str | bytes) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = value.lower()
    return text if text.startswith("0x") else f"0x{text}"


__all__ = ["CUSD_DECIMALS", "to_wei", "format_wei", "hash_redemption_code", "normalize_hash"]
