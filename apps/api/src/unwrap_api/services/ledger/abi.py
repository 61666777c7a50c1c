"""ABI fragments for the Unwrap escrow contract and the cUSD ERC-20 token."""

from __future__ import annotations

from typing import Any


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[tuple[str, str]],
    mutability: str,
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": arg, "type": kind, "internalType": kind} for arg, kind in inputs],
        "outputs": [{"name": arg, "type": kind, "internalType": kind} for arg, kind in outputs],
    }


def _event(name: str, actor: str) -> dict[str, Any]:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [
            {"name": actor, "type": "address", "internalType": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "internalType": "uint256", "indexed": False},
            {"name": "codeHash", "type": "bytes32", "internalType": "bytes32", "indexed": False},
        ],
    }


UNWRAP_ABI: list[dict[str, Any]] = [
    _fn("createGiftCard", [("codeHash", "bytes32"), ("amount", "uint256")], [], "nonpayable"),
    _fn("redeemGiftCard", [("code", "string")], [], "nonpayable"),
    _fn(
        "checkGiftCard",
        [("codeHash", "bytes32")],
        [("valid", "bool"), ("amount", "uint256")],
        "view",
    ),
    _fn(
        "giftCards",
        [("", "bytes32")],
        [("amount", "uint256"), ("creator", "address"), ("redeemed", "bool")],
        "view",
    ),
    _fn("calculateFee", [("amount", "uint256")], [("", "uint256")], "view"),
    _fn("feePercentage", [], [("", "uint256")], "view"),
    _fn("feeCollector", [], [("", "address")], "view"),
    _fn("cUSDToken", [], [("", "address")], "view"),
    _event("GiftCardCreated", "creator"),
    _event("GiftCardRedeemed", "redeemer"),
]

ERC20_ABI: list[dict[str, Any]] = [
    _fn("balanceOf", [("account", "address")], [("", "uint256")], "view"),
    _fn("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")], "view"),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")], "nonpayable"),
]

__all__ = ["UNWRAP_ABI", "ERC20_ABI"]
