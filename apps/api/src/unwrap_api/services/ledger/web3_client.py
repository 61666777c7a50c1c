"""Ledger client for the deployed Unwrap contract on Celo, driven through web3.py."""

from __future__ import annotations

from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from unwrap_api.core.settings import Settings

from .abi import ERC20_ABI, UNWRAP_ABI
from .client import TransactionReceipt
from .contract import LedgerEvent
from .errors import (
    InsufficientGasFundsError,
    LedgerError,
    LedgerRevertError,
    LedgerUnavailableError,
    ReceiptTimeoutError,
    TransactionRejectedError,
)
from .units import normalize_hash

_TRANSPORT_ERRORS = (Web3Exception, ValueError, OSError)


def _to_bytes32(code_hash: str) -> bytes:
    return bytes.fromhex(normalize_hash(code_hash)[2:])


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


def translate_error(exc: BaseException) -> LedgerError:
    """Map web3/provider exceptions onto the ledger exception taxonomy."""

    if isinstance(exc, LedgerError):
        return exc
    if isinstance(exc, TimeExhausted):
        return ReceiptTimeoutError(str(exc))
    if isinstance(exc, ContractLogicError):
        message = getattr(exc, "message", None) or str(exc)
        reason = message.split("execution reverted:", 1)[-1].strip() or message
        return LedgerRevertError(reason)

    text = str(exc).lower()
    if "user rejected" in text or "user denied" in text:
        return TransactionRejectedError(str(exc))
    if "insufficient funds" in text or "out of gas" in text:
        return InsufficientGasFundsError(str(exc))
    if "execution reverted" in text:
        return LedgerRevertError(str(exc).split("execution reverted:", 1)[-1].strip())
    return LedgerUnavailableError(str(exc))


class Web3LedgerClient:
    """Reads and signs against a live node with a single local signer."""

    def __init__(
        self,
        w3: AsyncWeb3,
        *,
        contract_address: str,
        token_address: str,
        chain_id: int,
        signer: LocalAccount | None = None,
        receipt_timeout_seconds: float = 120.0,
    ) -> None:
        self._w3 = w3
        self._chain_id = chain_id
        self._signer = signer
        self._receipt_timeout = receipt_timeout_seconds
        self.contract_address = Web3.to_checksum_address(contract_address)
        self._token_address = Web3.to_checksum_address(token_address)
        self._contract = w3.eth.contract(address=self.contract_address, abi=UNWRAP_ABI)
        self._token = w3.eth.contract(address=self._token_address, abi=ERC20_ABI)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3LedgerClient":
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.celo_rpc_url))
        signer: LocalAccount | None = None
        if settings.signer_private_key:
            signer = Account.from_key(settings.signer_private_key)
        logger.info(
            "Web3 ledger client configured",
            rpc_url=settings.celo_rpc_url,
            contract=settings.unwrap_contract_address,
            signer=signer.address if signer else None,
        )
        return cls(
            w3,
            contract_address=settings.unwrap_contract_address,
            token_address=settings.cusd_token_address,
            chain_id=settings.chain_id,
            signer=signer,
            receipt_timeout_seconds=settings.receipt_timeout_seconds,
        )

    @property
    def signer_address(self) -> str | None:
        return self._signer.address if self._signer else None

    async def get_block_number(self) -> int:
        try:
            return int(await self._w3.eth.block_number)
        except _TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc

    async def get_code(self) -> bytes:
        try:
            return bytes(await self._w3.eth.get_code(self.contract_address))
        except _TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc

    async def calculate_fee(self, amount_wei: int) -> int:
        return int(await self._call(self._contract.functions.calculateFee(amount_wei)))

    async def fee_percentage(self) -> int:
        return int(await self._call(self._contract.functions.feePercentage()))

    async def fee_collector(self) -> str:
        return str(await self._call(self._contract.functions.feeCollector()))

    async def token_address(self) -> str:
        return str(await self._call(self._contract.functions.cUSDToken()))

    async def check_gift_card(self, code_hash: str) -> tuple[bool, int]:
        valid, amount = await self._call(self._contract.functions.checkGiftCard(_to_bytes32(code_hash)))
        return bool(valid), int(amount)

    async def allowance(self, owner: str) -> int:
        return int(
            await self._call(
                self._token.functions.allowance(Web3.to_checksum_address(owner), self.contract_address)
            )
        )

    async def balance_of(self, owner: str) -> int:
        return int(await self._call(self._token.functions.balanceOf(Web3.to_checksum_address(owner))))

    async def approve(self, owner: str, amount_wei: int) -> str:
        return await self._transact(owner, self._token.functions.approve(self.contract_address, amount_wei))

    async def create_gift_card(self, sender: str, code_hash: str, amount_wei: int) -> str:
        return await self._transact(
            sender,
            self._contract.functions.createGiftCard(_to_bytes32(code_hash), amount_wei),
        )

    async def redeem_gift_card(self, sender: str, code: str) -> str:
        return await self._transact(sender, self._contract.functions.redeemGiftCard(code))

    async def wait_for_transaction_receipt(
        self,
        transaction_hash: str,
        *,
        timeout: float | None = None,
    ) -> TransactionReceipt:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                transaction_hash,
                timeout=timeout or self._receipt_timeout,
            )
        except _TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc
        return TransactionReceipt(
            transaction_hash=_hex(receipt["transactionHash"]),
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
        )

    async def get_events(self, name: str, *, from_block: int, to_block: int) -> list[LedgerEvent]:
        event = getattr(self._contract.events, name)()
        try:
            logs = await event.get_logs(from_block=from_block, to_block=to_block)
        except _TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc

        decoded: list[LedgerEvent] = []
        for log in logs:
            args = dict(log["args"])
            for key in ("creator", "redeemer"):
                if args.get(key):
                    args[key] = str(args[key]).lower()
            if args.get("codeHash") is not None:
                args["codeHash"] = normalize_hash(args["codeHash"])
            decoded.append(
                LedgerEvent(
                    name=name,
                    args=args,
                    block_number=int(log["blockNumber"]),
                    transaction_hash=_hex(log["transactionHash"]),
                    log_index=int(log.get("logIndex", 0)),
                )
            )
        return decoded

    async def _call(self, fn: Any) -> Any:
        try:
            return await fn.call()
        except _TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc

    async def _transact(self, sender: str, fn: Any) -> str:
        signer = self._require_signer(sender)
        try:
            nonce = await self._w3.eth.get_transaction_count(signer.address)
            transaction = await fn.build_transaction(
                {"from": signer.address, "nonce": nonce, "chainId": self._chain_id}
            )
            signed = signer.sign_transaction(transaction)
            transaction_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except _TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc
        return _hex(transaction_hash)

    def _require_signer(self, sender: str) -> LocalAccount:
        if self._signer is None or self._signer.address.lower() != sender.lower():
            raise TransactionRejectedError(f"user rejected: no signer available for {sender}")
        return self._signer


__all__ = ["Web3LedgerClient", "translate_error"]
