"""HTTP gateway to the gift card API for callers outside the service process."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from unwrap_api.services.notifications.service import NotificationDeliveryError

from .records import GiftCardSnapshot
from .store import DuplicateGiftCardError, GiftCardStoreError


class GiftCardApiClient:
    """Implements both the records gateway and the notifier against ``/api``."""

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    async def create_record(
        self,
        *,
        redemption_code: str,
        code_hash: str,
        amount: str,
        creator: str,
        recipient_email: str | None,
        message: str | None,
        template: str,
        transaction_hash: str | None,
        block_number: int | None,
    ) -> GiftCardSnapshot:
        payload = {
            "redemptionCode": redemption_code,
            "codeHash": code_hash,
            "amount": amount,
            "creator": creator,
            "recipientEmail": recipient_email,
            "message": message,
            "template": template,
            "transactionHash": transaction_hash,
            "blockNumber": block_number,
        }
        response = await self._request("POST", "/api/gift-cards", json=payload)
        if response.status_code == 409:
            raise DuplicateGiftCardError("Gift card code already exists")
        if response.status_code >= 400:
            raise GiftCardStoreError(_error_detail(response))
        return GiftCardSnapshot.from_payload(response.json())

    async def find_record(self, code: str) -> GiftCardSnapshot | None:
        response = await self._request("GET", "/api/gift-cards", params={"code": code})
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise GiftCardStoreError(_error_detail(response))
        return GiftCardSnapshot.from_payload(response.json())

    async def mark_redeemed(
        self,
        code: str,
        redeemer: str,
        *,
        transaction_hash: str | None = None,
        block_number: int | None = None,
    ) -> GiftCardSnapshot | None:
        payload = {
            "code": code,
            "redeemer": redeemer,
            "redemptionTransactionHash": transaction_hash,
            "redemptionBlockNumber": block_number,
        }
        response = await self._request("POST", "/api/gift-cards/redeem", json=payload)
        if response.status_code == 400:
            return None
        if response.status_code >= 400:
            raise GiftCardStoreError(_error_detail(response))
        return GiftCardSnapshot.from_payload(response.json())

    async def send_gift_card_email(
        self,
        to: str,
        redemption_code: str,
        amount: str,
        sender: str,
        message: str | None = None,
        template: str = "default",
    ) -> None:
        payload = {
            "to": to,
            "redemptionCode": redemption_code,
            "amount": amount,
            "sender": sender,
            "message": message,
            "template": template,
        }
        try:
            response = await self._request("POST", "/api/email", json=payload)
        except GiftCardStoreError as exc:
            raise NotificationDeliveryError(str(exc)) from exc
        if response.status_code >= 400:
            raise NotificationDeliveryError(_error_detail(response))

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_client = True

        try:
            return await client.request(method, f"{self._base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.exception("Gift card API request failed", method=method, path=path, error=str(exc))
            raise GiftCardStoreError(f"Gift card API unreachable: {exc}") from exc
        finally:
            if close_client:
                await client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"HTTP {response.status_code}"


__all__ = ["GiftCardApiClient"]
