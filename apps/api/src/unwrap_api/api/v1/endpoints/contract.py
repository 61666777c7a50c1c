"""API endpoint for verifying the escrow contract deployment and fee settings."""

from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from unwrap_api.api.dependencies.services import get_ledger_client
from unwrap_api.schemas.gift_card import ContractFunctions, ContractVerificationResponse
from unwrap_api.services.ledger.client import LedgerClient
from unwrap_api.services.ledger.errors import LedgerError
from unwrap_api.services.ledger.units import to_wei

router = APIRouter(tags=["Contract"])

T = TypeVar("T")

ONE_CUSD_WEI = to_wei("1")


async def _best_effort(label: str, read: Callable[[], Awaitable[T]]) -> T | None:
    try:
        return await read()
    except LedgerError as exc:
        logger.warning("Contract read failed", function=label, error=str(exc))
        return None


@router.get("/contract/verify", response_model=ContractVerificationResponse)
async def verify_contract(ledger: LedgerClient = Depends(get_ledger_client)) -> ContractVerificationResponse:
    """Confirm the escrow contract is deployed and report its fee configuration."""

    try:
        code = await ledger.get_code()
    except LedgerError as exc:
        logger.exception("Error verifying contract", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to verify contract",
        ) from exc
    if not code:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No contract found at {ledger.contract_address}",
        )

    functions = ContractFunctions(
        fee_percentage=await _best_effort("feePercentage", ledger.fee_percentage),
        fee_collector=await _best_effort("feeCollector", ledger.fee_collector),
        cusd_token=await _best_effort("cUSDToken", ledger.token_address),
        calculate_fee=await _best_effort("calculateFee", lambda: ledger.calculate_fee(ONE_CUSD_WEI)),
    )
    return ContractVerificationResponse(
        address=ledger.contract_address,
        is_contract=True,
        functions=functions,
    )
