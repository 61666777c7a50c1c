from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from unwrap_api.models.gift_card import GiftCardStatusEnum, GiftCardTemplateEnum
from unwrap_api.services.ledger.units import to_wei

GiftCardStatus = Literal["pending", "redeemed", "expired"]
GiftCardTemplate = Literal["default", "birthday", "holiday"]


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)


class GiftCardCreateRequest(_CamelModel):
    """Off-chain record for a gift card whose ledger entry already exists."""

    redemption_code: str = Field(..., min_length=1, max_length=19)
    code_hash: str | None = Field(default=None, max_length=66)
    amount: str
    creator: str | None = Field(default=None, max_length=42)
    sender: str | None = Field(default=None, max_length=42)
    recipient_email: str | None = None
    message: str | None = Field(default=None, max_length=1000)
    template: GiftCardTemplate = "default"
    transaction_hash: str | None = Field(default=None, max_length=66)
    block_number: int | None = Field(default=None, ge=0)

    @field_validator("amount")
    @classmethod
    def _validate_amount(cls, value: str) -> str:
        if to_wei(value) <= 0:
            raise ValueError("Amount must be greater than 0")
        return value.strip()

    @model_validator(mode="after")
    def _resolve_creator(self) -> "GiftCardCreateRequest":
        if not self.creator and not self.sender:
            raise ValueError("creator (or sender) is required")
        self.creator = self.creator or self.sender
        return self

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude={"sender"})


class GiftCardUpdateRequest(_CamelModel):
    status: GiftCardStatus | None = None
    recipient_email: str | None = None
    message: str | None = Field(default=None, max_length=1000)
    template: GiftCardTemplate | None = None
    redeemed_at: datetime | None = None
    redeemed_by: str | None = Field(default=None, max_length=42)
    block_number: int | None = Field(default=None, ge=0)
    transaction_hash: str | None = Field(default=None, max_length=66)
    redemption_block_number: int | None = Field(default=None, ge=0)
    redemption_transaction_hash: str | None = Field(default=None, max_length=66)


class GiftCardResponse(_CamelModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, from_attributes=True)

    id: UUID
    redemption_code: str | None
    code_hash: str
    amount: str
    creator: str
    sender: str | None = None
    recipient_email: str | None = None
    message: str | None = None
    template: GiftCardTemplateEnum
    status: GiftCardStatusEnum
    created_at: datetime
    redeemed_at: datetime | None = None
    redeemed_by: str | None = None
    block_number: int | None = None
    transaction_hash: str | None = None
    redemption_block_number: int | None = None
    redemption_transaction_hash: str | None = None

    @model_validator(mode="after")
    def _echo_sender(self) -> "GiftCardResponse":
        self.sender = self.creator
        return self


class GiftCardDetailsResponse(GiftCardResponse):
    valid: bool | None = Field(default=None, description="Live ledger validity; null when the ledger is unreachable")
    blockchain_amount: str | None = None


class GiftCardCodeRequest(_CamelModel):
    code: str | None = None


class GiftCardCheckResponse(_CamelModel):
    exists: bool
    status: GiftCardStatusEnum
    amount: str
    code_hash: str
    created_at: datetime
    redeemed_at: datetime | None = None
    redeemed_by: str | None = None
    transaction_hash: str | None = None
    redemption_transaction_hash: str | None = None


class GiftCardRedeemRequest(_CamelModel):
    code: str | None = None
    redeemer: str | None = None
    redemption_transaction_hash: str | None = Field(default=None, max_length=66)
    redemption_block_number: int | None = Field(default=None, ge=0)


class MessageResponse(_CamelModel):
    message: str


class GiftCardEmailRequest(_CamelModel):
    to: str | None = None
    redemption_code: str | None = None
    amount: str | None = None
    sender: str | None = None
    message: str | None = Field(default=None, max_length=1000)
    template: str | None = None


class GiftCardSyncResponse(_CamelModel):
    from_block: int
    synced_to_block: int
    created: int
    backfilled: int
    redeemed: int
    skipped: int
    expired: int


class ContractFunctions(_CamelModel):
    calculate_fee: int | None = None
    fee_percentage: int | None = None
    fee_collector: str | None = None
    cusd_token: str | None = Field(default=None, alias="cUSDToken")


class ContractVerificationResponse(_CamelModel):
    address: str
    is_contract: bool
    functions: ContractFunctions
