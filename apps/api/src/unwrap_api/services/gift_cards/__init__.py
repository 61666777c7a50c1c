"""Gift card records, ledger reconciliation and create/redeem orchestration."""

from .codes import generate_redemption_code, normalize_redemption_code
from .flow import FlowState, FlowStateError, FlowStateMachine, InvalidFlowTransitionError
from .orchestrator import (
    ApproveResult,
    CreateErrorCode,
    CreateGiftCardResult,
    GiftCardCheckResult,
    GiftCardOrchestrator,
    RedeemGiftCardResult,
    RedeemStatus,
    Wallet,
)
from .records import GiftCardNotifier, GiftCardRecords, GiftCardSnapshot, StoreGiftCardRecords
from .store import (
    DuplicateGiftCardError,
    GiftCardStore,
    GiftCardStoreError,
)
from .sync import SyncSummary, sync_gift_card_events

__all__ = [
    "ApproveResult",
    "CreateErrorCode",
    "CreateGiftCardResult",
    "DuplicateGiftCardError",
    "FlowState",
    "FlowStateError",
    "FlowStateMachine",
    "GiftCardCheckResult",
    "GiftCardNotifier",
    "GiftCardOrchestrator",
    "GiftCardRecords",
    "GiftCardSnapshot",
    "GiftCardStore",
    "GiftCardStoreError",
    "InvalidFlowTransitionError",
    "RedeemGiftCardResult",
    "RedeemStatus",
    "StoreGiftCardRecords",
    "SyncSummary",
    "Wallet",
    "generate_redemption_code",
    "normalize_redemption_code",
    "sync_gift_card_events",
]
