"""In-memory observability helper for gift card flows and ledger event sync."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class SyncRunLog:
    last_run_at: datetime | None = None
    last_success_at: datetime | None = None
    last_synced_block: int | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


@dataclass
class GiftCardObservabilitySnapshot:
    create_totals: Dict[str, int]
    redeem_totals: Dict[str, int]
    sync_totals: Dict[str, int]
    sync_runs: SyncRunLog

    def as_dict(self) -> Dict[str, object]:
        return {
            "create": {"totals": self.create_totals},
            "redeem": {"totals": self.redeem_totals},
            "sync": {
                "totals": self.sync_totals,
                "runs": {
                    "last_run_at": _iso(self.sync_runs.last_run_at),
                    "last_success_at": _iso(self.sync_runs.last_success_at),
                    "last_synced_block": self.sync_runs.last_synced_block,
                    "last_failure_at": _iso(self.sync_runs.last_failure_at),
                    "last_failure_reason": self.sync_runs.last_failure_reason,
                },
            },
        }


@dataclass
class GiftCardObservabilityStore:
    _lock: Lock = field(default_factory=Lock)
    _create_totals: Counter = field(default_factory=Counter)
    _redeem_totals: Counter = field(default_factory=Counter)
    _sync_totals: Counter = field(default_factory=Counter)
    _sync_runs: SyncRunLog = field(default_factory=SyncRunLog)

    def record_create(self, outcome: str) -> None:
        """``outcome`` is ``succeeded`` or a create error code."""

        with self._lock:
            self._create_totals[outcome] += 1

    def record_redeem(self, status: str) -> None:
        with self._lock:
            self._redeem_totals[status] += 1

    def record_sync_success(self, counts: Dict[str, int]) -> None:
        with self._lock:
            now = _utcnow()
            self._sync_totals["runs"] += 1
            for key in ("created", "backfilled", "redeemed", "skipped", "expired"):
                self._sync_totals[key] += counts.get(key, 0)
            self._sync_runs.last_run_at = now
            self._sync_runs.last_success_at = now
            self._sync_runs.last_synced_block = counts.get("synced_to_block")

    def record_sync_failure(self, reason: str) -> None:
        with self._lock:
            now = _utcnow()
            self._sync_totals["failed"] += 1
            self._sync_runs.last_run_at = now
            self._sync_runs.last_failure_at = now
            self._sync_runs.last_failure_reason = reason

    def snapshot(self) -> GiftCardObservabilitySnapshot:
        with self._lock:
            runs = SyncRunLog(
                last_run_at=self._sync_runs.last_run_at,
                last_success_at=self._sync_runs.last_success_at,
                last_synced_block=self._sync_runs.last_synced_block,
                last_failure_at=self._sync_runs.last_failure_at,
                last_failure_reason=self._sync_runs.last_failure_reason,
            )
            return GiftCardObservabilitySnapshot(
                create_totals=dict(self._create_totals),
                redeem_totals=dict(self._redeem_totals),
                sync_totals=dict(self._sync_totals),
                sync_runs=runs,
            )

    def reset(self) -> None:
        with self._lock:
            self._create_totals.clear()
            self._redeem_totals.clear()
            self._sync_totals.clear()
            self._sync_runs = SyncRunLog()


_GIFT_CARD_STORE = GiftCardObservabilityStore()


def get_gift_card_store() -> GiftCardObservabilityStore:
    return _GIFT_CARD_STORE
