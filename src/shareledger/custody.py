"""Custody — funds held by the platform on behalf of assets and holders.

Four pools, each keyed by what it belongs to:

- liquidity[asset_id]: purchase proceeds, used to pay out share sales.
- pending_revenue[asset_id]: deposited revenue not yet distributed.
- escrow[distribution_id]: net revenue of a distribution not yet paid.
- dust[asset_id]: unattributed rounding remainder, informational.

Outgoing money is never "sent" from here. Each transfer appends an
immutable Payout to an append-only outbox; settling the outbox against a
real payment rail is outside this package. Because the outbox is part of
custody state, a rolled-back operation also rolls back its payouts.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from shareledger.errors import InsufficientLiquidity


class PayoutReason(str, enum.Enum):
    PURCHASE_REFUND = "purchase_refund"
    SALE_PROCEEDS = "sale_proceeds"
    PLATFORM_FEE = "platform_fee"
    MANAGER_FEE = "manager_fee"
    DISTRIBUTION_CLAIM = "distribution_claim"


@dataclass(frozen=True)
class Payout:
    """A single outgoing transfer. Immutable once recorded."""
    payout_id: str
    payee_id: str
    amount: int
    reason: PayoutReason
    reference: str
    timestamp_utc: datetime


class Custody:
    """Integer fund pools plus the payout outbox.

    Every method takes the custody lock, so read-modify-write on a pool
    is atomic even when different assets are processed concurrently.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._liquidity: Dict[str, int] = {}
        self._pending_revenue: Dict[str, int] = {}
        self._escrow: Dict[int, int] = {}
        self._dust: Dict[str, int] = {}
        self._payouts: List[Payout] = []

    # ------------------------------------------------------------------
    # Sale liquidity
    # ------------------------------------------------------------------

    def liquidity(self, asset_id: str) -> int:
        return self._liquidity.get(asset_id, 0)

    def credit_liquidity(self, asset_id: str, amount: int) -> None:
        with self._lock:
            self._liquidity[asset_id] = self._liquidity.get(asset_id, 0) + amount

    def debit_liquidity(self, asset_id: str, amount: int) -> None:
        with self._lock:
            held = self._liquidity.get(asset_id, 0)
            if amount > held:
                raise InsufficientLiquidity(
                    f"Asset {asset_id} holds {held}, cannot pay {amount}"
                )
            self._liquidity[asset_id] = held - amount

    # ------------------------------------------------------------------
    # Pending revenue
    # ------------------------------------------------------------------

    def pending_revenue(self, asset_id: str) -> int:
        return self._pending_revenue.get(asset_id, 0)

    def credit_revenue(self, asset_id: str, amount: int) -> None:
        with self._lock:
            self._pending_revenue[asset_id] = self._pending_revenue.get(asset_id, 0) + amount

    def debit_revenue(self, asset_id: str, amount: int) -> None:
        with self._lock:
            held = self._pending_revenue.get(asset_id, 0)
            if amount > held:
                raise InsufficientLiquidity(
                    f"Asset {asset_id} has {held} pending revenue, cannot distribute {amount}"
                )
            self._pending_revenue[asset_id] = held - amount

    # ------------------------------------------------------------------
    # Distribution escrow and dust
    # ------------------------------------------------------------------

    def escrowed(self, distribution_id: int) -> int:
        return self._escrow.get(distribution_id, 0)

    def fund_distribution(self, distribution_id: int, amount: int) -> None:
        with self._lock:
            self._escrow[distribution_id] = self._escrow.get(distribution_id, 0) + amount

    def release_from_distribution(self, distribution_id: int, amount: int) -> None:
        with self._lock:
            held = self._escrow.get(distribution_id, 0)
            if amount > held:
                raise InsufficientLiquidity(
                    f"Distribution {distribution_id} escrow holds {held}, cannot release {amount}"
                )
            self._escrow[distribution_id] = held - amount

    def dust(self, asset_id: str) -> int:
        return self._dust.get(asset_id, 0)

    def record_dust(self, asset_id: str, amount: int) -> None:
        with self._lock:
            self._dust[asset_id] = self._dust.get(asset_id, 0) + amount

    # ------------------------------------------------------------------
    # Payout outbox
    # ------------------------------------------------------------------

    def pay(
        self,
        payee_id: str,
        amount: int,
        reason: PayoutReason,
        reference: str,
        now: Optional[datetime] = None,
    ) -> Optional[Payout]:
        """Append a payout to the outbox. Zero amounts are not recorded."""
        if amount < 0:
            raise ValueError(f"Payout amount must not be negative, got {amount}")
        if amount == 0:
            return None
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            payout = Payout(
                payout_id=f"payout-{len(self._payouts) + 1:06d}",
                payee_id=payee_id,
                amount=amount,
                reason=reason,
                reference=reference,
                timestamp_utc=now,
            )
            self._payouts.append(payout)
            return payout

    def payouts(
        self,
        payee_id: Optional[str] = None,
        reason: Optional[PayoutReason] = None,
    ) -> List[Payout]:
        result = list(self._payouts)
        if payee_id is not None:
            result = [p for p in result if p.payee_id == payee_id]
        if reason is not None:
            result = [p for p in result if p.reason == reason]
        return result

    def total_paid(
        self,
        payee_id: Optional[str] = None,
        reason: Optional[PayoutReason] = None,
    ) -> int:
        return sum(p.amount for p in self.payouts(payee_id, reason))

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "liquidity": dict(self._liquidity),
            "pending_revenue": dict(self._pending_revenue),
            # JSON object keys are strings
            "escrow": {str(k): v for k, v in self._escrow.items()},
            "dust": dict(self._dust),
            "payouts": [
                {
                    "payout_id": p.payout_id,
                    "payee_id": p.payee_id,
                    "amount": p.amount,
                    "reason": p.reason.value,
                    "reference": p.reference,
                    "timestamp_utc": p.timestamp_utc.isoformat(),
                }
                for p in self._payouts
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Custody:
        custody = cls()
        custody._liquidity = dict(data.get("liquidity", {}))
        custody._pending_revenue = dict(data.get("pending_revenue", {}))
        custody._escrow = {int(k): v for k, v in data.get("escrow", {}).items()}
        custody._dust = dict(data.get("dust", {}))
        custody._payouts = [
            Payout(
                payout_id=p["payout_id"],
                payee_id=p["payee_id"],
                amount=p["amount"],
                reason=PayoutReason(p["reason"]),
                reference=p["reference"],
                timestamp_utc=datetime.fromisoformat(p["timestamp_utc"]),
            )
            for p in data.get("payouts", [])
        ]
        return custody
