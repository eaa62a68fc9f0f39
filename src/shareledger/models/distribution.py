"""Distribution models — fee breakdowns, distributions, settlement results.

A distribution is created once per revenue event and then only moves
forward: holders are marked claimed, total_claimed grows, and the state
goes CREATED → COMPLETED exactly once.

Invariants:
- platform_fee + manager_fee + net_amount == gross_amount
- sum(allocations) + dust == net_amount
- total_claimed == sum(allocations of claimed holders)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


class DistributionState(str, enum.Enum):
    """Lifecycle state of a distribution.

    State machine:
        CREATED → COMPLETED
    No cancellation or expiry state exists.
    """
    CREATED = "created"
    COMPLETED = "completed"


DISTRIBUTION_TRANSITIONS: Dict[DistributionState, frozenset] = {
    DistributionState.CREATED: frozenset({DistributionState.COMPLETED}),
    DistributionState.COMPLETED: frozenset(),
}


class DenominatorPolicy(str, enum.Enum):
    """Which share count divides net revenue between holders.

    TOTAL_SUPPLY divides by every issued share, including unsold treasury
    shares; the unsold fraction stays behind as dust. HELD_SHARES divides
    only by shares actually held by investors.
    """
    TOTAL_SUPPLY = "total_supply"
    HELD_SHARES = "held_shares"


@dataclass(frozen=True)
class FeeBreakdown:
    """Fee split of a gross revenue amount.

    Invariant: platform_fee + manager_fee + net_amount == gross_amount
    """
    gross_amount: int
    platform_fee_bp: int
    manager_fee_bp: int
    platform_fee: int
    manager_fee: int
    net_amount: int


@dataclass
class Distribution:
    """One revenue-sharing event for an asset.

    Mutable only through the engine: ``claimed``, ``total_claimed``,
    ``state`` and ``completed_utc``. Allocations are fixed at creation.
    """
    distribution_id: int
    asset_id: str
    gross_amount: int
    platform_fee: int
    manager_fee: int
    net_amount: int
    share_denominator: int
    denominator_policy: DenominatorPolicy
    allocations: Dict[str, int]
    investor_snapshot: tuple[str, ...]
    claimed: set[str] = field(default_factory=set)
    total_claimed: int = 0
    state: DistributionState = DistributionState.CREATED
    created_utc: Optional[datetime] = None
    completed_utc: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        return self.state == DistributionState.COMPLETED

    @property
    def allocated(self) -> int:
        return sum(self.allocations.values())

    @property
    def dust(self) -> int:
        return self.net_amount - self.allocated

    @property
    def payable_holders(self) -> list[str]:
        """Holders with a nonzero allocation, in snapshot order."""
        return [h for h, amount in self.allocations.items() if amount > 0]

    @property
    def unclaimed(self) -> int:
        return self.allocated - self.total_claimed

    def allocation_of(self, holder_id: str) -> int:
        return self.allocations.get(holder_id, 0)

    def is_fully_claimed(self) -> bool:
        return all(h in self.claimed for h in self.payable_holders)

    def transition_to(self, new_state: DistributionState) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = DISTRIBUTION_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid distribution transition: {self.state.value} → {new_state.value}"
            )
        self.state = new_state

    def to_dict(self) -> dict[str, Any]:
        return {
            "distribution_id": self.distribution_id,
            "asset_id": self.asset_id,
            "gross_amount": self.gross_amount,
            "platform_fee": self.platform_fee,
            "manager_fee": self.manager_fee,
            "net_amount": self.net_amount,
            "share_denominator": self.share_denominator,
            "denominator_policy": self.denominator_policy.value,
            # list of pairs keeps snapshot order explicit on disk
            "allocations": [[h, a] for h, a in self.allocations.items()],
            "investor_snapshot": list(self.investor_snapshot),
            "claimed": sorted(self.claimed),
            "total_claimed": self.total_claimed,
            "state": self.state.value,
            "created_utc": self.created_utc.isoformat() if self.created_utc else None,
            "completed_utc": (
                self.completed_utc.isoformat() if self.completed_utc else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Distribution:
        created = data.get("created_utc")
        completed = data.get("completed_utc")
        return cls(
            distribution_id=data["distribution_id"],
            asset_id=data["asset_id"],
            gross_amount=data["gross_amount"],
            platform_fee=data["platform_fee"],
            manager_fee=data["manager_fee"],
            net_amount=data["net_amount"],
            share_denominator=data["share_denominator"],
            denominator_policy=DenominatorPolicy(data["denominator_policy"]),
            allocations={h: a for h, a in data["allocations"]},
            investor_snapshot=tuple(data["investor_snapshot"]),
            claimed=set(data["claimed"]),
            total_claimed=data["total_claimed"],
            state=DistributionState(data["state"]),
            created_utc=datetime.fromisoformat(created) if created else None,
            completed_utc=datetime.fromisoformat(completed) if completed else None,
        )


@dataclass(frozen=True)
class ClaimReceipt:
    distribution_id: int
    holder_id: str
    amount: int
    completed: bool


@dataclass(frozen=True)
class HolderEntitlement:
    """A holder's line in one distribution."""
    distribution_id: int
    asset_id: str
    allocation: int
    claimed: bool


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one bounded batch settlement call.

    ``next_offset`` is where the following call should start;
    ``exhausted`` is True once the slice reached the end of the snapshot.
    """
    distribution_id: int
    paid_count: int
    paid_amount: int
    next_offset: int
    exhausted: bool
    completed: bool
