"""Distribution engine — turns deposited revenue into per-holder payouts.

Flow for one revenue event:

    deposit_revenue      manager puts funds into the asset's pending pool
    create_distribution  fees split off and paid, holders snapshotted,
                         allocations fixed, net moved into escrow
    claim_distribution   a holder pulls their allocation (once)
    batch_distribute     the operator pushes allocations in bounded slices

Allocation math (integer only, floor division):

    allocation(holder) = floor(net × balance(holder) / share_denominator)

share_denominator follows the configured DenominatorPolicy. Under
TOTAL_SUPPLY (the reference behavior) unsold treasury shares dilute every
allocation and their fraction of net stays in escrow as dust. Under
HELD_SHARES dust is strictly less than the number of nonzero allocations.

Payout ordering: a holder is marked claimed and total_claimed updated
before the payout is recorded, all under the distribution's lock, so a
re-entrant or concurrent second claim sees the claimed flag and fails.

Invariants:
- platform_fee + manager_fee + net_amount == gross_amount
- sum(allocations) <= net_amount
- total_claimed == sum(allocations of claimed holders)
- COMPLETED iff every nonzero allocation is claimed; never reverts
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from shareledger.arithmetic import pro_rata, require_amount, require_non_negative
from shareledger.custody import PayoutReason
from shareledger.distribution.fees import FeeSchedule
from shareledger.errors import (
    AlreadyClaimed,
    AssetInactive,
    DistributionCompleted,
    DistributionNotFound,
    InsufficientLiquidity,
    InvalidAmount,
    NoAllocation,
    NotAuthorized,
)
from shareledger.models.distribution import (
    BatchResult,
    ClaimReceipt,
    DenominatorPolicy,
    Distribution,
    DistributionState,
    HolderEntitlement,
)
from shareledger.ownership.ledger import OwnershipLedger
from shareledger.platform import PlatformContext

logger = logging.getLogger(__name__)


class DistributionEngine:
    """Creates distributions and settles claims against fixed snapshots.

    Usage:
        engine = DistributionEngine(context, ledger)
        engine.deposit_revenue("tower-1", 1000, depositor_id="manager-1")
        dist = engine.create_distribution("tower-1", 1000, caller_id="manager-1")
        engine.claim_distribution(dist.distribution_id, "alice")
        engine.batch_distribute(dist.distribution_id, 0, 50, caller_id=operator)
    """

    def __init__(
        self,
        context: PlatformContext,
        ledger: OwnershipLedger,
        fees: Optional[FeeSchedule] = None,
        denominator_policy: Optional[DenominatorPolicy] = None,
    ) -> None:
        self._ctx = context
        self._ledger = ledger
        self._fees = fees if fees is not None else FeeSchedule.from_config(context.config)
        self._policy = (
            denominator_policy
            if denominator_policy is not None
            else context.config.denominator_policy
        )
        self._distributions: Dict[int, Distribution] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._create_lock = threading.Lock()
        self._next_id = 1

    @property
    def fees(self) -> FeeSchedule:
        return self._fees

    @property
    def denominator_policy(self) -> DenominatorPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_fee_rates(self, caller_id: str, platform_fee_bp: int, manager_fee_bp: int) -> None:
        """Change fee rates for future distributions. Operator only.

        Existing distributions keep the fees computed at their creation.
        """
        self._ctx.guard_mutation()
        self._ctx.require_operator(caller_id)
        self._fees.set_rates(platform_fee_bp, manager_fee_bp)
        logger.info("Fee rates set to platform=%d bp, manager=%d bp", platform_fee_bp, manager_fee_bp)

    # ------------------------------------------------------------------
    # Revenue custody
    # ------------------------------------------------------------------

    def deposit_revenue(self, asset_id: str, amount: int, depositor_id: str) -> int:
        """Accept revenue for an asset into custody. Returns the new pending total.

        No allocation happens here.

        Raises:
            InvalidAmount, AssetNotFound, NotAuthorized, AssetInactive.
        """
        self._ctx.guard_mutation()
        require_amount(amount, "amount")
        asset = self._ledger.get_asset(asset_id)
        self._require_manager(asset_id, depositor_id)
        if not asset.active:
            raise AssetInactive(f"Asset {asset_id} is not active")

        self._ctx.custody.credit_revenue(asset_id, amount)
        pending = self._ctx.custody.pending_revenue(asset_id)
        logger.info("Revenue deposited for %s: %d (pending %d)", asset_id, amount, pending)
        return pending

    def pending_revenue(self, asset_id: str) -> int:
        return self._ctx.custody.pending_revenue(asset_id)

    # ------------------------------------------------------------------
    # Distribution lifecycle
    # ------------------------------------------------------------------

    def create_distribution(
        self,
        asset_id: str,
        amount: int,
        caller_id: str,
        now: Optional[datetime] = None,
    ) -> Distribution:
        """Create a distribution of ``amount`` from the asset's pending revenue.

        Fees are computed and paid now. Holder balances are snapshotted
        under the asset lock, so no purchase, sale or transfer can land
        between the snapshot and the allocation.

        Raises:
            InvalidAmount, AssetNotFound, NotAuthorized,
            InsufficientLiquidity, NoAllocation (HELD_SHARES with no holders).
        """
        self._ctx.guard_mutation()
        require_amount(amount, "amount")
        self._ledger.get_asset(asset_id)
        manager_id = self._require_manager(asset_id, caller_id)
        if now is None:
            now = datetime.now(timezone.utc)

        with self._ledger.asset_lock(asset_id):
            pending = self._ctx.custody.pending_revenue(asset_id)
            if amount > pending:
                raise InsufficientLiquidity(
                    f"Asset {asset_id} has {pending} pending revenue, cannot distribute {amount}"
                )
            snapshot = self._ledger.snapshot(asset_id)
            breakdown = self._fees.compute(amount)

            if self._policy == DenominatorPolicy.TOTAL_SUPPLY:
                denominator = snapshot.total_shares
            else:
                denominator = snapshot.held_shares
            if denominator == 0:
                raise NoAllocation(f"No shares of {asset_id} are held")

            allocations: Dict[str, int] = {}
            for holder_id in snapshot.investors:
                balance = snapshot.balances[holder_id]
                if balance > 0:
                    allocations[holder_id] = pro_rata(breakdown.net_amount, balance, denominator)

            custody = self._ctx.custody
            custody.debit_revenue(asset_id, amount)
            with self._create_lock:
                distribution_id = self._next_id
                self._next_id += 1
            distribution = Distribution(
                distribution_id=distribution_id,
                asset_id=asset_id,
                gross_amount=breakdown.gross_amount,
                platform_fee=breakdown.platform_fee,
                manager_fee=breakdown.manager_fee,
                net_amount=breakdown.net_amount,
                share_denominator=denominator,
                denominator_policy=self._policy,
                allocations=allocations,
                investor_snapshot=snapshot.investors,
                created_utc=now,
            )
            reference = f"distribution:{distribution_id}"
            custody.pay(
                self._ctx.operator_id, breakdown.platform_fee,
                PayoutReason.PLATFORM_FEE, reference, now,
            )
            custody.pay(
                manager_id, breakdown.manager_fee,
                PayoutReason.MANAGER_FEE, reference, now,
            )
            custody.fund_distribution(distribution_id, breakdown.net_amount)
            custody.record_dust(asset_id, distribution.dust)
            self._check_completion(distribution, now)

            # Published only once fully funded, so no claim can see it earlier.
            self._locks[distribution_id] = threading.Lock()
            self._distributions[distribution_id] = distribution

        logger.info(
            "Distribution %d created for %s: gross=%d net=%d investors=%d dust=%d",
            distribution_id, asset_id, distribution.gross_amount,
            distribution.net_amount, len(allocations), distribution.dust,
        )
        return distribution

    def claim_distribution(
        self,
        distribution_id: int,
        caller_id: str,
        now: Optional[datetime] = None,
    ) -> ClaimReceipt:
        """Pay the caller's allocation. Each holder can claim exactly once.

        Raises:
            DistributionNotFound, DistributionCompleted, AlreadyClaimed,
            NoAllocation, InsufficientLiquidity (escrow short of the allocation).
        """
        self._ctx.guard_mutation()
        distribution = self._get(distribution_id)
        if now is None:
            now = datetime.now(timezone.utc)

        with self._locks[distribution_id]:
            if distribution.completed:
                raise DistributionCompleted(
                    f"Distribution {distribution_id} is already completed"
                )
            if caller_id in distribution.claimed:
                raise AlreadyClaimed(
                    f"{caller_id} already claimed distribution {distribution_id}"
                )
            amount = distribution.allocation_of(caller_id)
            if amount == 0:
                raise NoAllocation(
                    f"{caller_id} has no allocation in distribution {distribution_id}"
                )
            self._pay_allocation(distribution, caller_id, amount, now)
            self._check_completion(distribution, now)

        return ClaimReceipt(
            distribution_id=distribution_id,
            holder_id=caller_id,
            amount=amount,
            completed=distribution.completed,
        )

    def batch_distribute(
        self,
        distribution_id: int,
        offset: int,
        limit: int,
        caller_id: str,
        now: Optional[datetime] = None,
    ) -> BatchResult:
        """Push unclaimed allocations for the slice [offset, offset+limit).

        Operator only. ``limit`` is capped by config.max_batch_size so one
        call never walks the whole investor list; callers repeat with
        ``result.next_offset`` until ``result.exhausted``. Holders already
        claimed are skipped, so overlapping slices never pay twice. On a
        completed distribution this is a no-op.
        """
        self._ctx.guard_mutation()
        self._ctx.require_operator(caller_id)
        require_non_negative(offset, "offset")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidAmount(f"limit must be a positive integer, got {limit!r}")
        max_batch = self._ctx.config.max_batch_size
        if limit > max_batch:
            raise InvalidAmount(f"limit {limit} exceeds max batch size {max_batch}")
        distribution = self._get(distribution_id)
        if now is None:
            now = datetime.now(timezone.utc)

        paid_count = 0
        paid_amount = 0
        with self._locks[distribution_id]:
            investors = distribution.investor_snapshot
            end = min(offset + limit, len(investors))
            if not distribution.completed:
                for holder_id in investors[offset:end]:
                    amount = distribution.allocation_of(holder_id)
                    if amount == 0 or holder_id in distribution.claimed:
                        continue
                    self._pay_allocation(distribution, holder_id, amount, now)
                    paid_count += 1
                    paid_amount += amount
                self._check_completion(distribution, now)
            next_offset = max(end, offset)

        logger.info(
            "Batch settled distribution %d [%d:%d]: paid %d holders %d",
            distribution_id, offset, end, paid_count, paid_amount,
        )
        return BatchResult(
            distribution_id=distribution_id,
            paid_count=paid_count,
            paid_amount=paid_amount,
            next_offset=next_offset,
            exhausted=next_offset >= len(distribution.investor_snapshot),
            completed=distribution.completed,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_distribution(self, distribution_id: int) -> Distribution:
        return self._get(distribution_id)

    def distributions(self, asset_id: Optional[str] = None) -> List[Distribution]:
        result = list(self._distributions.values())
        if asset_id is not None:
            result = [d for d in result if d.asset_id == asset_id]
        return result

    def distributions_for_holder(self, holder_id: str) -> List[HolderEntitlement]:
        return [
            HolderEntitlement(
                distribution_id=d.distribution_id,
                asset_id=d.asset_id,
                allocation=d.allocations[holder_id],
                claimed=holder_id in d.claimed,
            )
            for d in list(self._distributions.values())
            if holder_id in d.allocations
        ]

    def unclaimed_amount(self, distribution_id: int) -> int:
        return self._get(distribution_id).unclaimed

    def check_invariants(self) -> List[str]:
        """Return a list of invariant violations. Empty list means sound."""
        errors: List[str] = []
        for d in list(self._distributions.values()):
            label = f"distribution {d.distribution_id}"
            if d.platform_fee + d.manager_fee + d.net_amount != d.gross_amount:
                errors.append(f"{label}: fees + net != gross")
            if any(a < 0 for a in d.allocations.values()):
                errors.append(f"{label}: negative allocation")
            if d.allocated > d.net_amount:
                errors.append(f"{label}: allocations {d.allocated} exceed net {d.net_amount}")
            claimed_sum = sum(d.allocations.get(h, 0) for h in list(d.claimed))
            if claimed_sum != d.total_claimed:
                errors.append(f"{label}: total_claimed {d.total_claimed} != {claimed_sum}")
            escrow = self._ctx.custody.escrowed(d.distribution_id)
            if escrow != d.net_amount - d.total_claimed:
                errors.append(f"{label}: escrow {escrow} != net - claimed")
            if d.completed != d.is_fully_claimed():
                errors.append(f"{label}: completed flag disagrees with claim set")
        return errors

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "next_id": self._next_id,
            "platform_fee_bp": self._fees.platform_fee_bp,
            "manager_fee_bp": self._fees.manager_fee_bp,
            "distributions": [d.to_dict() for d in list(self._distributions.values())],
        }

    @classmethod
    def from_dict(
        cls,
        context: PlatformContext,
        ledger: OwnershipLedger,
        data: dict,
    ) -> DistributionEngine:
        engine = cls(context, ledger)
        engine._fees.set_rates(
            data.get("platform_fee_bp", engine._fees.platform_fee_bp),
            data.get("manager_fee_bp", engine._fees.manager_fee_bp),
        )
        for item in data.get("distributions", []):
            distribution = Distribution.from_dict(item)
            engine._distributions[distribution.distribution_id] = distribution
            engine._locks[distribution.distribution_id] = threading.Lock()
        engine._next_id = data.get("next_id", len(engine._distributions) + 1)
        return engine

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, distribution_id: int) -> Distribution:
        distribution = self._distributions.get(distribution_id)
        if distribution is None:
            raise DistributionNotFound(f"Unknown distribution: {distribution_id}")
        return distribution

    def _require_manager(self, asset_id: str, caller_id: str) -> str:
        manager_id = self._ctx.registry.manager_of(asset_id)
        if manager_id is None or manager_id != caller_id:
            raise NotAuthorized(f"{caller_id} is not the manager of {asset_id}")
        return manager_id

    def _pay_allocation(
        self,
        distribution: Distribution,
        holder_id: str,
        amount: int,
        now: datetime,
    ) -> None:
        # Caller holds the distribution lock. Claim state first, then money.
        escrow = self._ctx.custody.escrowed(distribution.distribution_id)
        if amount > escrow:
            raise InsufficientLiquidity(
                f"Distribution {distribution.distribution_id} escrow holds {escrow}, "
                f"cannot pay {amount}"
            )
        distribution.claimed.add(holder_id)
        distribution.total_claimed += amount
        self._ctx.custody.release_from_distribution(distribution.distribution_id, amount)
        self._ctx.custody.pay(
            holder_id, amount, PayoutReason.DISTRIBUTION_CLAIM,
            f"distribution:{distribution.distribution_id}", now,
        )

    def _check_completion(self, distribution: Distribution, now: datetime) -> bool:
        """Move to COMPLETED once every nonzero allocation is claimed.

        Returns True only on the call that performs the transition.
        """
        if distribution.completed or not distribution.is_fully_claimed():
            return False
        distribution.transition_to(DistributionState.COMPLETED)
        distribution.completed_utc = now
        logger.info(
            "Distribution %d completed: %d claimed of net %d",
            distribution.distribution_id, distribution.total_claimed, distribution.net_amount,
        )
        return True
