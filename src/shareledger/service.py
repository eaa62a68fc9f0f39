"""Shareledger service — unified facade over ledger, engine and persistence.

This is the primary interface for programmatic access. It orchestrates:
- Asset issuance and listing status (operator)
- Compliance status (operator, in-memory KYC gate)
- Purchases, sales and transfers (OwnershipLedger)
- Revenue deposits, distributions, claims, batch settlement (DistributionEngine)
- The global pause circuit breaker (PlatformContext)
- Persistence (StateStore snapshot + EventLog audit trail)

Mutations return typed ServiceResults and never raise for rejected
operations. With a StateStore every mutation is written durably before
success is returned (write-ahead-then-acknowledge). If the write fails,
in-memory state is rolled back to the last committed snapshot and the
call fails, so an unacknowledged operation never survives.

All mutations are serialized by one commit lock: the service is a single
writer. The core components keep their own finer locks for direct use.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

from shareledger.arithmetic import require_amount
from shareledger.collaborators import (
    AllowlistComplianceGate,
    AssetRegistry,
    ComplianceGate,
    InMemoryAssetRegistry,
    KYCStatus,
)
from shareledger.config import PlatformConfig
from shareledger.custody import Custody, PayoutReason
from shareledger.distribution.engine import DistributionEngine
from shareledger.errors import (
    DuplicateAsset,
    InvalidAmount,
    LedgerError,
    NotAuthorized,
    PersistenceError,
)
from shareledger.models.distribution import Distribution, HolderEntitlement
from shareledger.models.ownership import PortfolioPosition
from shareledger.ownership.ledger import OwnershipLedger
from shareledger.persistence.event_log import EventKind, EventLog
from shareledger.persistence.state_store import StateStore
from shareledger.platform import PlatformContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None


def distribution_summary(distribution: Distribution) -> dict[str, Any]:
    return {
        "distribution_id": distribution.distribution_id,
        "asset_id": distribution.asset_id,
        "gross_amount": distribution.gross_amount,
        "platform_fee": distribution.platform_fee,
        "manager_fee": distribution.manager_fee,
        "net_amount": distribution.net_amount,
        "share_denominator": distribution.share_denominator,
        "denominator_policy": distribution.denominator_policy.value,
        "investor_count": len(distribution.allocations),
        "allocations": dict(distribution.allocations),
        "total_claimed": distribution.total_claimed,
        "dust": distribution.dust,
        "state": distribution.state.value,
    }


class ShareLedgerService:
    """Fractional ownership and revenue distribution facade.

    Usage:
        config = PlatformConfig.from_config_dir(config_dir)
        service = ShareLedgerService(config)

        service.issue_asset(operator, "tower-1", "Tower One", "manager-1", 1000, 50)
        service.set_kyc(operator, ["alice", "bob"], verified=True)
        service.purchase("tower-1", "alice", 600, payment=30_000)

        service.deposit_revenue("tower-1", 1000, "manager-1")
        result = service.create_distribution("tower-1", 1000, "manager-1")
        service.claim(result.data["distribution_id"], "alice")

    Persistence (optional):
        service = ShareLedgerService(config, event_log=log, state_store=store)
        # State is committed on each mutation and restored on construction.
    """

    def __init__(
        self,
        config: PlatformConfig,
        compliance: Optional[ComplianceGate] = None,
        registry: Optional[AssetRegistry] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._config = config
        self._event_log = event_log
        self._state_store = state_store
        self._commit_lock = threading.RLock()
        self._persistence_degraded = False

        compliance = compliance if compliance is not None else AllowlistComplianceGate()
        registry = registry if registry is not None else InMemoryAssetRegistry()
        self._ctx = PlatformContext(config, compliance, registry)
        self._ledger = OwnershipLedger(self._ctx)
        self._engine = DistributionEngine(self._ctx, self._ledger)

        stored = state_store.load() if state_store is not None else None
        if stored is not None:
            self._restore(stored)
            violations = self.check_invariants()
            if violations:
                raise PersistenceError(
                    "Restored state violates invariants: " + "; ".join(violations)
                )
            logger.info("Restored state from %s", state_store.storage_path)
        self._last_committed = self._snapshot_state()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._ctx.close()

    def __enter__(self) -> ShareLedgerService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def context(self) -> PlatformContext:
        return self._ctx

    @property
    def ledger(self) -> OwnershipLedger:
        return self._ledger

    @property
    def engine(self) -> DistributionEngine:
        return self._engine

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def issue_asset(
        self,
        caller_id: str,
        asset_id: str,
        name: str,
        manager_id: str,
        total_shares: int,
        price_per_share: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Issue an asset and list it with its manager. Operator only."""
        def op() -> dict[str, Any]:
            self._ctx.guard_mutation()
            self._ctx.require_operator(caller_id)
            if not manager_id:
                raise NotAuthorized("manager_id must not be empty")
            if not asset_id:
                raise InvalidAmount("asset_id must not be empty")
            require_amount(total_shares, "total_shares")
            require_amount(price_per_share, "price_per_share")
            if self._ledger.has_asset(asset_id):
                raise DuplicateAsset(f"Asset already issued: {asset_id}")
            registry = self._ctx.registry
            if isinstance(registry, InMemoryAssetRegistry):
                if registry.get_listing(asset_id) is not None:
                    raise DuplicateAsset(f"Asset already listed: {asset_id}")
                # Listed first so the ledger's supply notification lands on it.
                registry.register(asset_id, name, manager_id)
            asset = self._ledger.issue_asset(asset_id, total_shares, price_per_share, now=now)
            return {
                "asset_id": asset_id,
                "name": name,
                "manager_id": manager_id,
                "total_shares": asset.total_shares,
                "price_per_share": asset.price_per_share,
            }

        return self._mutate(EventKind.ASSET_ISSUED, caller_id, op)

    def set_asset_active(self, caller_id: str, asset_id: str, active: bool) -> ServiceResult:
        def op() -> dict[str, Any]:
            self._ctx.guard_mutation()
            self._ctx.require_operator(caller_id)
            self._ledger.set_asset_active(asset_id, active)
            registry = self._ctx.registry
            if isinstance(registry, InMemoryAssetRegistry):
                registry.set_active(asset_id, active)
            return {"asset_id": asset_id, "active": active}

        return self._mutate(EventKind.ASSET_STATUS_CHANGED, caller_id, op)

    def set_kyc(
        self,
        caller_id: str,
        party_ids: Iterable[str],
        verified: bool = True,
    ) -> ServiceResult:
        """Batch-set compliance status on the in-memory KYC gate."""
        ids = list(party_ids)

        def op() -> dict[str, Any]:
            self._ctx.guard_mutation()
            self._ctx.require_operator(caller_id)
            gate = self._ctx.compliance
            if not isinstance(gate, AllowlistComplianceGate):
                raise NotAuthorized("Compliance status is managed externally")
            if not ids or any(not p for p in ids):
                raise InvalidAmount("party_ids must be non-empty identifiers")
            status = KYCStatus.VERIFIED if verified else KYCStatus.REJECTED
            gate.batch_set_status(ids, status)
            return {"party_ids": ids, "status": status.value}

        return self._mutate(EventKind.COMPLIANCE_STATUS_CHANGED, caller_id, op)

    def set_fee_rates(
        self,
        caller_id: str,
        platform_fee_bp: int,
        manager_fee_bp: int,
    ) -> ServiceResult:
        def op() -> dict[str, Any]:
            self._engine.set_fee_rates(caller_id, platform_fee_bp, manager_fee_bp)
            return {"platform_fee_bp": platform_fee_bp, "manager_fee_bp": manager_fee_bp}

        return self._mutate(EventKind.FEE_RATES_CHANGED, caller_id, op)

    def pause(self, caller_id: str) -> ServiceResult:
        def op() -> dict[str, Any]:
            self._ctx.pause(caller_id)
            return {"paused": True}

        return self._mutate(EventKind.PLATFORM_PAUSED, caller_id, op)

    def unpause(self, caller_id: str) -> ServiceResult:
        def op() -> dict[str, Any]:
            self._ctx.unpause(caller_id)
            return {"paused": False}

        return self._mutate(EventKind.PLATFORM_UNPAUSED, caller_id, op)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def purchase(
        self,
        asset_id: str,
        buyer_id: str,
        share_amount: int,
        payment: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> dict[str, Any]:
            receipt = self._ledger.purchase(asset_id, buyer_id, share_amount, payment, now=now)
            return {
                "asset_id": asset_id,
                "buyer_id": buyer_id,
                "share_amount": receipt.share_amount,
                "cost": receipt.cost,
                "refund": receipt.refund,
                "available_shares": receipt.available_shares,
                "record_id": receipt.record_id,
            }

        return self._mutate(EventKind.SHARES_PURCHASED, buyer_id, op)

    def sell(
        self,
        asset_id: str,
        holder_id: str,
        share_amount: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> dict[str, Any]:
            receipt = self._ledger.sell(asset_id, holder_id, share_amount, now=now)
            return {
                "asset_id": asset_id,
                "seller_id": holder_id,
                "share_amount": receipt.share_amount,
                "proceeds": receipt.proceeds,
                "available_shares": receipt.available_shares,
            }

        return self._mutate(EventKind.SHARES_SOLD, holder_id, op)

    def transfer(
        self,
        asset_id: str,
        from_id: str,
        to_id: str,
        share_amount: int,
    ) -> ServiceResult:
        def op() -> dict[str, Any]:
            self._ledger.transfer(asset_id, from_id, to_id, share_amount)
            return {
                "asset_id": asset_id,
                "from_id": from_id,
                "to_id": to_id,
                "share_amount": share_amount,
            }

        return self._mutate(EventKind.SHARES_TRANSFERRED, from_id, op)

    # ------------------------------------------------------------------
    # Distribution
    # ------------------------------------------------------------------

    def deposit_revenue(self, asset_id: str, amount: int, depositor_id: str) -> ServiceResult:
        def op() -> dict[str, Any]:
            pending = self._engine.deposit_revenue(asset_id, amount, depositor_id)
            return {"asset_id": asset_id, "amount": amount, "pending_revenue": pending}

        return self._mutate(EventKind.REVENUE_DEPOSITED, depositor_id, op)

    def create_distribution(
        self,
        asset_id: str,
        amount: int,
        caller_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> dict[str, Any]:
            distribution = self._engine.create_distribution(asset_id, amount, caller_id, now=now)
            return distribution_summary(distribution)

        return self._mutate(EventKind.DISTRIBUTION_CREATED, caller_id, op)

    def claim(
        self,
        distribution_id: int,
        caller_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> dict[str, Any]:
            receipt = self._engine.claim_distribution(distribution_id, caller_id, now=now)
            return {
                "distribution_id": distribution_id,
                "holder_id": caller_id,
                "amount": receipt.amount,
                "completed": receipt.completed,
            }

        return self._mutate(EventKind.DISTRIBUTION_CLAIMED, caller_id, op)

    def batch_distribute(
        self,
        distribution_id: int,
        offset: int,
        limit: int,
        caller_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def op() -> dict[str, Any]:
            result = self._engine.batch_distribute(
                distribution_id, offset, limit, caller_id, now=now,
            )
            return {
                "distribution_id": distribution_id,
                "offset": offset,
                "limit": limit,
                "paid_count": result.paid_count,
                "paid_amount": result.paid_amount,
                "next_offset": result.next_offset,
                "exhausted": result.exhausted,
                "completed": result.completed,
            }

        return self._mutate(EventKind.DISTRIBUTION_BATCH_SETTLED, caller_id, op)

    # ------------------------------------------------------------------
    # Queries (no lock, no pause check)
    # ------------------------------------------------------------------

    def balance(self, asset_id: str, holder_id: str) -> int:
        return self._ledger.balance_of(asset_id, holder_id)

    def ownership_percentage(self, asset_id: str, holder_id: str) -> int:
        return self._ledger.ownership_percentage(asset_id, holder_id)

    def investor_count(self, asset_id: str) -> int:
        return self._ledger.investor_count(asset_id)

    def portfolio(self, investor_id: str) -> List[PortfolioPosition]:
        return self._ledger.portfolio(investor_id)

    def get_distribution(self, distribution_id: int) -> Distribution:
        return self._engine.get_distribution(distribution_id)

    def distributions_for_holder(self, holder_id: str) -> List[HolderEntitlement]:
        return self._engine.distributions_for_holder(holder_id)

    def platform_stats(self) -> dict[str, Any]:
        assets = self._ledger.assets()
        distributions = self._engine.distributions()
        custody = self._ctx.custody
        return {
            "assets": len(assets),
            "active_assets": sum(1 for a in assets if a.active),
            "investors": len(self._ledger.registry.all_investors()),
            "total_invested": sum(r.amount_paid for r in self._ledger.investment_history()),
            "total_revenue_distributed": sum(d.gross_amount for d in distributions),
            "total_fees": (
                custody.total_paid(reason=PayoutReason.PLATFORM_FEE)
                + custody.total_paid(reason=PayoutReason.MANAGER_FEE)
            ),
            "total_claimed": sum(d.total_claimed for d in distributions),
            "distributions": len(distributions),
            "completed_distributions": sum(1 for d in distributions if d.completed),
            "paused": self._ctx.paused,
        }

    def status(self) -> dict[str, Any]:
        status = self.platform_stats()
        status["events"] = self._event_log.count if self._event_log is not None else 0
        status["persistence_degraded"] = self._persistence_degraded
        return status

    def check_invariants(self) -> List[str]:
        return self._ledger.check_conservation() + self._engine.check_invariants()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutate(
        self,
        event_kind: EventKind,
        actor_id: str,
        operation: Callable[[], dict[str, Any]],
    ) -> ServiceResult:
        """Run one mutation: apply, commit durably, audit, acknowledge."""
        with self._commit_lock:
            try:
                payload = operation()
            except LedgerError as exc:
                logger.warning("%s rejected for %s: %s", event_kind.value, actor_id, exc)
                return ServiceResult(success=False, errors=[str(exc)], error_kind=exc.kind)

            try:
                self._commit()
            except PersistenceError as exc:
                return ServiceResult(
                    success=False, errors=[str(exc)], error_kind="persistence_error",
                )

            self._audit(event_kind, actor_id, payload)
            if payload.get("completed") and event_kind in (
                EventKind.DISTRIBUTION_CLAIMED, EventKind.DISTRIBUTION_BATCH_SETTLED,
            ):
                self._audit_completion(payload["distribution_id"])
            return ServiceResult(success=True, data=payload)

    def _commit(self) -> None:
        state = self._snapshot_state()
        if self._state_store is not None:
            try:
                self._state_store.save(state)
            except OSError as exc:
                logger.error("State commit failed, rolling back: %s", exc)
                self._restore(self._last_committed)
                raise PersistenceError(f"State commit failed: {exc}") from exc
        self._last_committed = state

    def _audit(self, event_kind: EventKind, actor_id: str, payload: dict[str, Any]) -> None:
        if self._event_log is None:
            return
        try:
            self._event_log.record(event_kind, actor_id, _jsonable(payload))
        except OSError as exc:
            # State is already durable; the audit trail needs operator repair.
            self._persistence_degraded = True
            logger.error("Audit append failed for %s: %s", event_kind.value, exc)

    def _audit_completion(self, distribution_id: int) -> None:
        # Emitted once: a completed distribution rejects further claims and
        # batch calls on it pay nothing.
        distribution = self._engine.get_distribution(distribution_id)
        already = any(
            e.payload.get("distribution_id") == distribution_id
            for e in (self._event_log.events(EventKind.DISTRIBUTION_COMPLETED)
                      if self._event_log is not None else [])
        )
        if not already:
            self._audit(EventKind.DISTRIBUTION_COMPLETED, self._ctx.operator_id, {
                "distribution_id": distribution_id,
                "total_claimed": distribution.total_claimed,
                "dust": distribution.dust,
            })

    def _snapshot_state(self) -> dict[str, Any]:
        state: dict[str, Any] = {
            "paused": self._ctx.paused,
            "custody": self._ctx.custody.to_dict(),
            "ledger": self._ledger.to_dict(),
            "engine": self._engine.to_dict(),
        }
        if isinstance(self._ctx.compliance, AllowlistComplianceGate):
            state["compliance"] = self._ctx.compliance.to_dict()
        if isinstance(self._ctx.registry, InMemoryAssetRegistry):
            state["registry"] = self._ctx.registry.to_dict()
        return state

    def _restore(self, state: dict[str, Any]) -> None:
        compliance = self._ctx.compliance
        if "compliance" in state and isinstance(compliance, AllowlistComplianceGate):
            compliance = AllowlistComplianceGate.from_dict(state["compliance"])
        registry = self._ctx.registry
        if "registry" in state and isinstance(registry, InMemoryAssetRegistry):
            registry = InMemoryAssetRegistry.from_dict(state["registry"])

        self._ctx.close()
        self._ctx = PlatformContext(
            self._config, compliance, registry, Custody.from_dict(state["custody"]),
        )
        self._ctx.restore_paused(state["paused"])
        self._ledger = OwnershipLedger.from_dict(self._ctx, state["ledger"])
        self._engine = DistributionEngine.from_dict(self._ctx, self._ledger, state["engine"])


def _jsonable(payload: dict[str, Any]) -> dict[str, Any]:
    # Allocation maps and id lists pass through; anything else becomes str.
    result: dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, (str, int, bool, list, dict)) or value is None:
            result[key] = value
        else:
            result[key] = str(value)
    return result
