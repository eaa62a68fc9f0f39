"""Ownership ledger — share balances, supply and compliance-gated movement.

The ledger is the only place balances change. Every mutation goes through
one of three doors (purchase, sell, transfer) and each door follows the
same shape:

    1. platform.guard_mutation()          (pause is seen first)
    2. validate every precondition        (no state touched yet)
    3. apply every effect                 (nothing below can fail)
    4. notify the AssetRegistry           (one-way, after the fact)

So a rejection at any point leaves balances, supply, custody and the
investor registry exactly as they were.

Conservation invariant, for every asset at every moment:
    sum(balances[asset]) + asset.available_shares == asset.total_shares

Mutations of one asset are serialized by that asset's lock. Queries take
no lock.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from shareledger.arithmetic import (
    basis_points,
    checked_mul,
    require_amount,
    require_non_negative,
)
from shareledger.custody import PayoutReason
from shareledger.errors import (
    AssetInactive,
    AssetNotFound,
    DuplicateAsset,
    InsufficientBalance,
    InsufficientLiquidity,
    InsufficientPayment,
    InsufficientSupply,
    InvalidAmount,
    NotAuthorized,
)
from shareledger.models.ownership import (
    Asset,
    InvestmentRecord,
    PortfolioPosition,
    PurchaseReceipt,
    SaleReceipt,
)
from shareledger.ownership.registry import InvestorRegistry
from shareledger.platform import PlatformContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HolderSnapshot:
    """Consistent point-in-time view of one asset's holders."""
    asset_id: str
    total_shares: int
    available_shares: int
    investors: tuple[str, ...]
    balances: Dict[str, int]

    @property
    def held_shares(self) -> int:
        return sum(self.balances.values())


class OwnershipLedger:
    """Per-asset share balances with an investor registry.

    Usage:
        ledger = OwnershipLedger(context)
        ledger.issue_asset("tower-1", total_shares=1000, price_per_share=50)
        receipt = ledger.purchase("tower-1", "alice", 100, payment=5000)
        ledger.transfer("tower-1", "alice", "bob", 40)
        ledger.sell("tower-1", "bob", 10)
        ledger.ownership_percentage("tower-1", "alice")  # 600 (6.00%)
    """

    def __init__(
        self,
        context: PlatformContext,
        registry: Optional[InvestorRegistry] = None,
    ) -> None:
        self._ctx = context
        self._registry = registry if registry is not None else InvestorRegistry()
        self._assets: Dict[str, Asset] = {}
        self._balances: Dict[str, Dict[str, int]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def registry(self) -> InvestorRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_asset(
        self,
        asset_id: str,
        total_shares: int,
        price_per_share: int,
        active: bool = True,
        now: Optional[datetime] = None,
    ) -> Asset:
        """Issue a new asset. All shares start in the treasury (available).

        Total supply is fixed from here on.
        """
        self._ctx.guard_mutation()
        if not asset_id:
            raise InvalidAmount("asset_id must not be empty")
        require_amount(total_shares, "total_shares")
        require_amount(price_per_share, "price_per_share")
        if now is None:
            now = datetime.now(timezone.utc)

        with self._locks_guard:
            if asset_id in self._assets:
                raise DuplicateAsset(f"Asset already issued: {asset_id}")
            asset = Asset(
                asset_id=asset_id,
                total_shares=total_shares,
                available_shares=total_shares,
                price_per_share=price_per_share,
                active=active,
                issued_utc=now,
            )
            self._balances[asset_id] = {}
            self._locks[asset_id] = threading.RLock()
            # Readers find the asset through _assets, so it is published last.
            self._assets[asset_id] = asset

        logger.info("Issued asset %s: %d shares at %d", asset_id, total_shares, price_per_share)
        self._notify(asset_id, asset.available_shares)
        return asset

    def set_asset_active(self, asset_id: str, active: bool) -> Asset:
        self._ctx.guard_mutation()
        asset = self._get(asset_id)
        with self._locks[asset_id]:
            asset.active = active
        return asset

    # ------------------------------------------------------------------
    # Purchase / sale / transfer
    # ------------------------------------------------------------------

    def purchase(
        self,
        asset_id: str,
        buyer_id: str,
        share_amount: int,
        payment: int,
        now: Optional[datetime] = None,
    ) -> PurchaseReceipt:
        """Buy shares from the asset treasury.

        ``payment`` is what the buyer sent. The cost
        (share_amount × price_per_share) stays in the asset's liquidity
        pool; any overage is refunded to the buyer.

        Raises:
            InvalidAmount, AssetNotFound, AssetInactive, NotAuthorized,
            InsufficientSupply, InsufficientPayment.
        """
        self._ctx.guard_mutation()
        require_amount(share_amount, "share_amount")
        require_non_negative(payment, "payment")
        asset = self._get(asset_id)
        if now is None:
            now = datetime.now(timezone.utc)

        with self._locks[asset_id]:
            if not asset.active:
                raise AssetInactive(f"Asset {asset_id} is not active")
            if not self._ctx.compliance.is_approved(buyer_id):
                raise NotAuthorized(f"Buyer {buyer_id} is not compliance-approved")
            if share_amount > asset.available_shares:
                raise InsufficientSupply(
                    f"Requested {share_amount} shares, only {asset.available_shares} available"
                )
            cost = checked_mul(share_amount, asset.price_per_share, "cost")
            if payment < cost:
                raise InsufficientPayment(f"Payment {payment} is below cost {cost}")
            refund = payment - cost

            asset.available_shares -= share_amount
            balances = self._balances[asset_id]
            balances[buyer_id] = balances.get(buyer_id, 0) + share_amount
            self._ctx.custody.credit_liquidity(asset_id, cost)
            record = self._registry.log_investment(
                asset_id, buyer_id, share_amount, asset.price_per_share, cost, now,
            )
            self._registry.register(asset_id, buyer_id)
            self._ctx.custody.pay(
                buyer_id, refund, PayoutReason.PURCHASE_REFUND, record.record_id, now,
            )
            available = asset.available_shares

        logger.info(
            "Purchase %s: %s bought %d shares for %d (refund %d)",
            asset_id, buyer_id, share_amount, cost, refund,
        )
        self._notify(asset_id, available)
        return PurchaseReceipt(
            asset_id=asset_id,
            buyer_id=buyer_id,
            share_amount=share_amount,
            cost=cost,
            refund=refund,
            available_shares=available,
            record_id=record.record_id,
        )

    def sell(
        self,
        asset_id: str,
        holder_id: str,
        share_amount: int,
        now: Optional[datetime] = None,
    ) -> SaleReceipt:
        """Sell shares back to the asset treasury at the asset price.

        Proceeds are paid from the asset's liquidity pool.

        Raises:
            InvalidAmount, AssetNotFound, AssetInactive, NotAuthorized,
            InsufficientBalance, InsufficientLiquidity.
        """
        self._ctx.guard_mutation()
        require_amount(share_amount, "share_amount")
        asset = self._get(asset_id)
        if now is None:
            now = datetime.now(timezone.utc)

        with self._locks[asset_id]:
            if not asset.active:
                raise AssetInactive(f"Asset {asset_id} is not active")
            if not self._ctx.compliance.is_approved(holder_id):
                raise NotAuthorized(f"Holder {holder_id} is not compliance-approved")
            balances = self._balances[asset_id]
            held = balances.get(holder_id, 0)
            if share_amount > held:
                raise InsufficientBalance(
                    f"{holder_id} holds {held} shares of {asset_id}, cannot sell {share_amount}"
                )
            proceeds = checked_mul(share_amount, asset.price_per_share, "proceeds")
            liquidity = self._ctx.custody.liquidity(asset_id)
            if proceeds > liquidity:
                raise InsufficientLiquidity(
                    f"Asset {asset_id} holds {liquidity}, cannot pay proceeds {proceeds}"
                )

            self._set_balance(asset_id, holder_id, held - share_amount)
            asset.available_shares += share_amount
            self._ctx.custody.debit_liquidity(asset_id, proceeds)
            self._ctx.custody.pay(
                holder_id, proceeds, PayoutReason.SALE_PROCEEDS, f"sale:{asset_id}", now,
            )
            available = asset.available_shares

        logger.info(
            "Sale %s: %s sold %d shares for %d", asset_id, holder_id, share_amount, proceeds,
        )
        self._notify(asset_id, available)
        return SaleReceipt(
            asset_id=asset_id,
            seller_id=holder_id,
            share_amount=share_amount,
            proceeds=proceeds,
            available_shares=available,
        )

    def transfer(
        self,
        asset_id: str,
        from_id: str,
        to_id: str,
        share_amount: int,
    ) -> None:
        """Move shares between two approved parties.

        The recipient is registered as an investor of the asset so later
        distributions include them. Supply is untouched.
        """
        self._ctx.guard_mutation()
        require_amount(share_amount, "share_amount")
        if from_id == to_id:
            raise InvalidAmount("Cannot transfer shares to the same holder")
        asset = self._get(asset_id)

        with self._locks[asset_id]:
            for party_id in (from_id, to_id):
                if not self._ctx.compliance.is_approved(party_id):
                    raise NotAuthorized(f"{party_id} is not compliance-approved")
            balances = self._balances[asset_id]
            held = balances.get(from_id, 0)
            if share_amount > held:
                raise InsufficientBalance(
                    f"{from_id} holds {held} shares of {asset_id}, cannot transfer {share_amount}"
                )

            self._set_balance(asset_id, from_id, held - share_amount)
            balances[to_id] = balances.get(to_id, 0) + share_amount
            self._registry.register(asset.asset_id, to_id)

        logger.info("Transfer %s: %d shares %s -> %s", asset_id, share_amount, from_id, to_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_asset(self, asset_id: str) -> Asset:
        return self._get(asset_id)

    def has_asset(self, asset_id: str) -> bool:
        return asset_id in self._assets

    def assets(self) -> List[Asset]:
        return list(self._assets.values())

    def balance_of(self, asset_id: str, holder_id: str) -> int:
        self._get(asset_id)
        return self._balances[asset_id].get(holder_id, 0)

    def held_shares(self, asset_id: str) -> int:
        self._get(asset_id)
        return sum(dict(self._balances[asset_id]).values())

    def ownership_percentage(self, asset_id: str, holder_id: str) -> int:
        """Holder's share of total supply in floor-rounded basis points.

        Lossy and read-only. Never used for payout math.
        """
        asset = self._get(asset_id)
        return basis_points(self._balances[asset_id].get(holder_id, 0), asset.total_shares)

    def holders(self, asset_id: str) -> List[str]:
        """Registered investors in registration order."""
        self._get(asset_id)
        return self._registry.investors(asset_id)

    def investor_count(self, asset_id: str) -> int:
        self._get(asset_id)
        return self._registry.count(asset_id)

    def investment_history(
        self,
        asset_id: Optional[str] = None,
        investor_id: Optional[str] = None,
    ) -> List[InvestmentRecord]:
        return self._registry.history(asset_id, investor_id)

    def snapshot(self, asset_id: str) -> HolderSnapshot:
        """Point-in-time holders and balances, taken under the asset lock."""
        asset = self._get(asset_id)
        with self._locks[asset_id]:
            investors = tuple(self._registry.investors(asset_id))
            balances = self._balances[asset_id]
            return HolderSnapshot(
                asset_id=asset_id,
                total_shares=asset.total_shares,
                available_shares=asset.available_shares,
                investors=investors,
                balances={h: balances.get(h, 0) for h in investors},
            )

    @contextmanager
    def asset_lock(self, asset_id: str) -> Iterator[Asset]:
        """Hold an asset's mutation lock across a multi-step read."""
        asset = self._get(asset_id)
        with self._locks[asset_id]:
            yield asset

    def portfolio(self, investor_id: str) -> List[PortfolioPosition]:
        """Every asset the investor holds or has ever bought."""
        positions: List[PortfolioPosition] = []
        for asset in list(self._assets.values()):
            balance = self._balances[asset.asset_id].get(investor_id, 0)
            paid = sum(
                r.amount_paid for r in self._registry.history(asset.asset_id, investor_id)
            )
            if balance == 0 and paid == 0:
                continue
            positions.append(PortfolioPosition(
                asset_id=asset.asset_id,
                balance=balance,
                ownership_bps=basis_points(balance, asset.total_shares),
                total_paid=paid,
                current_value=balance * asset.price_per_share,
            ))
        return positions

    def check_conservation(self) -> List[str]:
        """Return a list of invariant violations. Empty list means sound."""
        errors: List[str] = []
        for asset in list(self._assets.values()):
            balances = dict(self._balances[asset.asset_id])
            negative = [h for h, b in balances.items() if b < 0]
            if negative:
                errors.append(f"{asset.asset_id}: negative balances for {sorted(negative)}")
            if not 0 <= asset.available_shares <= asset.total_shares:
                errors.append(
                    f"{asset.asset_id}: available_shares {asset.available_shares} "
                    f"outside [0, {asset.total_shares}]"
                )
            held = sum(balances.values())
            if held + asset.available_shares != asset.total_shares:
                errors.append(
                    f"{asset.asset_id}: held {held} + available {asset.available_shares} "
                    f"!= total {asset.total_shares}"
                )
        return errors

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "assets": [a.to_dict() for a in list(self._assets.values())],
            "balances": {a: dict(b) for a, b in list(self._balances.items())},
            "registry": self._registry.to_dict(),
        }

    @classmethod
    def from_dict(cls, context: PlatformContext, data: dict) -> OwnershipLedger:
        ledger = cls(context, InvestorRegistry.from_dict(data.get("registry", {})))
        for item in data.get("assets", []):
            asset = Asset.from_dict(item)
            ledger._assets[asset.asset_id] = asset
            ledger._balances[asset.asset_id] = dict(
                data.get("balances", {}).get(asset.asset_id, {})
            )
            ledger._locks[asset.asset_id] = threading.RLock()
        return ledger

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, asset_id: str) -> Asset:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise AssetNotFound(f"Unknown asset: {asset_id}")
        return asset

    def _set_balance(self, asset_id: str, holder_id: str, amount: int) -> None:
        balances = self._balances[asset_id]
        if amount == 0:
            balances.pop(holder_id, None)
        else:
            balances[holder_id] = amount

    def _notify(self, asset_id: str, available: int) -> None:
        # One-way notification after the ledger has committed. A failing
        # registry must not undo a completed purchase or sale.
        try:
            self._ctx.registry.notify_available_shares_changed(asset_id, available)
        except Exception:
            logger.exception("Asset registry notification failed for %s", asset_id)
