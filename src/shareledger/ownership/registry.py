"""Investor registry — who has ever held each asset, and what they paid.

Two append-only structures per asset:
1. An ordered, deduplicated list of investor ids. Order is first
   registration order and never changes; distributions snapshot it.
2. An investment log of frozen InvestmentRecords.

Nothing is ever removed. An investor who sells out stays registered
(with a zero balance) and every record they created stays in the log.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, List, Optional, Set

from shareledger.models.ownership import InvestmentRecord


class InvestorRegistry:
    """Append-only investor sets and investment log.

    Usage:
        registry = InvestorRegistry()
        registry.register("asset-1", "alice")     # True (new)
        registry.register("asset-1", "alice")     # False (already known)
        registry.log_investment("asset-1", "alice", 10, 100, 1000, now)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._investors: Dict[str, List[str]] = {}
        self._known: Dict[str, Set[str]] = {}
        self._log: List[InvestmentRecord] = []

    def register(self, asset_id: str, investor_id: str) -> bool:
        """Register an investor for an asset. Returns True if newly added."""
        with self._lock:
            known = self._known.setdefault(asset_id, set())
            if investor_id in known:
                return False
            known.add(investor_id)
            self._investors.setdefault(asset_id, []).append(investor_id)
            return True

    def investors(self, asset_id: str) -> List[str]:
        """Registered investors in registration order (a copy)."""
        return list(self._investors.get(asset_id, ()))

    def count(self, asset_id: str) -> int:
        return len(self._investors.get(asset_id, ()))

    def all_investors(self) -> Set[str]:
        """Distinct investors across every asset."""
        result: Set[str] = set()
        for known in self._known.values():
            result |= known
        return result

    def log_investment(
        self,
        asset_id: str,
        investor_id: str,
        share_amount: int,
        price_per_share: int,
        amount_paid: int,
        timestamp_utc: datetime,
    ) -> InvestmentRecord:
        """Append an investment record and return it."""
        with self._lock:
            record = InvestmentRecord(
                record_id=f"inv-{len(self._log) + 1:06d}",
                asset_id=asset_id,
                investor_id=investor_id,
                share_amount=share_amount,
                price_per_share=price_per_share,
                amount_paid=amount_paid,
                timestamp_utc=timestamp_utc,
            )
            self._log.append(record)
            return record

    def history(
        self,
        asset_id: Optional[str] = None,
        investor_id: Optional[str] = None,
    ) -> List[InvestmentRecord]:
        """Return investment records, optionally filtered."""
        result = list(self._log)
        if asset_id is not None:
            result = [r for r in result if r.asset_id == asset_id]
        if investor_id is not None:
            result = [r for r in result if r.investor_id == investor_id]
        return result

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "investors": {a: list(ids) for a, ids in self._investors.items()},
            "investments": [r.to_dict() for r in self._log],
        }

    @classmethod
    def from_dict(cls, data: dict) -> InvestorRegistry:
        registry = cls()
        for asset_id, ids in data.get("investors", {}).items():
            for investor_id in ids:
                registry.register(asset_id, investor_id)
        registry._log = [InvestmentRecord.from_dict(r) for r in data.get("investments", [])]
        return registry
