"""Ownership models — assets, investment records, receipts.

All quantities are integers: shares are whole units and money is counted
in the smallest unit of the settlement currency. No floats in finance.

Invariants enforced around these models (by the ledger):
- 0 <= available_shares <= total_shares
- sum(holder balances) + available_shares == total_shares
- Investment records are immutable once written
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass
class Asset:
    """Supply-side record of an issued asset.

    Mutable — only ``available_shares`` (purchase/sale) and ``active``
    (operator toggle) change after issuance.
    """
    asset_id: str
    total_shares: int
    available_shares: int
    price_per_share: int
    active: bool = True
    issued_utc: Optional[datetime] = None

    @property
    def sold_shares(self) -> int:
        return self.total_shares - self.available_shares

    @property
    def is_sold_out(self) -> bool:
        return self.available_shares == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "total_shares": self.total_shares,
            "available_shares": self.available_shares,
            "price_per_share": self.price_per_share,
            "active": self.active,
            "issued_utc": self.issued_utc.isoformat() if self.issued_utc else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Asset:
        issued = data.get("issued_utc")
        return cls(
            asset_id=data["asset_id"],
            total_shares=data["total_shares"],
            available_shares=data["available_shares"],
            price_per_share=data["price_per_share"],
            active=data["active"],
            issued_utc=datetime.fromisoformat(issued) if issued else None,
        )


@dataclass(frozen=True)
class InvestmentRecord:
    """A single purchase, kept for audit.

    Frozen — the investment log is append-only and never rewritten.
    """
    record_id: str
    asset_id: str
    investor_id: str
    share_amount: int
    price_per_share: int
    amount_paid: int
    timestamp_utc: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "asset_id": self.asset_id,
            "investor_id": self.investor_id,
            "share_amount": self.share_amount,
            "price_per_share": self.price_per_share,
            "amount_paid": self.amount_paid,
            "timestamp_utc": self.timestamp_utc.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InvestmentRecord:
        return cls(
            record_id=data["record_id"],
            asset_id=data["asset_id"],
            investor_id=data["investor_id"],
            share_amount=data["share_amount"],
            price_per_share=data["price_per_share"],
            amount_paid=data["amount_paid"],
            timestamp_utc=datetime.fromisoformat(data["timestamp_utc"]),
        )


@dataclass(frozen=True)
class PurchaseReceipt:
    """Outcome of an accepted purchase."""
    asset_id: str
    buyer_id: str
    share_amount: int
    cost: int
    refund: int
    available_shares: int
    record_id: str


@dataclass(frozen=True)
class SaleReceipt:
    """Outcome of an accepted sale back to the asset treasury."""
    asset_id: str
    seller_id: str
    share_amount: int
    proceeds: int
    available_shares: int


@dataclass(frozen=True)
class PortfolioPosition:
    """One asset line of an investor's portfolio."""
    asset_id: str
    balance: int
    ownership_bps: int
    total_paid: int
    current_value: int
