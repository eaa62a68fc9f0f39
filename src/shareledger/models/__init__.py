"""Core data models for shareledger."""

from shareledger.models.distribution import (
    BatchResult,
    ClaimReceipt,
    DenominatorPolicy,
    Distribution,
    DistributionState,
    FeeBreakdown,
    HolderEntitlement,
)
from shareledger.models.ownership import (
    Asset,
    InvestmentRecord,
    PortfolioPosition,
    PurchaseReceipt,
    SaleReceipt,
)

__all__ = [
    "Asset",
    "BatchResult",
    "ClaimReceipt",
    "DenominatorPolicy",
    "Distribution",
    "DistributionState",
    "FeeBreakdown",
    "HolderEntitlement",
    "InvestmentRecord",
    "PortfolioPosition",
    "PurchaseReceipt",
    "SaleReceipt",
]
