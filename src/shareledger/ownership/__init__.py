"""Ownership subsystem — share balances, supply, investor registry."""

from shareledger.ownership.ledger import HolderSnapshot, OwnershipLedger
from shareledger.ownership.registry import InvestorRegistry

__all__ = ["HolderSnapshot", "InvestorRegistry", "OwnershipLedger"]
