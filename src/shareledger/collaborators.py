"""Collaborator contracts consumed by the ledger and distribution engine.

The core never decides who may hold shares or who manages an asset. It
asks two injected collaborators:

- ComplianceGate: may this party hold, receive or dispose of shares?
- AssetRegistry: who manages this asset, and a one-way notification when
  its available supply changes.

Swapping an implementation (a KYC provider, an external listing
service) requires zero changes to the ledger or the engine. The
in-memory implementations below back the service, the CLI and the tests.
"""

from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class ComplianceGate(Protocol):
    """Answers whether a party may hold or receive shares."""

    def is_approved(self, party_id: str) -> bool:
        ...


@runtime_checkable
class AssetRegistry(Protocol):
    """Owns asset identity and management; notified of supply changes."""

    def manager_of(self, asset_id: str) -> Optional[str]:
        ...

    def notify_available_shares_changed(self, asset_id: str, new_available: int) -> None:
        ...


class KYCStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class AllowlistComplianceGate:
    """Compliance gate backed by a KYC status table.

    Only VERIFIED parties are approved. Unknown parties are PENDING,
    which is fail-closed.

    Usage:
        gate = AllowlistComplianceGate()
        gate.batch_set_status(["alice", "bob"], KYCStatus.VERIFIED)
        gate.is_approved("alice")  # True
    """

    def __init__(self, verified: Iterable[str] = ()) -> None:
        self._status: Dict[str, KYCStatus] = {}
        for party_id in verified:
            self._status[party_id] = KYCStatus.VERIFIED

    def is_approved(self, party_id: str) -> bool:
        return self._status.get(party_id) == KYCStatus.VERIFIED

    def status_of(self, party_id: str) -> KYCStatus:
        return self._status.get(party_id, KYCStatus.PENDING)

    def set_status(self, party_id: str, status: KYCStatus) -> None:
        if not party_id:
            raise ValueError("party_id must not be empty")
        self._status[party_id] = status

    def batch_set_status(self, party_ids: Iterable[str], status: KYCStatus) -> int:
        """Set the same status for many parties. Returns how many were set."""
        ids = list(party_ids)
        if any(not p for p in ids):
            raise ValueError("party_id must not be empty")
        for party_id in ids:
            self._status[party_id] = status
        return len(ids)

    def to_dict(self) -> dict:
        return {party_id: status.value for party_id, status in sorted(self._status.items())}

    @classmethod
    def from_dict(cls, data: dict) -> AllowlistComplianceGate:
        gate = cls()
        for party_id, status in data.items():
            gate._status[party_id] = KYCStatus(status)
        return gate


class ListingStatus(str, enum.Enum):
    """Marketplace-facing status of a listed asset."""
    ACTIVE = "active"
    SOLD_OUT = "sold_out"
    INACTIVE = "inactive"


@dataclass
class AssetListing:
    """Registry-side view of an asset: identity, manager, availability."""
    asset_id: str
    name: str
    manager_id: str
    available_shares: Optional[int] = None
    active: bool = True

    @property
    def status(self) -> ListingStatus:
        if not self.active:
            return ListingStatus.INACTIVE
        if self.available_shares == 0:
            return ListingStatus.SOLD_OUT
        return ListingStatus.ACTIVE


class InMemoryAssetRegistry:
    """Asset registry holding listings and recording supply notifications.

    Notifications are kept in order so callers can audit what the ledger
    reported after each purchase or sale. The trail is an in-memory log
    holding the most recent ``notification_limit`` entries; it is not
    persisted, since each listing already carries its current supply.
    """

    def __init__(self, notification_limit: int = 1000) -> None:
        if notification_limit < 1:
            raise ValueError("notification_limit must be >= 1")
        self._listings: Dict[str, AssetListing] = {}
        self._notifications: Deque[Tuple[str, int]] = deque(maxlen=notification_limit)

    def register(self, asset_id: str, name: str, manager_id: str) -> AssetListing:
        if not asset_id:
            raise ValueError("asset_id must not be empty")
        if not manager_id:
            raise ValueError("manager_id must not be empty")
        if asset_id in self._listings:
            raise ValueError(f"Asset already registered: {asset_id}")
        listing = AssetListing(asset_id=asset_id, name=name, manager_id=manager_id)
        self._listings[asset_id] = listing
        return listing

    def manager_of(self, asset_id: str) -> Optional[str]:
        listing = self._listings.get(asset_id)
        return listing.manager_id if listing else None

    def notify_available_shares_changed(self, asset_id: str, new_available: int) -> None:
        listing = self._listings.get(asset_id)
        if listing is not None:
            listing.available_shares = new_available
        self._notifications.append((asset_id, new_available))

    def set_active(self, asset_id: str, active: bool) -> None:
        listing = self._listings.get(asset_id)
        if listing is not None:
            listing.active = active

    def get_listing(self, asset_id: str) -> Optional[AssetListing]:
        return self._listings.get(asset_id)

    def listings(self) -> List[AssetListing]:
        return list(self._listings.values())

    @property
    def notifications(self) -> List[Tuple[str, int]]:
        return list(self._notifications)

    def to_dict(self) -> dict:
        return {
            "listings": [
                {
                    "asset_id": l.asset_id,
                    "name": l.name,
                    "manager_id": l.manager_id,
                    "available_shares": l.available_shares,
                    "active": l.active,
                }
                for l in self._listings.values()
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> InMemoryAssetRegistry:
        registry = cls()
        for item in data.get("listings", []):
            registry._listings[item["asset_id"]] = AssetListing(
                asset_id=item["asset_id"],
                name=item["name"],
                manager_id=item["manager_id"],
                available_shares=item.get("available_shares"),
                active=item.get("active", True),
            )
        return registry
