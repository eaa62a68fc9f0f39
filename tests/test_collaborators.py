"""Tests for the injected compliance gate and asset registry."""

import pytest

from shareledger.collaborators import (
    AllowlistComplianceGate,
    AssetRegistry,
    ComplianceGate,
    InMemoryAssetRegistry,
    KYCStatus,
    ListingStatus,
)


class TestComplianceGate:
    def test_unknown_party_is_not_approved(self) -> None:
        gate = AllowlistComplianceGate()
        assert not gate.is_approved("alice")
        assert gate.status_of("alice") == KYCStatus.PENDING

    def test_verified_party_is_approved(self) -> None:
        gate = AllowlistComplianceGate(verified=["alice"])
        assert gate.is_approved("alice")

    def test_rejected_party_is_not_approved(self) -> None:
        gate = AllowlistComplianceGate(verified=["alice"])
        gate.set_status("alice", KYCStatus.REJECTED)
        assert not gate.is_approved("alice")

    def test_batch_set_status(self) -> None:
        gate = AllowlistComplianceGate()
        assert gate.batch_set_status(["a", "b", "c"], KYCStatus.VERIFIED) == 3
        assert all(gate.is_approved(p) for p in ("a", "b", "c"))

    def test_batch_rejects_empty_id(self) -> None:
        gate = AllowlistComplianceGate()
        with pytest.raises(ValueError, match="empty"):
            gate.batch_set_status(["a", ""], KYCStatus.VERIFIED)
        assert not gate.is_approved("a")

    def test_round_trip(self) -> None:
        gate = AllowlistComplianceGate(verified=["alice"])
        gate.set_status("bob", KYCStatus.REJECTED)
        restored = AllowlistComplianceGate.from_dict(gate.to_dict())
        assert restored.is_approved("alice")
        assert restored.status_of("bob") == KYCStatus.REJECTED

    def test_satisfies_protocol(self) -> None:
        assert isinstance(AllowlistComplianceGate(), ComplianceGate)


class TestAssetRegistry:
    def test_register_and_manager_lookup(self) -> None:
        registry = InMemoryAssetRegistry()
        registry.register("tower-1", "Tower One", "manager-1")
        assert registry.manager_of("tower-1") == "manager-1"
        assert registry.manager_of("unknown") is None

    def test_duplicate_registration_rejected(self) -> None:
        registry = InMemoryAssetRegistry()
        registry.register("tower-1", "Tower One", "manager-1")
        with pytest.raises(ValueError, match="already registered"):
            registry.register("tower-1", "Again", "manager-2")

    def test_notifications_update_listing_status(self) -> None:
        registry = InMemoryAssetRegistry()
        registry.register("tower-1", "Tower One", "manager-1")
        registry.notify_available_shares_changed("tower-1", 10)
        assert registry.get_listing("tower-1").status == ListingStatus.ACTIVE
        registry.notify_available_shares_changed("tower-1", 0)
        assert registry.get_listing("tower-1").status == ListingStatus.SOLD_OUT
        assert registry.notifications == [("tower-1", 10), ("tower-1", 0)]

    def test_notification_trail_is_bounded(self) -> None:
        registry = InMemoryAssetRegistry(notification_limit=3)
        registry.register("tower-1", "Tower One", "manager-1")
        for available in (50, 40, 30, 20, 10):
            registry.notify_available_shares_changed("tower-1", available)
        assert registry.notifications == [("tower-1", 30), ("tower-1", 20), ("tower-1", 10)]
        assert registry.get_listing("tower-1").available_shares == 10

    def test_notification_limit_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="notification_limit"):
            InMemoryAssetRegistry(notification_limit=0)

    def test_inactive_listing(self) -> None:
        registry = InMemoryAssetRegistry()
        registry.register("tower-1", "Tower One", "manager-1")
        registry.set_active("tower-1", False)
        assert registry.get_listing("tower-1").status == ListingStatus.INACTIVE

    def test_round_trip(self) -> None:
        registry = InMemoryAssetRegistry()
        registry.register("tower-1", "Tower One", "manager-1")
        registry.notify_available_shares_changed("tower-1", 0)
        restored = InMemoryAssetRegistry.from_dict(registry.to_dict())
        assert restored.manager_of("tower-1") == "manager-1"
        assert restored.get_listing("tower-1").status == ListingStatus.SOLD_OUT

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryAssetRegistry(), AssetRegistry)
