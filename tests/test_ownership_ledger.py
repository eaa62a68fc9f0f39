"""Tests for the ownership ledger — proves supply is conserved and rejected
operations leave no trace."""

import threading

import pytest
from datetime import datetime, timezone

from shareledger.collaborators import (
    AllowlistComplianceGate,
    InMemoryAssetRegistry,
    KYCStatus,
    ListingStatus,
)
from shareledger.config import PlatformConfig
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
    Paused,
)
from shareledger.ownership import ledger as ledger_module
from shareledger.ownership.ledger import OwnershipLedger
from shareledger.platform import PlatformContext


OPERATOR = "platform-operator"


def _now() -> datetime:
    return datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def compliance() -> AllowlistComplianceGate:
    return AllowlistComplianceGate(verified=["alice", "bob", "carol"])


@pytest.fixture
def registry() -> InMemoryAssetRegistry:
    registry = InMemoryAssetRegistry()
    registry.register("tower-1", "Tower One", "manager-1")
    return registry


@pytest.fixture
def context(
    compliance: AllowlistComplianceGate, registry: InMemoryAssetRegistry,
) -> PlatformContext:
    return PlatformContext(PlatformConfig(), compliance, registry)


@pytest.fixture
def ledger(context: PlatformContext) -> OwnershipLedger:
    ledger = OwnershipLedger(context)
    ledger.issue_asset("tower-1", total_shares=1000, price_per_share=50, now=_now())
    return ledger


def _assert_untouched(ledger: OwnershipLedger, context: PlatformContext) -> None:
    asset = ledger.get_asset("tower-1")
    assert asset.available_shares == 1000
    assert ledger.held_shares("tower-1") == 0
    assert ledger.investor_count("tower-1") == 0
    assert ledger.investment_history() == []
    assert context.custody.liquidity("tower-1") == 0
    assert context.custody.payouts() == []


class TestIssuance:
    def test_all_shares_start_available(self, ledger: OwnershipLedger) -> None:
        asset = ledger.get_asset("tower-1")
        assert asset.total_shares == 1000
        assert asset.available_shares == 1000
        assert asset.sold_shares == 0
        assert asset.active

    def test_duplicate_issue_rejected(self, ledger: OwnershipLedger) -> None:
        with pytest.raises(DuplicateAsset):
            ledger.issue_asset("tower-1", 10, 1)

    def test_zero_supply_rejected(self, ledger: OwnershipLedger) -> None:
        with pytest.raises(InvalidAmount):
            ledger.issue_asset("tower-2", 0, 1)
        assert not ledger.has_asset("tower-2")

    def test_issue_notifies_registry(
        self, ledger: OwnershipLedger, registry: InMemoryAssetRegistry,
    ) -> None:
        assert registry.notifications == [("tower-1", 1000)]

    def test_asset_lock_exists_before_publication(
        self, ledger: OwnershipLedger, monkeypatch,
    ) -> None:
        real_rlock = threading.RLock
        visible: list[bool] = []

        def recording_rlock():
            visible.append(ledger.has_asset("tower-2"))
            return real_rlock()

        monkeypatch.setattr(ledger_module.threading, "RLock", recording_rlock)
        ledger.issue_asset("tower-2", total_shares=10, price_per_share=1, now=_now())
        monkeypatch.undo()
        assert visible and not any(visible)
        assert ledger.has_asset("tower-2")
        ledger.purchase("tower-2", "alice", 4, payment=4)
        assert ledger.balance_of("tower-2", "alice") == 4

    def test_queries_during_concurrent_issuance(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000)
        barrier = threading.Barrier(5)
        failures: list[Exception] = []

        def issue(index: int) -> None:
            barrier.wait()
            try:
                for n in range(20):
                    ledger.issue_asset(f"lot-{index}-{n}", total_shares=5, price_per_share=1)
            except Exception as exc:
                failures.append(exc)

        def read() -> None:
            barrier.wait()
            try:
                for _ in range(50):
                    ledger.check_conservation()
                    ledger.portfolio("alice")
            except Exception as exc:
                failures.append(exc)

        threads = [threading.Thread(target=issue, args=(i,)) for i in range(4)]
        threads.append(threading.Thread(target=read))
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert failures == []
        assert len(ledger.assets()) == 81
        assert ledger.check_conservation() == []


class TestPurchase:
    def test_exact_payment(self, ledger: OwnershipLedger, context: PlatformContext) -> None:
        receipt = ledger.purchase("tower-1", "alice", 100, payment=5000, now=_now())
        assert receipt.cost == 5000
        assert receipt.refund == 0
        assert receipt.available_shares == 900
        assert ledger.balance_of("tower-1", "alice") == 100
        assert context.custody.liquidity("tower-1") == 5000
        assert ledger.holders("tower-1") == ["alice"]

    def test_overpayment_refunded(self, ledger: OwnershipLedger, context: PlatformContext) -> None:
        receipt = ledger.purchase("tower-1", "alice", 100, payment=5100, now=_now())
        assert receipt.refund == 100
        assert context.custody.liquidity("tower-1") == 5000
        assert context.custody.total_paid("alice", PayoutReason.PURCHASE_REFUND) == 100

    def test_investment_logged(self, ledger: OwnershipLedger) -> None:
        receipt = ledger.purchase("tower-1", "alice", 10, payment=500, now=_now())
        history = ledger.investment_history(investor_id="alice")
        assert len(history) == 1
        record = history[0]
        assert record.record_id == receipt.record_id
        assert record.share_amount == 10
        assert record.price_per_share == 50
        assert record.amount_paid == 500
        assert record.timestamp_utc == _now()

    def test_oversized_purchase_rejected_without_effect(
        self, ledger: OwnershipLedger, context: PlatformContext,
    ) -> None:
        with pytest.raises(InsufficientSupply):
            ledger.purchase("tower-1", "alice", 1500, payment=75_000)
        _assert_untouched(ledger, context)

    def test_underpayment_rejected(self, ledger: OwnershipLedger, context: PlatformContext) -> None:
        with pytest.raises(InsufficientPayment, match="below cost"):
            ledger.purchase("tower-1", "alice", 100, payment=4999)
        _assert_untouched(ledger, context)

    def test_underpayment_is_invalid_amount(self, ledger: OwnershipLedger) -> None:
        with pytest.raises(InvalidAmount):
            ledger.purchase("tower-1", "alice", 100, payment=0)

    def test_unapproved_buyer_rejected(self, ledger: OwnershipLedger, context: PlatformContext) -> None:
        with pytest.raises(NotAuthorized, match="mallory"):
            ledger.purchase("tower-1", "mallory", 1, payment=50)
        _assert_untouched(ledger, context)

    def test_rejected_kyc_blocks_purchase(
        self, ledger: OwnershipLedger, compliance: AllowlistComplianceGate,
    ) -> None:
        compliance.set_status("alice", KYCStatus.REJECTED)
        with pytest.raises(NotAuthorized):
            ledger.purchase("tower-1", "alice", 1, payment=50)

    def test_inactive_checked_before_compliance(self, ledger: OwnershipLedger) -> None:
        ledger.set_asset_active("tower-1", False)
        with pytest.raises(AssetInactive):
            ledger.purchase("tower-1", "mallory", 1, payment=50)

    def test_unknown_asset(self, ledger: OwnershipLedger) -> None:
        with pytest.raises(AssetNotFound):
            ledger.purchase("nowhere", "alice", 1, payment=50)

    def test_zero_shares_rejected(self, ledger: OwnershipLedger) -> None:
        with pytest.raises(InvalidAmount):
            ledger.purchase("tower-1", "alice", 0, payment=0)

    def test_sold_out_listing(
        self, ledger: OwnershipLedger, registry: InMemoryAssetRegistry,
    ) -> None:
        ledger.purchase("tower-1", "alice", 1000, payment=50_000)
        assert ledger.get_asset("tower-1").is_sold_out
        assert registry.notifications[-1] == ("tower-1", 0)
        assert registry.get_listing("tower-1").status == ListingStatus.SOLD_OUT


class TestSell:
    def test_sell_pays_proceeds(self, ledger: OwnershipLedger, context: PlatformContext) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000)
        receipt = ledger.sell("tower-1", "alice", 40, now=_now())
        assert receipt.proceeds == 2000
        assert receipt.available_shares == 940
        assert ledger.balance_of("tower-1", "alice") == 60
        assert context.custody.liquidity("tower-1") == 3000
        assert context.custody.total_paid("alice", PayoutReason.SALE_PROCEEDS) == 2000

    def test_sell_more_than_held(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 10, payment=500)
        with pytest.raises(InsufficientBalance):
            ledger.sell("tower-1", "alice", 11)
        assert ledger.balance_of("tower-1", "alice") == 10

    def test_sell_without_liquidity(self, ledger: OwnershipLedger, context: PlatformContext) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000)
        context.custody.debit_liquidity("tower-1", 4000)
        with pytest.raises(InsufficientLiquidity):
            ledger.sell("tower-1", "alice", 100)
        assert ledger.balance_of("tower-1", "alice") == 100
        assert ledger.get_asset("tower-1").available_shares == 900
        assert context.custody.liquidity("tower-1") == 1000

    def test_sell_out_keeps_registration(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000)
        ledger.sell("tower-1", "alice", 100)
        assert ledger.balance_of("tower-1", "alice") == 0
        assert ledger.holders("tower-1") == ["alice"]
        assert ledger.investor_count("tower-1") == 1

    def test_inactive_asset_blocks_sale(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 10, payment=500)
        ledger.set_asset_active("tower-1", False)
        with pytest.raises(AssetInactive):
            ledger.sell("tower-1", "alice", 5)


class TestTransfer:
    def test_transfer_moves_balance(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000)
        ledger.transfer("tower-1", "alice", "bob", 30)
        assert ledger.balance_of("tower-1", "alice") == 70
        assert ledger.balance_of("tower-1", "bob") == 30
        assert ledger.get_asset("tower-1").available_shares == 900
        assert ledger.holders("tower-1") == ["alice", "bob"]

    def test_transfer_to_self_rejected(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000)
        with pytest.raises(InvalidAmount, match="same holder"):
            ledger.transfer("tower-1", "alice", "alice", 10)

    def test_unapproved_recipient_rejected(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000)
        with pytest.raises(NotAuthorized, match="mallory"):
            ledger.transfer("tower-1", "alice", "mallory", 10)
        assert ledger.balance_of("tower-1", "alice") == 100
        assert ledger.holders("tower-1") == ["alice"]

    def test_transfer_exceeding_balance(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 5, payment=250)
        with pytest.raises(InsufficientBalance):
            ledger.transfer("tower-1", "alice", "bob", 6)

    def test_transfer_allowed_on_inactive_asset(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 5, payment=250)
        ledger.set_asset_active("tower-1", False)
        ledger.transfer("tower-1", "alice", "bob", 5)
        assert ledger.balance_of("tower-1", "bob") == 5


class TestQueries:
    def test_ownership_percentage(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 600, payment=30_000)
        assert ledger.ownership_percentage("tower-1", "alice") == 6000
        assert ledger.ownership_percentage("tower-1", "bob") == 0

    def test_ownership_percentage_floors(self, context: PlatformContext) -> None:
        ledger = OwnershipLedger(context)
        ledger.issue_asset("tower-1", total_shares=3, price_per_share=1)
        ledger.purchase("tower-1", "alice", 1, payment=1)
        assert ledger.ownership_percentage("tower-1", "alice") == 3333

    def test_portfolio(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000)
        positions = ledger.portfolio("alice")
        assert len(positions) == 1
        position = positions[0]
        assert position.balance == 100
        assert position.ownership_bps == 1000
        assert position.total_paid == 5000
        assert position.current_value == 5000
        assert ledger.portfolio("bob") == []

    def test_conservation_after_mixed_operations(self, ledger: OwnershipLedger) -> None:
        ledger.purchase("tower-1", "alice", 300, payment=15_000)
        ledger.purchase("tower-1", "bob", 200, payment=10_000)
        ledger.transfer("tower-1", "alice", "carol", 50)
        ledger.sell("tower-1", "bob", 120)
        with pytest.raises(InsufficientSupply):
            ledger.purchase("tower-1", "carol", 10_000, payment=10**9)
        assert ledger.check_conservation() == []
        snapshot = ledger.snapshot("tower-1")
        assert snapshot.held_shares + snapshot.available_shares == snapshot.total_shares

    def test_queries_on_unknown_asset(self, ledger: OwnershipLedger) -> None:
        with pytest.raises(AssetNotFound):
            ledger.balance_of("nowhere", "alice")


class TestPauseAndPersistence:
    def test_pause_checked_first(self, ledger: OwnershipLedger, context: PlatformContext) -> None:
        context.pause(OPERATOR)
        with pytest.raises(Paused):
            ledger.purchase("tower-1", "mallory", 0, payment=0)
        with pytest.raises(Paused):
            ledger.transfer("tower-1", "alice", "bob", 1)

    def test_pause_blocks_sale_and_issuance(
        self, ledger: OwnershipLedger, context: PlatformContext,
    ) -> None:
        ledger.purchase("tower-1", "alice", 10, payment=500)
        context.pause(OPERATOR)
        with pytest.raises(Paused):
            ledger.sell("tower-1", "alice", 5)
        with pytest.raises(Paused):
            ledger.issue_asset("tower-2", total_shares=10, price_per_share=1)
        assert ledger.balance_of("tower-1", "alice") == 10
        assert not ledger.has_asset("tower-2")

    def test_queries_work_while_paused(
        self, ledger: OwnershipLedger, context: PlatformContext,
    ) -> None:
        ledger.purchase("tower-1", "alice", 10, payment=500)
        context.pause(OPERATOR)
        assert ledger.balance_of("tower-1", "alice") == 10

    def test_unpause_restores_mutations(
        self, ledger: OwnershipLedger, context: PlatformContext,
    ) -> None:
        context.pause(OPERATOR)
        context.unpause(OPERATOR)
        ledger.purchase("tower-1", "alice", 10, payment=500)
        assert ledger.balance_of("tower-1", "alice") == 10

    def test_only_operator_pauses(self, context: PlatformContext) -> None:
        with pytest.raises(NotAuthorized):
            context.pause("alice")
        assert not context.paused

    def test_round_trip(self, ledger: OwnershipLedger, context: PlatformContext) -> None:
        ledger.purchase("tower-1", "alice", 100, payment=5000, now=_now())
        ledger.transfer("tower-1", "alice", "bob", 25)
        restored = OwnershipLedger.from_dict(context, ledger.to_dict())
        assert restored.balance_of("tower-1", "alice") == 75
        assert restored.balance_of("tower-1", "bob") == 25
        assert restored.holders("tower-1") == ["alice", "bob"]
        assert restored.investment_history() == ledger.investment_history()
        assert restored.check_conservation() == []
