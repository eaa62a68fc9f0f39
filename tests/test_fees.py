"""Tests for the fee schedule — proves the split is exact and bounded."""

import pytest

from shareledger.config import PlatformConfig
from shareledger.distribution.fees import FeeSchedule
from shareledger.errors import InvalidAmount


@pytest.fixture
def fees() -> FeeSchedule:
    return FeeSchedule.from_config(PlatformConfig())


class TestFeeComputation:
    def test_reference_split(self, fees: FeeSchedule) -> None:
        breakdown = fees.compute(1000)
        assert breakdown.platform_fee == 25
        assert breakdown.manager_fee == 50
        assert breakdown.net_amount == 925

    def test_net_absorbs_rounding(self, fees: FeeSchedule) -> None:
        breakdown = fees.compute(999)
        assert breakdown.platform_fee == 24
        assert breakdown.manager_fee == 49
        assert breakdown.net_amount == 926

    @pytest.mark.parametrize("gross", [1, 7, 39, 1000, 123_456_789, 10**30 + 7])
    def test_parts_sum_to_gross(self, fees: FeeSchedule, gross: int) -> None:
        b = fees.compute(gross)
        assert b.platform_fee + b.manager_fee + b.net_amount == gross
        assert b.net_amount >= 0

    def test_tiny_gross_has_zero_fees(self, fees: FeeSchedule) -> None:
        breakdown = fees.compute(3)
        assert breakdown.platform_fee == 0
        assert breakdown.manager_fee == 0
        assert breakdown.net_amount == 3

    def test_zero_gross_rejected(self, fees: FeeSchedule) -> None:
        with pytest.raises(InvalidAmount):
            fees.compute(0)


class TestFeeRates:
    def test_set_rates_applies_to_next_compute(self, fees: FeeSchedule) -> None:
        fees.set_rates(0, 2000)
        breakdown = fees.compute(1000)
        assert breakdown.platform_fee == 0
        assert breakdown.manager_fee == 200
        assert breakdown.net_amount == 800

    def test_platform_rate_above_ceiling_rejected(self, fees: FeeSchedule) -> None:
        with pytest.raises(InvalidAmount, match="platform_fee_bp"):
            fees.set_rates(1001, 500)
        assert fees.platform_fee_bp == 250

    def test_manager_rate_above_ceiling_rejected(self, fees: FeeSchedule) -> None:
        with pytest.raises(InvalidAmount, match="manager_fee_bp"):
            fees.set_rates(250, 2001)
        assert fees.manager_fee_bp == 500

    def test_non_integer_rate_rejected(self, fees: FeeSchedule) -> None:
        with pytest.raises(InvalidAmount, match="integer"):
            fees.set_rates(2.5, 500)

    def test_lowered_ceiling_from_config(self) -> None:
        fees = FeeSchedule.from_config(PlatformConfig(max_platform_fee_bp=300))
        assert fees.max_platform_fee_bp == 300
        with pytest.raises(InvalidAmount):
            fees.set_rates(301, 0)
