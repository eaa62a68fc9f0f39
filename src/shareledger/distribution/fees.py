"""Fee schedule — splits gross revenue into platform fee, manager fee, net.

The split is fully deterministic integer arithmetic:

    platform_fee = floor(gross × platform_fee_bp / 10000)
    manager_fee  = floor(gross × manager_fee_bp / 10000)
    net          = gross - platform_fee - manager_fee

Net absorbs both rounding remainders, so the three parts always sum to
gross exactly. Rates live inside fixed ceilings and only the platform
operator may change them (enforced by the engine).
"""

from __future__ import annotations

import threading

from shareledger.arithmetic import bps_of, require_amount
from shareledger.config import PlatformConfig
from shareledger.errors import InvalidAmount
from shareledger.models.distribution import FeeBreakdown


class FeeSchedule:
    """Current fee rates bounded by configured ceilings.

    Usage:
        fees = FeeSchedule.from_config(config)
        breakdown = fees.compute(1000)
        breakdown.net_amount  # 925 at 250 / 500 bp
    """

    def __init__(
        self,
        platform_fee_bp: int,
        manager_fee_bp: int,
        max_platform_fee_bp: int,
        max_manager_fee_bp: int,
    ) -> None:
        self._lock = threading.Lock()
        self._max_platform_fee_bp = max_platform_fee_bp
        self._max_manager_fee_bp = max_manager_fee_bp
        self._validate(platform_fee_bp, manager_fee_bp)
        self._platform_fee_bp = platform_fee_bp
        self._manager_fee_bp = manager_fee_bp

    @classmethod
    def from_config(cls, config: PlatformConfig) -> FeeSchedule:
        return cls(
            platform_fee_bp=config.platform_fee_bp,
            manager_fee_bp=config.manager_fee_bp,
            max_platform_fee_bp=config.max_platform_fee_bp,
            max_manager_fee_bp=config.max_manager_fee_bp,
        )

    @property
    def platform_fee_bp(self) -> int:
        return self._platform_fee_bp

    @property
    def manager_fee_bp(self) -> int:
        return self._manager_fee_bp

    @property
    def max_platform_fee_bp(self) -> int:
        return self._max_platform_fee_bp

    @property
    def max_manager_fee_bp(self) -> int:
        return self._max_manager_fee_bp

    def set_rates(self, platform_fee_bp: int, manager_fee_bp: int) -> None:
        self._validate(platform_fee_bp, manager_fee_bp)
        with self._lock:
            self._platform_fee_bp = platform_fee_bp
            self._manager_fee_bp = manager_fee_bp

    def compute(self, gross_amount: int) -> FeeBreakdown:
        """Split ``gross_amount`` at the current rates."""
        require_amount(gross_amount, "gross_amount")
        with self._lock:
            platform_bp = self._platform_fee_bp
            manager_bp = self._manager_fee_bp
        platform_fee = bps_of(gross_amount, platform_bp)
        manager_fee = bps_of(gross_amount, manager_bp)
        return FeeBreakdown(
            gross_amount=gross_amount,
            platform_fee_bp=platform_bp,
            manager_fee_bp=manager_bp,
            platform_fee=platform_fee,
            manager_fee=manager_fee,
            net_amount=gross_amount - platform_fee - manager_fee,
        )

    def _validate(self, platform_fee_bp: int, manager_fee_bp: int) -> None:
        for name, value, ceiling in (
            ("platform_fee_bp", platform_fee_bp, self._max_platform_fee_bp),
            ("manager_fee_bp", manager_fee_bp, self._max_manager_fee_bp),
        ):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidAmount(f"{name} must be an integer")
            if not 0 <= value <= ceiling:
                raise InvalidAmount(f"{name} must be in [0, {ceiling}], got {value}")
