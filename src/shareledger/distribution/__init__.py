"""Distribution subsystem — fee schedule and revenue distribution engine."""

from shareledger.distribution.engine import DistributionEngine
from shareledger.distribution.fees import FeeSchedule

__all__ = ["DistributionEngine", "FeeSchedule"]
