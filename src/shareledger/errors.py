"""Typed failures for ledger and distribution operations.

Every error here is a precondition failure: the operation that raised it
left ledger, custody and distribution state exactly as it found them.
The service layer converts these into failed ServiceResults; the core
components raise them directly.
"""

from __future__ import annotations


class LedgerError(ValueError):
    """Base class for rejected ledger operations.

    ``kind`` is the stable machine-readable name reported by the service.
    """
    kind = "ledger_error"


class InvalidAmount(LedgerError):
    """Zero, negative, non-integer or overflowing quantity."""
    kind = "invalid_amount"


class InsufficientPayment(InvalidAmount):
    """Payment does not cover share_amount × price_per_share."""
    kind = "insufficient_payment"


class InsufficientSupply(LedgerError):
    """Purchase exceeds the asset's available shares."""
    kind = "insufficient_supply"


class InsufficientBalance(LedgerError):
    """Sale or transfer exceeds the holder's balance."""
    kind = "insufficient_balance"


class InsufficientLiquidity(LedgerError):
    """Payout exceeds the funds held in custody for it."""
    kind = "insufficient_liquidity"


class NotAuthorized(LedgerError):
    """Compliance or role check failed."""
    kind = "not_authorized"


class AssetInactive(LedgerError):
    kind = "asset_inactive"


class AssetNotFound(LedgerError):
    kind = "asset_not_found"


class DuplicateAsset(LedgerError):
    kind = "duplicate_asset"


class DistributionNotFound(LedgerError):
    kind = "distribution_not_found"


class AlreadyClaimed(LedgerError):
    kind = "already_claimed"


class DistributionCompleted(AlreadyClaimed):
    """Every nonzero allocation of the distribution has been paid.

    Reported with the AlreadyClaimed kind: to a caller a repeat claim on a
    completed distribution is the same failure.
    """
    kind = AlreadyClaimed.kind


class NoAllocation(LedgerError):
    kind = "no_allocation"


class Paused(LedgerError):
    """The platform circuit breaker is engaged."""
    kind = "paused"


class PersistenceError(Exception):
    """Raised when committed state could not be written durably."""
