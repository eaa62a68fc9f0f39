"""Integer basis-point arithmetic shared by the ledger and the engine.

No floats anywhere. Percentages are basis points (1/100 of a percent),
every division floors, and every quantity is bounded by MAX_AMOUNT so a
product of two valid quantities is checked before it is trusted.
"""

from __future__ import annotations

from shareledger.errors import InvalidAmount

BPS_DENOMINATOR = 10_000

# Largest quantity the ledger will hold (uint256 range).
MAX_AMOUNT = 2**256 - 1


def require_amount(value: object, name: str = "amount") -> int:
    """Return ``value`` if it is a strictly positive, bounded int.

    Raises InvalidAmount otherwise. ``bool`` is rejected even though it
    subclasses int.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise InvalidAmount(f"{name} must be positive, got {value}")
    if value > MAX_AMOUNT:
        raise InvalidAmount(f"{name} overflows the maximum amount")
    return value


def require_non_negative(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidAmount(f"{name} must not be negative, got {value}")
    if value > MAX_AMOUNT:
        raise InvalidAmount(f"{name} overflows the maximum amount")
    return value


def checked_mul(a: int, b: int, name: str = "product") -> int:
    """Multiply two quantities, rejecting results above MAX_AMOUNT."""
    result = a * b
    if result > MAX_AMOUNT:
        raise InvalidAmount(f"{name} overflows the maximum amount")
    return result


def bps_of(amount: int, bps: int) -> int:
    """floor(amount × bps / 10000)."""
    return amount * bps // BPS_DENOMINATOR


def pro_rata(total: int, part: int, whole: int) -> int:
    """floor(total × part / whole); 0 when ``whole`` is 0."""
    if whole == 0:
        return 0
    return total * part // whole


def basis_points(part: int, whole: int) -> int:
    """Share of ``whole`` held by ``part`` in floor-rounded basis points."""
    if part == 0 or whole == 0:
        return 0
    return part * BPS_DENOMINATOR // whole
