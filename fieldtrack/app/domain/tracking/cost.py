"""
Mileage reimbursement.
"""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def compute_cost(distance_miles: float, rate_per_mile: float) -> float:
    """Reimbursable cost for a distance. Unrounded; see round_currency."""
    return distance_miles * rate_per_mile


def round_currency(amount: float) -> Decimal:
    """Round to cents. Applied when figures leave the engine, never while accumulating."""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
