"""Integer-cent arithmetic helpers."""

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float | Decimal) -> int:
    """Round to the nearest cent, halves away from zero (2000.5 -> 2001)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percentage: float) -> int:
    """`percentage`% of an amount in cents, rounded half up."""
    return round_half_up(Decimal(amount) * Decimal(str(percentage)) / Decimal(100))


def format_cents(amount: int) -> str:
    return f"${amount / 100:.2f}"
