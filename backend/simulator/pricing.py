"""Tip and tax for a priced order. All amounts are integer cents."""

import random
from dataclasses import dataclass

from core.money import percent_of
from simulator.distributions import (
    AUTO_GRATUITY_PERCENT,
    LARGE_PARTY_SIZE,
    TAKEOUT_NO_TIP_CHANCE,
    TIP_BANDS,
    DiningOption,
)


@dataclass(frozen=True)
class TipQuote:
    percentage: int
    amount: int


def tip_percentage(dining: DiningOption, party_size: int, rng: random.Random) -> int:
    """Draw from the dining option's band, then apply the large-party floor.

    The takeout no-tip override runs after the floor, so a large takeout
    order can still end up untipped.
    """
    band = TIP_BANDS[dining]
    pct = rng.randint(band.low, band.high)
    if party_size >= LARGE_PARTY_SIZE:
        pct = max(pct, AUTO_GRATUITY_PERCENT)
    if dining == DiningOption.TAKEOUT and rng.random() < TAKEOUT_NO_TIP_CHANCE:
        pct = 0
    return pct


def compute_tip(subtotal: int, dining: DiningOption, party_size: int, rng: random.Random) -> TipQuote:
    pct = tip_percentage(dining, party_size, rng)
    return TipQuote(percentage=pct, amount=percent_of(subtotal, pct))


def compute_tax(subtotal: int, tax_rate: float) -> int:
    return percent_of(subtotal, tax_rate)
