"""
Payment Allocator — settle one order across one or more tenders.

Amounts are integer cents. For a split, every share except the last gets its
percentage of the charge and tip (rounded half up); the last share takes the
exact remainder, so the shares always add back to the order. Tax is carried
entirely on the first share, which is how the provider settles split tickets.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from core.money import percent_of, round_half_up
from integrations.base import GiftCard, Tender
from simulator.distributions import (
    CASH_PREFERENCE_CHANCE,
    CASH_PREFERENCE_THRESHOLD,
    EVEN_SPLIT_CHANCE,
    GIFT_CARD_PAYMENT_CHANCE,
    MAX_SPLITS,
    MIN_SPLIT_PERCENT,
    SPLIT_CHANCE_DEFAULT,
    SPLIT_CHANCE_DINE_IN_GROUP,
    SPLIT_CUT_RANGE,
    DiningOption,
)


class NoSplitPossible(Exception):
    """Fewer than two tenders are available; pay with a single tender."""


@dataclass(frozen=True)
class PaymentShare:
    tender: Tender
    percentage: int
    amount: int  # tax included, tip excluded
    tip: int
    tax: int

    @property
    def charge(self) -> int:
        """Everything this tender pays: its amount plus its tip."""
        return self.amount + self.tip


def even_split(count: int) -> list[int]:
    base, remainder = divmod(100, count)
    percentages = [base] * count
    percentages[0] += remainder
    return percentages


def random_split(count: int, rng: random.Random) -> list[int]:
    cuts = sorted(rng.randint(SPLIT_CUT_RANGE.low, SPLIT_CUT_RANGE.high) for _ in range(count - 1))
    percentages = []
    previous = 0
    for cut in cuts:
        percentages.append(cut - previous)
        previous = cut
    percentages.append(100 - previous)
    return enforce_minimum_share(percentages)


def enforce_minimum_share(percentages: Sequence[int], floor: int = MIN_SPLIT_PERCENT) -> list[int]:
    """Raise every share to `floor`, taking the difference from the largest shares."""
    shares = [max(p, floor) for p in percentages]
    excess = sum(shares) - 100
    while excess > 0:
        largest = max(range(len(shares)), key=lambda i: shares[i])
        taken = min(excess, shares[largest] - floor)
        shares[largest] -= taken
        excess -= taken
    return shares


def apportion(total: int, percentages: Sequence[int]) -> list[int]:
    """Split `total` by percentage; the last part takes the exact remainder."""
    parts = []
    remaining = total
    for pct in percentages[:-1]:
        part = min(percent_of(total, pct), remaining)
        parts.append(part)
        remaining -= part
    parts.append(remaining)
    return parts


def build_shares(
    tenders: Sequence[Tender],
    percentages: Sequence[int],
    *,
    amount: int,
    tip: int,
    tax: int,
) -> list[PaymentShare]:
    amounts = apportion(amount, percentages)
    tips = apportion(tip, percentages)
    return [
        PaymentShare(
            tender=tender,
            percentage=pct,
            amount=amounts[i],
            tip=tips[i],
            tax=tax if i == 0 else 0,
        )
        for i, (tender, pct) in enumerate(zip(tenders, percentages))
    ]


class PaymentAllocator:
    """Decides whether an order splits, and how."""

    def __init__(self, rng: random.Random):
        self.rng = rng

    def split_chance(self, dining: DiningOption, party_size: int) -> float:
        if dining == DiningOption.DINE_IN and party_size >= 2:
            return SPLIT_CHANCE_DINE_IN_GROUP
        return SPLIT_CHANCE_DEFAULT

    def split_count(self, party_size: int, tender_count: int) -> int:
        upper = min(party_size, MAX_SPLITS, tender_count)
        return 2 if upper < 2 else self.rng.randint(2, upper)

    def split_percentages(self, count: int) -> list[int]:
        if count == 1:
            return [100]
        if self.rng.random() < EVEN_SPLIT_CHANCE:
            return even_split(count)
        return random_split(count, self.rng)

    def split(
        self,
        *,
        amount: int,
        tip: int,
        tax: int,
        dining: DiningOption,
        party_size: int,
        tenders: Sequence[Tender],
    ) -> list[PaymentShare] | None:
        """Shares for a split payment, or None when this order pays in one go.

        Raises NoSplitPossible when fewer than two tenders exist.
        """
        if len(tenders) < 2:
            raise NoSplitPossible(f"{len(tenders)} tender(s) available")
        if self.rng.random() >= self.split_chance(dining, party_size):
            return None

        count = self.split_count(max(party_size, 1), len(tenders))
        selected = self.rng.sample(list(tenders), count)
        percentages = self.split_percentages(count)
        return build_shares(selected, percentages, amount=amount, tip=tip, tax=tax)

    def single(self, *, amount: int, tip: int, tax: int, subtotal: int, tenders: Sequence[Tender]) -> PaymentShare:
        """One tender for the whole order; small tickets lean towards cash."""
        tender = None
        if subtotal < CASH_PREFERENCE_THRESHOLD and self.rng.random() < CASH_PREFERENCE_CHANCE:
            tender = next((t for t in tenders if t.label.lower() == "cash"), None)
        if tender is None:
            tender = self.rng.choice(list(tenders))
        return PaymentShare(tender=tender, percentage=100, amount=amount, tip=tip, tax=tax)

    def allocate(
        self,
        *,
        amount: int,
        tip: int,
        tax: int,
        subtotal: int,
        dining: DiningOption,
        party_size: int,
        tenders: Sequence[Tender],
    ) -> list[PaymentShare]:
        try:
            shares = self.split(amount=amount, tip=tip, tax=tax, dining=dining, party_size=party_size, tenders=tenders)
        except NoSplitPossible:
            shares = None
        if shares:
            return shares
        return [self.single(amount=amount, tip=tip, tax=tax, subtotal=subtotal, tenders=tenders)]

    # ── gift cards ─────────────────────────────────────────────────────────

    def choose_gift_card(
        self, gift_cards: Sequence[GiftCard], tenders: Sequence[Tender]
    ) -> tuple[GiftCard, Tender] | None:
        """A redeemable card and the gift tender to settle it with, about one order in ten."""
        gift_tender = next((t for t in tenders if t.is_gift_card), None)
        redeemable = [card for card in gift_cards if card.is_redeemable]
        if gift_tender is None or not redeemable:
            return None
        if self.rng.random() >= GIFT_CARD_PAYMENT_CHANCE:
            return None
        return self.rng.choice(redeemable), gift_tender

    def gift_card_shares(
        self,
        *,
        amount: int,
        tip: int,
        tax: int,
        redeemed: int,
        gift_tender: Tender,
        tenders: Sequence[Tender],
    ) -> list[PaymentShare]:
        """Settle with a gift card redemption of `redeemed` cents.

        A card that covered `amount` pays the whole ticket, tip included.
        Otherwise the card pays what it covered and a second tender pays
        the shortfall plus the tip.
        """
        if redeemed >= amount:
            return [PaymentShare(tender=gift_tender, percentage=100, amount=amount, tip=tip, tax=tax)]

        others = [t for t in tenders if t.id != gift_tender.id] or [gift_tender]
        other = self.rng.choice(others)
        gift_percentage = round_half_up(Decimal(redeemed * 100) / amount)
        return [
            PaymentShare(tender=gift_tender, percentage=gift_percentage, amount=redeemed, tip=0, tax=tax),
            PaymentShare(tender=other, percentage=100 - gift_percentage, amount=amount - redeemed, tip=tip, tax=0),
        ]
