"""
Order Synthesizer — drive one order through the provider and into the ledger.

    Created -> ItemsAdded -> (DiscountApplied) -> Priced -> Paid -> Settled

Every provider call is awaited before the next one starts. A Commerce API
error anywhere in the lifecycle propagates to the caller and nothing is
written to the ledger for that order. Ledger write errors propagate as well;
an order the ledger already holds comes back as SKIPPED.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from enum import Enum
from typing import Any

import structlog

from integrations.base import (
    CatalogItem,
    CommerceApiError,
    CommerceClient,
    Customer,
    Discount,
    Employee,
    GiftCard,
    LineItemRequest,
    OrderState,
    PaymentRef,
    PaymentRequest,
    Tender,
)
from ledger.store import LedgerStore
from simulator.config import SimulationConfig
from simulator.distributions import (
    CUSTOMER_ATTACH_CHANCE,
    DINING_BY_PERIOD,
    DISCOUNT_CHANCE_ANONYMOUS,
    DISCOUNT_CHANCE_WITH_CUSTOMER,
    HAPPY_HOUR_DISCOUNT_PREFERENCE,
    LINE_ITEM_NOTE_CHANCE,
    LINE_ITEM_NOTES,
    MEAL_PERIODS,
    MULTI_QUANTITY_CHANCE,
    DiningOption,
    MealPeriod,
)
from simulator.item_selector import select_items
from simulator.payment_allocator import PaymentAllocator, PaymentShare
from simulator.pricing import compute_tax, compute_tip

logger = structlog.get_logger()


@dataclass(frozen=True)
class ReferenceData:
    """Merchant catalog and staff, fetched once per run."""

    items: list[CatalogItem] = field(default_factory=list)
    employees: list[Employee] = field(default_factory=list)
    customers: list[Customer] = field(default_factory=list)
    tenders: list[Tender] = field(default_factory=list)
    discounts: list[Discount] = field(default_factory=list)
    gift_cards: list[GiftCard] = field(default_factory=list)

    def missing(self) -> list[str]:
        """Names of the collections an order cannot be built without."""
        return [name for name in ("items", "employees", "tenders") if not getattr(self, name)]


@dataclass(frozen=True)
class SynthesizedPayment:
    provider_payment_id: str
    sequence: int
    tender_name: str
    amount: int  # full charge: share amount plus tip
    tip_amount: int
    tax_amount: int


@dataclass(frozen=True)
class SynthesizedOrder:
    merchant_id: str
    provider_order_id: str
    business_date: date
    meal_period: str
    dining_option: str
    subtotal: int
    tax_amount: int
    tip_amount: int
    discount_amount: int
    total: int
    metadata: dict[str, Any] = field(default_factory=dict)


class SynthesisOutcome(str, Enum):
    SETTLED = "settled"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SynthesisResult:
    outcome: SynthesisOutcome
    order: SynthesizedOrder | None = None
    payments: tuple[SynthesizedPayment, ...] = ()
    payment_refs: tuple[PaymentRef, ...] = ()
    reason: str | None = None


class OrderSynthesizer:
    def __init__(
        self,
        client: CommerceClient,
        store: LedgerStore,
        config: SimulationConfig,
        rng: random.Random,
    ):
        self.client = client
        self.store = store
        self.config = config
        self.rng = rng
        self.allocator = PaymentAllocator(rng)
        self.logger = logger.bind(merchant_id=config.merchant_id)

    # ── draws ──────────────────────────────────────────────────────────────

    def choose_dining_option(self, period: MealPeriod) -> DiningOption:
        weights = DINING_BY_PERIOD[period]
        return self.rng.choices(list(weights), weights=list(weights.values()))[0]

    def build_line_items(self, items: list[CatalogItem], party_size: int) -> list[LineItemRequest]:
        requests = []
        for item in items:
            quantity = 1
            if party_size > 2 and self.rng.random() < MULTI_QUANTITY_CHANCE:
                quantity = self.rng.randint(2, 3)
            note = self.rng.choice(LINE_ITEM_NOTES) if self.rng.random() < LINE_ITEM_NOTE_CHANCE else None
            requests.append(LineItemRequest(item_id=item.id, quantity=quantity, note=note))
        return requests

    def choose_discount(self, period: MealPeriod, discounts: list[Discount], has_customer: bool) -> Discount | None:
        usable = [d for d in discounts if d.amount or d.percentage]
        if not usable:
            return None
        chance = DISCOUNT_CHANCE_WITH_CUSTOMER if has_customer else DISCOUNT_CHANCE_ANONYMOUS
        if self.rng.random() >= chance:
            return None
        if period == MealPeriod.HAPPY_HOUR:
            happy = [d for d in usable if "happy hour" in d.name.lower()]
            if happy and self.rng.random() < HAPPY_HOUR_DISCOUNT_PREFERENCE:
                return self.rng.choice(happy)
        return self.rng.choice(usable)

    def order_time(self, period: MealPeriod, business_date: date) -> datetime:
        start, end = MEAL_PERIODS[period].hours
        return datetime.combine(business_date, time(self.rng.randint(start, end), self.rng.randint(0, 59)))

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def synthesize(self, period: MealPeriod, business_date: date, reference: ReferenceData) -> SynthesisResult:
        missing = reference.missing()
        if missing:
            self.logger.warning("simulation.order.skipped", period=period.value, missing=missing)
            return SynthesisResult(SynthesisOutcome.SKIPPED, reason=f"no {', '.join(missing)}")

        profile = MEAL_PERIODS[period]

        # Created
        employee = self.rng.choice(reference.employees)
        customer = None
        if reference.customers and self.rng.random() < CUSTOMER_ATTACH_CHANCE:
            customer = self.rng.choice(reference.customers)
        dining = self.choose_dining_option(period)

        order_ref = await self.client.open_order(employee.id, customer.id if customer else None)
        log = self.logger.bind(provider_order_id=order_ref.id, period=period.value, dining=dining.value)
        await self.client.set_dining_option(order_ref, dining.provider_code)

        # ItemsAdded
        party_size = self.rng.randint(*profile.party_size)
        base_count = self.rng.randint(*profile.item_count)
        item_count = max(base_count + party_size // 2, 1)
        items = select_items(period, reference.items, item_count, party_size, self.rng)
        line_items = self.build_line_items(items, party_size)
        await self.client.add_line_items(order_ref, line_items)
        gross = sum(item.price * line.quantity for item, line in zip(items, line_items))

        # DiscountApplied
        discount = self.choose_discount(period, reference.discounts, customer is not None)
        if discount is not None:
            await self.client.apply_discount(order_ref, discount)

        # Priced
        net = await self.client.get_order_total(order_ref)
        subtotal = max(gross, net)  # provider-side modifiers can lift net above the catalog sum
        discount_amount = subtotal - net
        tax = compute_tax(net, self.config.tax_rate)
        tip = compute_tip(net, dining, party_size, self.rng)

        # Paid
        shares = None
        gift_card_use = None
        choice = self.allocator.choose_gift_card(reference.gift_cards, reference.tenders) if net + tax > 0 else None
        if choice is not None:
            shares, gift_card_use = await self._gift_card_payment(
                reference, *choice, amount=net + tax, tip=tip.amount, tax=tax, log=log
            )
        if shares is None:
            shares = self.allocator.allocate(
                amount=net + tax,
                tip=tip.amount,
                tax=tax,
                subtotal=net,
                dining=dining,
                party_size=party_size,
                tenders=reference.tenders,
            )
        payments: list[SynthesizedPayment] = []
        refs: list[PaymentRef] = []
        for sequence, share in enumerate(shares):
            ref = await self.client.submit_payment(
                order_ref,
                PaymentRequest(
                    tender_id=share.tender.id,
                    amount=share.amount,
                    tip_amount=share.tip,
                    tax_amount=share.tax,
                    employee_id=employee.id,
                ),
            )
            refs.append(ref)
            payments.append(
                SynthesizedPayment(
                    provider_payment_id=ref.id,
                    sequence=sequence,
                    tender_name=share.tender.label,
                    amount=share.charge,
                    tip_amount=share.tip,
                    tax_amount=share.tax,
                )
            )

        # Settled
        await self.client.set_order_state(order_ref, OrderState.PAID)
        order = SynthesizedOrder(
            merchant_id=self.config.merchant_id,
            provider_order_id=order_ref.id,
            business_date=business_date,
            meal_period=period.value,
            dining_option=dining.value,
            subtotal=subtotal,
            tax_amount=tax,
            tip_amount=tip.amount,
            discount_amount=discount_amount,
            total=subtotal + tax + tip.amount - discount_amount,
            metadata={
                "party_size": party_size,
                "order_type": dining.provider_code,
                "discount": {"id": discount.id, "name": discount.name} if discount else None,
                "line_item_count": len(line_items),
                "order_time": self.order_time(period, business_date).isoformat(),
                "employee_id": employee.id,
                "customer_id": customer.id if customer else None,
                "tip_percentage": tip.percentage,
                "split_count": len(payments),
                "gift_card": gift_card_use,
            },
        )
        if not await self.store.record_order(order, payments):
            log.warning("simulation.order.already_recorded")
            return SynthesisResult(SynthesisOutcome.SKIPPED, order=order, reason="already recorded")

        log.info(
            "simulation.order.settled",
            total=order.total,
            payments=len(payments),
            party_size=party_size,
        )
        return SynthesisResult(
            SynthesisOutcome.SETTLED,
            order=order,
            payments=tuple(payments),
            payment_refs=tuple(refs),
        )

    async def _gift_card_payment(
        self,
        reference: ReferenceData,
        card: GiftCard,
        gift_tender: Tender,
        *,
        amount: int,
        tip: int,
        tax: int,
        log,
    ) -> tuple[list[PaymentShare] | None, dict[str, Any] | None]:
        """Redeem from a gift card; (None, None) sends the order down the regular tender path."""
        try:
            redemption = await self.client.redeem_gift_card(card, amount)
        except CommerceApiError as exc:
            log.warning("simulation.gift_card.redeem_failed", gift_card_id=card.id, error=str(exc))
            return None, None

        # Later orders in the run see the drawn-down balance
        reference.gift_cards[reference.gift_cards.index(card)] = replace(card, balance=redemption.remaining_balance)

        shares = self.allocator.gift_card_shares(
            amount=amount,
            tip=tip,
            tax=tax,
            redeemed=redemption.amount_redeemed,
            gift_tender=gift_tender,
            tenders=reference.tenders,
        )
        full = len(shares) == 1
        log.info(
            "simulation.gift_card.redeemed",
            gift_card_id=card.id,
            redeemed=redemption.amount_redeemed,
            remaining_balance=redemption.remaining_balance,
            full=full,
        )
        return shares, {"id": card.id, "redeemed": redemption.amount_redeemed, "full": full}
