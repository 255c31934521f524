"""
Day Orchestrator — one merchant, one business day.

Decides how many orders to place and when, runs them one at a time through
the Order Synthesizer, issues the occasional refund, and finally rolls the
day up with the Ledger Aggregator. Per-order API failures are logged and
counted; only missing reference data aborts a run.
"""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from core.money import percent_of, round_half_up
from integrations.base import CommerceApiError, CommerceClient, RefundRef, RejectedApiError, TransientApiError
from ledger.aggregator import LedgerAggregator
from ledger.statuses import InvalidStatusTransition, OrderStatus
from ledger.store import LedgerStore, OrderNotFound
from simulator.config import SimulationConfig
from simulator.distributions import (
    FULL_REFUND_CHANCE,
    MEAL_PERIODS,
    PARTIAL_REFUND_PERCENT,
    REFUND_REASONS,
    MealPeriod,
    volume_band_for,
)
from simulator.order_synthesizer import OrderSynthesizer, ReferenceData, SynthesisOutcome, SynthesisResult

logger = structlog.get_logger()


class PreconditionError(Exception):
    """The merchant is missing data every order needs; no order was attempted."""


def order_count_for_date(
    business_date: date,
    rng: random.Random,
    *,
    multiplier: float = 1.0,
    count: int | None = None,
) -> int:
    """An explicit count wins; otherwise draw from the weekday band and scale."""
    if count is not None:
        if count < 0:
            raise ValueError(f"order count must be non-negative, got {count}")
        return count
    if multiplier < 0:
        raise ValueError(f"multiplier must be non-negative, got {multiplier}")
    band = volume_band_for(business_date)
    return round_half_up(rng.randint(band.low, band.high) * multiplier)


def distribute_orders_by_period(
    total: int,
    periods: Iterable[MealPeriod] | None = None,
) -> dict[MealPeriod, int]:
    """Split `total` across meal periods by weight.

    Periods keep declaration order; the last one absorbs the rounding
    remainder so the counts always add up to `total`.
    """
    wanted = set(periods) if periods is not None else set(MEAL_PERIODS)
    selected = [p for p in MEAL_PERIODS if p in wanted]
    if not selected:
        raise ValueError("at least one meal period is required")

    total_weight = sum(MEAL_PERIODS[p].weight for p in selected)
    plan: dict[MealPeriod, int] = {}
    remaining = total
    for period in selected[:-1]:
        share = round_half_up(Decimal(MEAL_PERIODS[period].weight * total) / total_weight)
        share = min(share, remaining)
        plan[period] = share
        remaining -= share
    plan[selected[-1]] = remaining
    return plan


@dataclass
class DayRunResult:
    merchant_id: str
    business_date: date
    requested: int
    attempted: int = 0
    settled: int = 0
    refunded: int = 0
    refunds_full: int = 0
    refunds_partial: int = 0
    refund_amount: int = 0
    gift_card_payments: int = 0
    gift_card_full: int = 0
    gift_card_partial: int = 0
    gift_card_redeemed: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    planned_by_period: dict[str, int] = field(default_factory=dict)
    by_period: dict[str, int] = field(default_factory=dict)
    by_dining: dict[str, int] = field(default_factory=dict)
    revenue: int = 0
    summary: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["business_date"] = self.business_date.isoformat()
        return data


async def load_reference_data(client: CommerceClient) -> ReferenceData:
    # Gift cards are optional; a merchant without the gift card app just pays with tenders
    try:
        gift_cards = await client.fetch_gift_cards()
    except CommerceApiError as exc:
        logger.warning("simulation.gift_cards_unavailable", merchant_id=client.merchant_id, error=str(exc))
        gift_cards = []

    return ReferenceData(
        items=await client.fetch_items(),
        employees=await client.fetch_employees(),
        customers=await client.fetch_customers(),
        tenders=await client.fetch_tenders(),
        discounts=await client.fetch_discounts(),
        gift_cards=gift_cards,
    )


class DayOrchestrator:
    def __init__(
        self,
        client: CommerceClient,
        store: LedgerStore,
        config: SimulationConfig,
        rng: random.Random | None = None,
    ):
        self.client = client
        self.store = store
        self.config = config
        self.rng = rng or random.Random()
        self.synthesizer = OrderSynthesizer(client, store, config, self.rng)
        self.aggregator = LedgerAggregator(store)
        self.logger = logger.bind(merchant_id=config.merchant_id)

    async def run_day(
        self,
        business_date: date,
        *,
        count: int | None = None,
        multiplier: float = 1.0,
        periods: Iterable[MealPeriod] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DayRunResult:
        total = order_count_for_date(business_date, self.rng, multiplier=multiplier, count=count)
        plan = distribute_orders_by_period(total, periods)
        log = self.logger.bind(business_date=business_date.isoformat())

        try:
            reference = await load_reference_data(self.client)
        except CommerceApiError as exc:
            log.error("simulation.day.reference_fetch_failed", error=str(exc), status=exc.status_code)
            raise PreconditionError(
                f"Could not load reference data for merchant {self.config.merchant_id}: {exc}"
            ) from exc
        missing = reference.missing()
        if missing:
            log.error("simulation.day.precondition_failed", missing=missing)
            raise PreconditionError(f"Merchant {self.config.merchant_id} has no {', '.join(missing)}")

        result = DayRunResult(
            merchant_id=self.config.merchant_id,
            business_date=business_date,
            requested=total,
            planned_by_period={period.value: n for period, n in plan.items()},
        )
        log.info("simulation.day.started", requested=total, plan=result.planned_by_period)

        by_period: Counter = Counter()
        by_dining: Counter = Counter()
        for period, planned in plan.items():
            for _ in range(planned):
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    break
                result.attempted += 1
                outcome = await self._place_order(period, business_date, reference, log)
                if outcome is None:
                    result.failed += 1
                    continue
                if outcome.outcome == SynthesisOutcome.SKIPPED:
                    result.skipped += 1
                    continue

                result.settled += 1
                result.revenue += outcome.order.total
                by_period[period.value] += 1
                by_dining[outcome.order.dining_option] += 1
                gift_card = outcome.order.metadata.get("gift_card")
                if gift_card:
                    result.gift_card_payments += 1
                    result.gift_card_redeemed += gift_card["redeemed"]
                    if gift_card["full"]:
                        result.gift_card_full += 1
                    else:
                        result.gift_card_partial += 1

                issued = await self._maybe_refund(outcome, log)
                if issued is not None:
                    refund, partial = issued
                    result.refunded += 1
                    result.refund_amount += refund.amount
                    if partial:
                        result.refunds_partial += 1
                    else:
                        result.refunds_full += 1
            if result.cancelled:
                log.warning("simulation.day.cancelled", attempted=result.attempted)
                break

        result.by_period = dict(by_period)
        result.by_dining = dict(by_dining)

        summary = await self.aggregator.aggregate(self.config.merchant_id, business_date)
        result.summary = summary_to_dict(summary)
        log.info(
            "simulation.day.completed",
            attempted=result.attempted,
            settled=result.settled,
            refunded=result.refunded,
            failed=result.failed,
            skipped=result.skipped,
            cancelled=result.cancelled,
        )
        return result

    async def _place_order(self, period, business_date, reference, log) -> SynthesisResult | None:
        try:
            return await self.synthesizer.synthesize(period, business_date, reference)
        except TransientApiError as exc:
            log.warning("simulation.order.transient_failure", period=period.value, error=str(exc))
        except RejectedApiError as exc:
            log.error("simulation.order.rejected", period=period.value, error=str(exc), status=exc.status_code)
        except CommerceApiError as exc:
            log.error("simulation.order.failed", period=period.value, error=str(exc))
        except SQLAlchemyError as exc:
            log.error("simulation.order.ledger_failed", period=period.value, error=str(exc))
        return None

    async def _maybe_refund(self, settled: SynthesisResult, log) -> tuple[RefundRef, bool] | None:
        """Refund the first payment of a settled order, sometimes.

        Returns the refund and whether it was partial, or None when no refund
        reached the ledger.
        """
        if not settled.payment_refs:
            return None
        if self.rng.random() >= self.config.refund_percentage / 100:
            return None

        payment_ref = settled.payment_refs[0]
        charge = settled.payments[0].amount
        amount = None
        if self.rng.random() >= FULL_REFUND_CHANCE:
            amount = percent_of(charge, self.rng.randint(PARTIAL_REFUND_PERCENT.low, PARTIAL_REFUND_PERCENT.high))
            if amount <= 0:
                amount = None
        reason = self.rng.choice(REFUND_REASONS)
        provider_order_id = settled.order.provider_order_id

        try:
            refund = await self.client.create_refund(payment_ref, amount=amount, reason=reason)
        except CommerceApiError as exc:
            log.warning("simulation.refund.failed", provider_order_id=provider_order_id, error=str(exc))
            return None

        try:
            await self.store.update_order_status(
                self.config.merchant_id,
                provider_order_id,
                OrderStatus.REFUNDED,
                payment_ids=[payment_ref.id],
            )
        except (OrderNotFound, InvalidStatusTransition, SQLAlchemyError) as exc:
            if isinstance(exc, SQLAlchemyError):
                await self.store.rollback()
            log.error(
                "simulation.refund.ledger_failed",
                provider_order_id=provider_order_id,
                refund_id=refund.id,
                error=str(exc),
            )
            return None

        log.info(
            "simulation.refund.issued",
            provider_order_id=provider_order_id,
            refund_id=refund.id,
            amount=refund.amount,
            partial=amount is not None,
            reason=reason,
        )
        return refund, amount is not None

    async def summarize(self, business_date: date) -> dict[str, Any]:
        """Re-run the daily rollup without placing any orders."""
        summary = await self.aggregator.aggregate(self.config.merchant_id, business_date)
        return summary_to_dict(summary)


def summary_to_dict(summary) -> dict[str, Any]:
    return {
        "merchant_id": summary.merchant_id,
        "business_date": summary.business_date.isoformat(),
        "order_count": summary.order_count,
        "payment_count": summary.payment_count,
        "refund_count": summary.refund_count,
        "total_revenue": summary.total_revenue,
        "total_tax": summary.total_tax,
        "total_tips": summary.total_tips,
        "total_discounts": summary.total_discounts,
        "breakdown": summary.breakdown,
    }
