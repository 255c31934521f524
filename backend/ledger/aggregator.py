"""
Ledger Aggregator — daily rollup per merchant.

The summary is recomputed from the order rows every time, so running it
twice over the same data yields the same row. Revenue, order and payment
counts cover paid orders; refunded orders only feed `refund_count`.
"""

from collections import Counter
from collections.abc import Iterable
from datetime import date

import structlog
from sqlalchemy.exc import IntegrityError

from db.models import DailySummary, SimulatedOrder
from ledger.statuses import OrderStatus
from ledger.store import LedgerStore

logger = structlog.get_logger()

UNKNOWN = "unknown"


def _sorted(counter: Counter) -> dict:
    return {key: counter[key] for key in sorted(counter)}


def summarize_orders(paid: Iterable[SimulatedOrder], refunded: Iterable[SimulatedOrder]) -> dict:
    """Summary fields for one merchant/day."""
    order_count = payment_count = 0
    revenue = tax = tips = discounts = 0
    by_period: Counter = Counter()
    by_dining: Counter = Counter()
    by_tender: Counter = Counter()
    revenue_by_period: Counter = Counter()
    revenue_by_dining: Counter = Counter()
    revenue_by_tender: Counter = Counter()

    for order in paid:
        order_count += 1
        revenue += order.total
        tax += order.tax_amount
        tips += order.tip_amount
        discounts += order.discount_amount

        period = order.meal_period or UNKNOWN
        dining = order.dining_option or UNKNOWN
        by_period[period] += 1
        by_dining[dining] += 1
        revenue_by_period[period] += order.total
        revenue_by_dining[dining] += order.total

        for payment in order.payments:
            payment_count += 1
            by_tender[payment.tender_name] += 1
            revenue_by_tender[payment.tender_name] += payment.amount

    return {
        "order_count": order_count,
        "payment_count": payment_count,
        "refund_count": sum(1 for _ in refunded),
        "total_revenue": revenue,
        "total_tax": tax,
        "total_tips": tips,
        "total_discounts": discounts,
        "breakdown": {
            "by_meal_period": _sorted(by_period),
            "by_dining_option": _sorted(by_dining),
            "by_tender": _sorted(by_tender),
            "revenue_by_meal_period": _sorted(revenue_by_period),
            "revenue_by_dining_option": _sorted(revenue_by_dining),
            "revenue_by_tender": _sorted(revenue_by_tender),
        },
    }


class LedgerAggregator:
    MAX_RETRIES = 1

    def __init__(self, store: LedgerStore):
        self.store = store

    async def _aggregate_once(self, merchant_id: str, business_date: date) -> DailySummary:
        paid = await self.store.query_orders(merchant_id, business_date, status=OrderStatus.PAID)
        refunded = await self.store.query_orders(merchant_id, business_date, status=OrderStatus.REFUNDED)
        fields = summarize_orders(paid, refunded)
        return await self.store.upsert_daily_summary(merchant_id, business_date, fields)

    async def aggregate(self, merchant_id: str, business_date: date) -> DailySummary:
        """Recompute and upsert the summary, retrying once on a uniqueness race."""
        attempt = 0
        while True:
            try:
                summary = await self._aggregate_once(merchant_id, business_date)
            except IntegrityError:
                await self.store.rollback()
                if attempt >= self.MAX_RETRIES:
                    logger.error(
                        "ledger.summary.upsert_failed",
                        merchant_id=merchant_id,
                        business_date=business_date.isoformat(),
                    )
                    raise
                attempt += 1
                logger.warning(
                    "ledger.summary.upsert_conflict",
                    merchant_id=merchant_id,
                    business_date=business_date.isoformat(),
                    attempt=attempt,
                )
                continue

            logger.info(
                "ledger.summary.updated",
                merchant_id=merchant_id,
                business_date=business_date.isoformat(),
                order_count=summary.order_count,
                total_revenue=summary.total_revenue,
            )
            return summary
