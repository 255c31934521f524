"""
Ledger Store — persistence for simulated orders, payments and summaries.

Each write commits on its own so a failure later in a run never loses orders
that were already settled. Order identity is (merchant_id, provider_order_id);
recording the same order twice is a no-op.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import ApiRequest, DailySummary, SimulatedOrder, SimulatedPayment
from ledger.statuses import (
    InvalidStatusTransition,
    OrderStatus,
    PaymentStatus,
    can_transition,
    classify_tender,
)

if TYPE_CHECKING:
    from integrations.clover import ApiCallRecord
    from simulator.order_synthesizer import SynthesizedOrder, SynthesizedPayment

logger = structlog.get_logger()

SUMMARY_FIELDS = (
    "order_count",
    "payment_count",
    "refund_count",
    "total_revenue",
    "total_tax",
    "total_tips",
    "total_discounts",
    "breakdown",
)


class OrderNotFound(LookupError):
    pass


class LedgerStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ── orders ─────────────────────────────────────────────────────────────

    async def get_order(self, merchant_id: str, provider_order_id: str) -> SimulatedOrder | None:
        result = await self.session.execute(
            select(SimulatedOrder)
            .options(selectinload(SimulatedOrder.payments))
            .where(
                SimulatedOrder.merchant_id == merchant_id,
                SimulatedOrder.provider_order_id == provider_order_id,
            )
        )
        return result.scalar_one_or_none()

    async def record_order(self, order: SynthesizedOrder, payments: Sequence[SynthesizedPayment]) -> bool:
        """Persist a settled order with its payments.

        Returns False (and writes nothing) when the order is already recorded.
        Any other integrity failure, such as a payment id already used by a
        different order or totals that do not balance, is re-raised.
        """
        if await self.get_order(order.merchant_id, order.provider_order_id) is not None:
            logger.info(
                "ledger.order.duplicate",
                merchant_id=order.merchant_id,
                provider_order_id=order.provider_order_id,
            )
            return False

        row = SimulatedOrder(
            merchant_id=order.merchant_id,
            provider_order_id=order.provider_order_id,
            business_date=order.business_date,
            status=OrderStatus.PAID.value,
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            tip_amount=order.tip_amount,
            discount_amount=order.discount_amount,
            total=order.total,
            meal_period=order.meal_period,
            dining_option=order.dining_option,
            order_metadata=dict(order.metadata),
        )
        row.payments = [
            SimulatedPayment(
                provider_payment_id=payment.provider_payment_id,
                sequence=payment.sequence,
                tender_name=payment.tender_name,
                payment_type=classify_tender(payment.tender_name).value,
                amount=payment.amount,
                tip_amount=payment.tip_amount,
                tax_amount=payment.tax_amount,
                status=PaymentStatus.PAID.value,
            )
            for payment in payments
        ]
        self.session.add(row)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            # Only a concurrent writer of this same order makes the insert a no-op
            duplicate = isinstance(exc, IntegrityError) and (
                await self.get_order(order.merchant_id, order.provider_order_id) is not None
            )
            if duplicate:
                logger.info(
                    "ledger.order.duplicate",
                    merchant_id=order.merchant_id,
                    provider_order_id=order.provider_order_id,
                )
                return False
            logger.error(
                "ledger.order.write_failed",
                merchant_id=order.merchant_id,
                provider_order_id=order.provider_order_id,
                error=str(exc.orig if isinstance(exc, IntegrityError) else exc),
            )
            raise
        return True

    async def update_order_status(
        self,
        merchant_id: str,
        provider_order_id: str,
        status: OrderStatus,
        *,
        payment_ids: Iterable[str] | None = None,
    ) -> SimulatedOrder:
        """Move an order forward through open -> paid -> refunded (or open -> failed).

        On refund, the payments named by `payment_ids` (all payments when
        omitted) are marked refunded as well.
        """
        status = OrderStatus(status)
        row = await self.get_order(merchant_id, provider_order_id)
        if row is None:
            raise OrderNotFound(f"No ledger order {provider_order_id} for merchant {merchant_id}")

        current = OrderStatus(row.status)
        if not can_transition(current, status):
            raise InvalidStatusTransition(current.value, status.value)

        row.status = status.value
        if status == OrderStatus.REFUNDED:
            wanted = set(payment_ids) if payment_ids is not None else None
            for payment in row.payments:
                if wanted is None or payment.provider_payment_id in wanted:
                    payment.status = PaymentStatus.REFUNDED.value
        elif status == OrderStatus.FAILED:
            for payment in row.payments:
                if payment.status == PaymentStatus.PENDING.value:
                    payment.status = PaymentStatus.FAILED.value

        await self.session.commit()
        return row

    async def query_orders(
        self,
        merchant_id: str,
        business_date: date,
        status: OrderStatus | Iterable[OrderStatus] | None = None,
    ) -> list[SimulatedOrder]:
        query = (
            select(SimulatedOrder)
            .options(selectinload(SimulatedOrder.payments))
            .where(
                SimulatedOrder.merchant_id == merchant_id,
                SimulatedOrder.business_date == business_date,
            )
            .order_by(SimulatedOrder.created_at, SimulatedOrder.provider_order_id)
        )
        if isinstance(status, (str, OrderStatus)):
            query = query.where(SimulatedOrder.status == OrderStatus(status).value)
        elif status is not None:
            query = query.where(SimulatedOrder.status.in_([OrderStatus(s).value for s in status]))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ── summaries ──────────────────────────────────────────────────────────

    async def get_daily_summary(self, merchant_id: str, business_date: date) -> DailySummary | None:
        result = await self.session.execute(
            select(DailySummary).where(
                DailySummary.merchant_id == merchant_id,
                DailySummary.business_date == business_date,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_daily_summary(
        self,
        merchant_id: str,
        business_date: date,
        fields: Mapping[str, Any],
    ) -> DailySummary:
        """Find-or-create the summary row and overwrite every field.

        A concurrent insert surfaces as IntegrityError; the caller decides
        whether to retry.
        """
        unknown = set(fields) - set(SUMMARY_FIELDS)
        if unknown:
            raise ValueError(f"Unknown summary fields: {', '.join(sorted(unknown))}")

        summary = await self.get_daily_summary(merchant_id, business_date)
        if summary is None:
            summary = DailySummary(merchant_id=merchant_id, business_date=business_date)
            self.session.add(summary)
        for name, value in fields.items():
            setattr(summary, name, value)
        await self.session.commit()
        return summary

    # ── audit ──────────────────────────────────────────────────────────────

    async def record_api_request(self, record: ApiCallRecord) -> None:
        self.session.add(
            ApiRequest(
                http_method=record.http_method,
                url=record.url,
                request_payload=record.request_payload,
                response_payload=record.response_payload,
                response_status=record.response_status,
                duration_ms=record.duration_ms,
                error_message=record.error_message,
                resource_type=record.resource_type,
                resource_id=record.resource_id,
            )
        )
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def rollback(self) -> None:
        await self.session.rollback()
