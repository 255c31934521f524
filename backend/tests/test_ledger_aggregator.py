from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from db.models import DailySummary
from ledger.aggregator import LedgerAggregator
from ledger.statuses import OrderStatus
from simulator.order_synthesizer import SynthesizedOrder, SynthesizedPayment

BUSINESS_DATE = date(2026, 3, 14)


def _order(order_id, *, period="dinner", dining="dine_in", subtotal=2000, tax=165, tip=300, discount=0):
    return SynthesizedOrder(
        merchant_id="M-1",
        provider_order_id=order_id,
        business_date=BUSINESS_DATE,
        meal_period=period,
        dining_option=dining,
        subtotal=subtotal,
        tax_amount=tax,
        tip_amount=tip,
        discount_amount=discount,
        total=subtotal + tax + tip - discount,
    )


async def _seed(store):
    await store.record_order(
        _order("ORD-1"),
        [SynthesizedPayment("P-1", 0, "Cash", 2465, 300, 165)],
    )
    await store.record_order(
        _order("ORD-2", period="lunch", dining="takeout", subtotal=1200, tax=99, tip=0, discount=200),
        [
            SynthesizedPayment("P-2", 0, "Check", 600, 0, 99),
            SynthesizedPayment("P-3", 1, "Cash", 499, 0, 0),
        ],
    )
    await store.record_order(
        _order("ORD-3", period="breakfast"),
        [SynthesizedPayment("P-4", 0, "Gift Card", 2465, 300, 165)],
    )
    await store.update_order_status("M-1", "ORD-3", OrderStatus.REFUNDED)


@pytest.mark.asyncio
async def test_summary_counts_paid_orders_and_refunds(ledger_store):
    await _seed(ledger_store)

    summary = await LedgerAggregator(ledger_store).aggregate("M-1", BUSINESS_DATE)

    assert summary.order_count == 2
    assert summary.payment_count == 3
    assert summary.refund_count == 1
    assert summary.total_revenue == 2465 + 1099
    assert summary.total_tax == 165 + 99
    assert summary.total_tips == 300
    assert summary.total_discounts == 200
    assert summary.breakdown["by_meal_period"] == {"dinner": 1, "lunch": 1}
    assert summary.breakdown["by_tender"] == {"Cash": 2, "Check": 1}
    assert summary.breakdown["revenue_by_tender"] == {"Cash": 2964, "Check": 600}
    assert summary.breakdown["revenue_by_dining_option"] == {"dine_in": 2465, "takeout": 1099}


@pytest.mark.asyncio
async def test_breakdown_keys_are_sorted(ledger_store):
    await _seed(ledger_store)
    summary = await LedgerAggregator(ledger_store).aggregate("M-1", BUSINESS_DATE)
    for mapping in summary.breakdown.values():
        assert list(mapping) == sorted(mapping)


@pytest.mark.asyncio
async def test_aggregation_is_idempotent(ledger_store, test_db):
    await _seed(ledger_store)
    aggregator = LedgerAggregator(ledger_store)

    first = await aggregator.aggregate("M-1", BUSINESS_DATE)
    first_values = (first.order_count, first.total_revenue, dict(first.breakdown))
    second = await aggregator.aggregate("M-1", BUSINESS_DATE)

    assert (second.order_count, second.total_revenue, dict(second.breakdown)) == first_values
    rows = await test_db.scalar(select(func.count()).select_from(DailySummary))
    assert rows == 1


@pytest.mark.asyncio
async def test_empty_day_produces_zero_summary(ledger_store):
    summary = await LedgerAggregator(ledger_store).aggregate("M-1", BUSINESS_DATE)
    assert summary.order_count == 0
    assert summary.total_revenue == 0
    assert summary.breakdown["by_tender"] == {}


def _conflict():
    return IntegrityError("INSERT INTO daily_summaries", {}, Exception("UNIQUE constraint failed"))


@pytest.mark.asyncio
async def test_upsert_conflict_retried_once(ledger_store, monkeypatch):
    await _seed(ledger_store)
    real_upsert = ledger_store.upsert_daily_summary
    calls = []

    async def _flaky(merchant_id, business_date, fields):
        calls.append(merchant_id)
        if len(calls) == 1:
            raise _conflict()
        return await real_upsert(merchant_id, business_date, fields)

    monkeypatch.setattr(ledger_store, "upsert_daily_summary", _flaky)

    summary = await LedgerAggregator(ledger_store).aggregate("M-1", BUSINESS_DATE)
    assert len(calls) == 2
    assert summary.order_count == 2


@pytest.mark.asyncio
async def test_second_conflict_propagates(ledger_store, monkeypatch):
    calls = []

    async def _always_conflicts(merchant_id, business_date, fields):
        calls.append(merchant_id)
        raise _conflict()

    monkeypatch.setattr(ledger_store, "upsert_daily_summary", _always_conflicts)

    with pytest.raises(IntegrityError):
        await LedgerAggregator(ledger_store).aggregate("M-1", BUSINESS_DATE)
    assert len(calls) == 2
