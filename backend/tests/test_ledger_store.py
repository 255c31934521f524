from dataclasses import replace
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from integrations.clover import ApiCallRecord
from ledger.statuses import InvalidStatusTransition, OrderStatus, PaymentType, classify_tender
from ledger.store import OrderNotFound
from simulator.order_synthesizer import SynthesizedOrder, SynthesizedPayment

BUSINESS_DATE = date(2026, 3, 14)


def _order(provider_order_id="ORD-1", merchant_id="M-1", business_date=BUSINESS_DATE):
    return SynthesizedOrder(
        merchant_id=merchant_id,
        provider_order_id=provider_order_id,
        business_date=business_date,
        meal_period="dinner",
        dining_option="dine_in",
        subtotal=5000,
        tax_amount=371,
        tip_amount=900,
        discount_amount=500,
        total=5771,
        metadata={"party_size": 4},
    )


def _payments(prefix="PAY"):
    return [
        SynthesizedPayment(f"{prefix}-1", 0, "Cash", 3336, 450, 371),
        SynthesizedPayment(f"{prefix}-2", 1, "Gift Card", 2435, 450, 0),
    ]


@pytest.mark.asyncio
async def test_record_order_persists_order_and_payments(ledger_store):
    assert await ledger_store.record_order(_order(), _payments()) is True

    rows = await ledger_store.query_orders("M-1", BUSINESS_DATE)
    assert len(rows) == 1
    row = rows[0]
    assert row.status == "paid"
    assert row.total == row.subtotal + row.tax_amount + row.tip_amount - row.discount_amount
    assert sum(p.amount for p in row.payments) == row.total
    assert [p.payment_type for p in row.payments] == ["cash", "gift_card"]
    assert row.order_metadata == {"party_size": 4}


@pytest.mark.asyncio
async def test_recording_same_order_twice_is_noop(ledger_store):
    assert await ledger_store.record_order(_order(), _payments()) is True
    assert await ledger_store.record_order(_order(), _payments("OTHER")) is False

    rows = await ledger_store.query_orders("M-1", BUSINESS_DATE)
    assert len(rows) == 1
    assert {p.provider_payment_id for p in rows[0].payments} == {"PAY-1", "PAY-2"}


@pytest.mark.asyncio
async def test_payment_id_reused_by_another_order_is_raised(ledger_store):
    assert await ledger_store.record_order(_order("ORD-1"), _payments("PAY")) is True

    with pytest.raises(IntegrityError):
        await ledger_store.record_order(_order("ORD-2"), _payments("PAY"))

    rows = await ledger_store.query_orders("M-1", BUSINESS_DATE)
    assert [row.provider_order_id for row in rows] == ["ORD-1"]


@pytest.mark.asyncio
async def test_unbalanced_order_is_raised_not_treated_as_duplicate(ledger_store):
    with pytest.raises(IntegrityError):
        await ledger_store.record_order(replace(_order(), total=9999), _payments())

    assert await ledger_store.query_orders("M-1", BUSINESS_DATE) == []
    # The session is usable again after the failed write
    assert await ledger_store.record_order(_order(), _payments()) is True


@pytest.mark.asyncio
async def test_same_provider_id_for_different_merchants(ledger_store):
    assert await ledger_store.record_order(_order(merchant_id="M-1"), _payments("A")) is True
    assert await ledger_store.record_order(_order(merchant_id="M-2"), _payments("B")) is True


@pytest.mark.asyncio
async def test_refund_marks_order_and_named_payment(ledger_store):
    await ledger_store.record_order(_order(), _payments())

    row = await ledger_store.update_order_status("M-1", "ORD-1", OrderStatus.REFUNDED, payment_ids=["PAY-1"])
    assert row.status == "refunded"
    assert [p.status for p in row.payments] == ["refunded", "paid"]


@pytest.mark.asyncio
async def test_status_transitions_are_forward_only(ledger_store):
    await ledger_store.record_order(_order(), _payments())

    with pytest.raises(InvalidStatusTransition):
        await ledger_store.update_order_status("M-1", "ORD-1", OrderStatus.FAILED)

    await ledger_store.update_order_status("M-1", "ORD-1", OrderStatus.REFUNDED)
    with pytest.raises(InvalidStatusTransition):
        await ledger_store.update_order_status("M-1", "ORD-1", OrderStatus.PAID)


@pytest.mark.asyncio
async def test_unknown_order_status_update(ledger_store):
    with pytest.raises(OrderNotFound):
        await ledger_store.update_order_status("M-1", "missing", OrderStatus.REFUNDED)


@pytest.mark.asyncio
async def test_query_orders_filters_by_status_and_date(ledger_store):
    await ledger_store.record_order(_order("ORD-1"), _payments("A"))
    await ledger_store.record_order(_order("ORD-2"), _payments("B"))
    await ledger_store.record_order(_order("ORD-3", business_date=date(2026, 3, 15)), _payments("C"))
    await ledger_store.update_order_status("M-1", "ORD-2", OrderStatus.REFUNDED)

    paid = await ledger_store.query_orders("M-1", BUSINESS_DATE, status=OrderStatus.PAID)
    refunded = await ledger_store.query_orders("M-1", BUSINESS_DATE, status=OrderStatus.REFUNDED)
    both = await ledger_store.query_orders("M-1", BUSINESS_DATE, status=[OrderStatus.PAID, OrderStatus.REFUNDED])

    assert [o.provider_order_id for o in paid] == ["ORD-1"]
    assert [o.provider_order_id for o in refunded] == ["ORD-2"]
    assert len(both) == 2


@pytest.mark.asyncio
async def test_record_api_request(ledger_store, test_db):
    from sqlalchemy import select

    from db.models import ApiRequest

    await ledger_store.record_api_request(
        ApiCallRecord(
            http_method="POST",
            url="https://sandbox.dev.clover.com/v3/merchants/M-1/orders",
            request_payload={"employee": {"id": "E-1"}},
            response_payload={"id": "ORD-1"},
            response_status=200,
            duration_ms=42,
            resource_type="Order",
        )
    )
    rows = (await test_db.execute(select(ApiRequest))).scalars().all()
    assert len(rows) == 1
    assert rows[0].response_status == 200
    assert rows[0].request_payload == {"employee": {"id": "E-1"}}


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Cash", PaymentType.CASH),
        ("Gift Card", PaymentType.GIFT_CARD),
        ("Check", PaymentType.CHECK),
        ("Credit Card", PaymentType.CARD),
        ("Debit", PaymentType.CARD),
        ("House Account", PaymentType.OTHER),
    ],
)
def test_classify_tender(label, expected):
    assert classify_tender(label) is expected
