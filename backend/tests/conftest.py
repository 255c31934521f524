"""
Test Configuration — Fixtures for async DB, ledger store and a fake POS.

Every test gets its own in-memory SQLite database, so ledger rows never leak
between tests.
"""

import random
from dataclasses import replace
from itertools import count

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.money import percent_of
from db.session import Base
from integrations.base import (
    CatalogItem,
    CommerceClient,
    Customer,
    Discount,
    Employee,
    GiftCardRedemption,
    LineItemRef,
    OrderRef,
    PaymentRef,
    RefundRef,
    RejectedApiError,
    Tender,
)
from ledger.store import LedgerStore
from simulator.config import SimulationConfig

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MERCHANT_ID = "MERCHANT-TEST-1"

CATALOG = [
    CatalogItem(id="I-COFFEE", name="Coffee", price=350, category="Drinks"),
    CatalogItem(id="I-TEA", name="Iced Tea", price=300, category="Drinks"),
    CatalogItem(id="I-HASH", name="Hash Browns", price=450, category="Sides"),
    CatalogItem(id="I-FRIES", name="Fries", price=400, category="Sides"),
    CatalogItem(id="I-WINGS", name="Wings", price=1200, category="Appetizers"),
    CatalogItem(id="I-NACHOS", name="Nachos", price=1100, category="Appetizers"),
    CatalogItem(id="I-BURGER", name="Burger", price=1600, category="Entrees"),
    CatalogItem(id="I-SALMON", name="Salmon", price=2400, category="Entrees"),
    CatalogItem(id="I-CAKE", name="Cheesecake", price=800, category="Desserts"),
    CatalogItem(id="I-IPA", name="IPA", price=700, category="Alcoholic Beverages"),
    CatalogItem(id="I-RED", name="House Red", price=900, category="Alcoholic Beverages"),
]

TENDERS = [
    Tender(id="T-CASH", label="Cash", label_key="com.clover.tender.cash"),
    Tender(id="T-CHECK", label="Check"),
    Tender(id="T-GIFT", label="Gift Card"),
]


class FixedRandom(random.Random):
    """random() always returns the same value; integer draws follow from it."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


class FakeCommerceClient(CommerceClient):
    """In-memory POS that records every call.

    Queue a failure with `fail(method, exc)`; the next call to that method
    raises it. Provider ids are unique across instances.
    """

    _ids = count(1)

    def __init__(self):
        self.merchant_id = MERCHANT_ID
        self.items = list(CATALOG)
        self.employees = [Employee(id="E-1", name="Ana"), Employee(id="E-2", name="Ben")]
        self.customers = [Customer(id="C-1", name="Casey"), Customer(id="C-2", name="Dana")]
        self.tenders = list(TENDERS)
        self.discounts = [
            Discount(id="D-HH", name="Happy Hour 20%", percentage=20),
            Discount(id="D-LOYAL", name="Loyalty $5", amount=500),
        ]
        self.gift_cards = []
        self.calls: list[str] = []
        self.orders: dict[str, dict] = {}
        self.payments: list[tuple[str, object]] = []
        self.refunds: list[RefundRef] = []
        self.redemptions: list[GiftCardRedemption] = []
        self.failures: dict[str, list[Exception]] = {}
        self.on_open = None

    def fail(self, method: str, exc: Exception) -> None:
        self.failures.setdefault(method, []).append(exc)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)

    async def fetch_items(self):
        self._enter("fetch_items")
        return list(self.items)

    async def fetch_employees(self):
        self._enter("fetch_employees")
        return list(self.employees)

    async def fetch_customers(self):
        self._enter("fetch_customers")
        return list(self.customers)

    async def fetch_tenders(self):
        self._enter("fetch_tenders")
        return list(self.tenders)

    async def fetch_discounts(self):
        self._enter("fetch_discounts")
        return list(self.discounts)

    async def fetch_gift_cards(self):
        self._enter("fetch_gift_cards")
        return list(self.gift_cards)

    async def open_order(self, employee_id, customer_id=None):
        self._enter("open_order")
        order_id = f"ORD-{next(self._ids)}"
        self.orders[order_id] = {
            "employee_id": employee_id,
            "customer_id": customer_id,
            "dining": None,
            "line_items": [],
            "discounts": [],
            "state": "open",
        }
        if self.on_open is not None:
            self.on_open(len(self.orders))
        return OrderRef(id=order_id)

    async def set_dining_option(self, order, option):
        self._enter("set_dining_option")
        self.orders[order.id]["dining"] = option

    async def add_line_items(self, order, items):
        self._enter("add_line_items")
        prices = {item.id: item.price for item in self.items}
        refs = []
        for request in items:
            ref = LineItemRef(
                id=f"LI-{next(self._ids)}",
                item_id=request.item_id,
                price=prices[request.item_id],
                quantity=request.quantity,
            )
            self.orders[order.id]["line_items"].append(ref)
            refs.append(ref)
        return refs

    async def apply_discount(self, order, discount):
        self._enter("apply_discount")
        self.orders[order.id]["discounts"].append(discount)

    async def get_order_total(self, order):
        self._enter("get_order_total")
        data = self.orders[order.id]
        total = sum(li.price * li.quantity for li in data["line_items"])
        for discount in data["discounts"]:
            total -= discount.amount if discount.amount else percent_of(total, discount.percentage)
        return max(total, 0)

    async def submit_payment(self, order, payment):
        self._enter("submit_payment")
        ref = PaymentRef(
            id=f"PAY-{next(self._ids)}",
            tender_id=payment.tender_id,
            amount=payment.amount,
            tip_amount=payment.tip_amount,
            tax_amount=payment.tax_amount,
        )
        self.payments.append((order.id, ref))
        return ref

    async def set_order_state(self, order, state):
        self._enter("set_order_state")
        self.orders[order.id]["state"] = state.value

    async def create_refund(self, payment, amount=None, reason="customer_request"):
        self._enter("create_refund")
        refund = RefundRef(
            id=f"REF-{next(self._ids)}",
            payment_id=payment.id,
            amount=amount if amount is not None else payment.amount + payment.tip_amount,
        )
        self.refunds.append(refund)
        return refund

    async def redeem_gift_card(self, gift_card, amount):
        self._enter("redeem_gift_card")
        index = next(i for i, card in enumerate(self.gift_cards) if card.id == gift_card.id)
        balance = self.gift_cards[index].balance
        if balance <= 0:
            raise RejectedApiError(f"Gift card {gift_card.id} has no balance", status_code=400)
        redeemed = min(amount, balance)
        self.gift_cards[index] = replace(self.gift_cards[index], balance=balance - redeemed)
        redemption = GiftCardRedemption(gift_card.id, redeemed, balance - redeemed)
        self.redemptions.append(redemption)
        return redemption


@pytest.fixture
async def test_engine():
    """A fresh in-memory database with every table created."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger_store(test_db):
    return LedgerStore(test_db)


@pytest.fixture
def fake_client():
    return FakeCommerceClient()


@pytest.fixture
def fake_client_factory():
    return FakeCommerceClient


@pytest.fixture
def fixed_random():
    """Factory for a Random whose random() is pinned, e.g. fixed_random(0.1)."""
    return FixedRandom


@pytest.fixture
def sim_config():
    return SimulationConfig(merchant_id=MERCHANT_ID, tax_rate=8.25, refund_percentage=0.0)
