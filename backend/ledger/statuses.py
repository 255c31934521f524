"""Ledger status vocabularies and the forward-only order lifecycle."""

from enum import Enum


class OrderStatus(str, Enum):
    OPEN = "open"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentType(str, Enum):
    CASH = "cash"
    CARD = "card"
    GIFT_CARD = "gift_card"
    CHECK = "check"
    OTHER = "other"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.OPEN: frozenset({OrderStatus.PAID, OrderStatus.FAILED}),
    OrderStatus.PAID: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


class InvalidStatusTransition(Exception):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move order from '{current}' to '{target}'")
        self.current = current
        self.target = target


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def classify_tender(tender_name: str) -> PaymentType:
    """Map a free-form tender label onto a payment type."""
    name = tender_name.strip().lower()
    if "cash" in name:
        return PaymentType.CASH
    if "gift" in name:
        return PaymentType.GIFT_CARD
    if "check" in name or "cheque" in name:
        return PaymentType.CHECK
    if "credit" in name or "debit" in name or "card" in name:
        return PaymentType.CARD
    return PaymentType.OTHER
