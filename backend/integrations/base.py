"""
Commerce API Client — Abstract Base Class

The simulator drives a merchant's POS through this narrow interface so the
order engine never sees raw HTTP payloads. Requests and responses are typed
dataclasses; required fields are validated here, at the client boundary,
before anything reaches the provider.

Error taxonomy:
  - TransientApiError: network failure, timeout, 5xx, 429. The caller may
    skip the current order and continue.
  - RejectedApiError: the provider refused the request (4xx) or the payload
    failed local validation. Never retried.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


# ── Errors ─────────────────────────────────────────────────────────────────


class CommerceApiError(Exception):
    """Base class for every Commerce API failure."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientApiError(CommerceApiError):
    """Network, timeout or server-side failure."""


class RejectedApiError(CommerceApiError):
    """The provider (or local validation) rejected the request."""


class PayloadValidationError(RejectedApiError):
    """A typed payload is missing a required field or carries a bad value."""


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise PayloadValidationError(message)


# ── Provider enums ─────────────────────────────────────────────────────────


class OrderState(str, Enum):
    OPEN = "open"
    PAID = "paid"


# ── Reference data ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    price: int  # cents
    category: str = "Other"


@dataclass(frozen=True)
class Employee:
    id: str
    name: str = ""


@dataclass(frozen=True)
class Customer:
    id: str
    name: str = ""


CARD_TENDER_KEYS = frozenset({"com.clover.tender.credit_card", "com.clover.tender.debit_card"})


@dataclass(frozen=True)
class Tender:
    id: str
    label: str
    label_key: str = ""

    @property
    def is_card(self) -> bool:
        """Credit/debit tenders, which the sandbox Platform API cannot charge."""
        if self.label_key.lower() in CARD_TENDER_KEYS:
            return True
        label = self.label.lower()
        return "credit" in label or "debit" in label

    @property
    def is_gift_card(self) -> bool:
        return "gift" in self.label.lower()


@dataclass(frozen=True)
class GiftCard:
    id: str
    balance: int = 0  # cents
    status: str = "ACTIVE"

    @property
    def is_redeemable(self) -> bool:
        return self.status.upper() == "ACTIVE" and self.balance > 0


@dataclass(frozen=True)
class Discount:
    id: str
    name: str
    amount: int | None = None  # cents, positive
    percentage: float | None = None


# ── Requests ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LineItemRequest:
    item_id: str
    quantity: int = 1
    note: str | None = None

    def __post_init__(self):
        _require(bool(self.item_id), "line item requires item_id")
        _require(self.quantity >= 1, f"line item quantity must be >= 1, got {self.quantity}")


@dataclass(frozen=True)
class PaymentRequest:
    tender_id: str
    amount: int  # cents, tax included, tip excluded
    tip_amount: int = 0
    tax_amount: int = 0
    employee_id: str | None = None

    def __post_init__(self):
        _require(bool(self.tender_id), "payment requires tender_id")
        _require(self.amount >= 0, f"payment amount must be non-negative, got {self.amount}")
        _require(self.tip_amount >= 0, f"payment tip must be non-negative, got {self.tip_amount}")
        _require(self.tax_amount >= 0, f"payment tax must be non-negative, got {self.tax_amount}")


# ── Responses ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OrderRef:
    id: str

    def __post_init__(self):
        _require(bool(self.id), "order reference requires id")


@dataclass(frozen=True)
class LineItemRef:
    id: str
    item_id: str
    price: int = 0
    quantity: int = 1


@dataclass(frozen=True)
class PaymentRef:
    id: str
    tender_id: str
    amount: int
    tip_amount: int = 0
    tax_amount: int = 0

    def __post_init__(self):
        _require(bool(self.id), "payment reference requires id")


@dataclass(frozen=True)
class RefundRef:
    id: str
    payment_id: str
    amount: int


@dataclass(frozen=True)
class GiftCardRedemption:
    gift_card_id: str
    amount_redeemed: int
    remaining_balance: int = 0


# ── Abstract client ────────────────────────────────────────────────────────


class CommerceClient(ABC):
    """
    Everything the simulator needs from a POS provider.

    Lifecycle of one simulated order:
        1. open_order()          — order shell for an employee (and customer)
        2. set_dining_option()   — HERE / TO_GO / DELIVERY
        3. add_line_items()      — selected catalog items
        4. apply_discount()      — optional
        5. get_order_total()     — provider-side total after discounts
        6. submit_payment()      — one call per tender
        7. set_order_state()     — mark the order paid
        8. create_refund()       — optional, after settlement

    redeem_gift_card() runs between 5 and 6 when an order is paid (partly)
    from a gift card balance.
    """

    merchant_id: str

    # Reference data
    @abstractmethod
    async def fetch_items(self) -> list[CatalogItem]: ...

    @abstractmethod
    async def fetch_employees(self) -> list[Employee]: ...

    @abstractmethod
    async def fetch_customers(self) -> list[Customer]: ...

    @abstractmethod
    async def fetch_tenders(self) -> list[Tender]:
        """Sandbox-safe tenders only (no credit/debit cards)."""
        ...

    @abstractmethod
    async def fetch_discounts(self) -> list[Discount]: ...

    @abstractmethod
    async def fetch_gift_cards(self) -> list[GiftCard]: ...

    # Order lifecycle
    @abstractmethod
    async def open_order(self, employee_id: str, customer_id: str | None = None) -> OrderRef: ...

    @abstractmethod
    async def set_dining_option(self, order: OrderRef, option: str) -> None: ...

    @abstractmethod
    async def add_line_items(self, order: OrderRef, items: list[LineItemRequest]) -> list[LineItemRef]: ...

    @abstractmethod
    async def apply_discount(self, order: OrderRef, discount: Discount) -> None: ...

    @abstractmethod
    async def get_order_total(self, order: OrderRef) -> int: ...

    @abstractmethod
    async def submit_payment(self, order: OrderRef, payment: PaymentRequest) -> PaymentRef: ...

    @abstractmethod
    async def set_order_state(self, order: OrderRef, state: OrderState) -> None: ...

    @abstractmethod
    async def create_refund(
        self,
        payment: PaymentRef,
        amount: int | None = None,
        reason: str = "customer_request",
    ) -> RefundRef: ...

    @abstractmethod
    async def redeem_gift_card(self, gift_card: GiftCard, amount: int) -> GiftCardRedemption:
        """Take up to `amount` from the card's balance; never more than it holds."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        return None
