"""
Clover Sandbox Integration Client

Implements the CommerceClient contract against the Clover Platform REST API
(v3, merchant-scoped). Reads and order-state updates are retried on transient
failures; payment and refund submission are never retried, since a timed-out
charge may still have gone through on the provider side.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.merchants import MerchantCredentials
from core.money import percent_of
from integrations.base import (
    CatalogItem,
    CommerceClient,
    Customer,
    Discount,
    Employee,
    GiftCard,
    GiftCardRedemption,
    LineItemRef,
    LineItemRequest,
    OrderRef,
    OrderState,
    PayloadValidationError,
    PaymentRef,
    PaymentRequest,
    RefundRef,
    RejectedApiError,
    Tender,
    TransientApiError,
)

logger = structlog.get_logger()

DINING_OPTION_CODES = ("HERE", "TO_GO", "DELIVERY")
REFUND_REASONS = ("customer_request", "quality_issue", "wrong_order", "duplicate_charge")

_retry_transient = retry(
    retry=retry_if_exception_type(TransientApiError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(min=1, max=10),
    reraise=True,
)


@dataclass
class ApiCallRecord:
    """One request/response pair, handed to the audit hook."""

    http_method: str
    url: str
    request_payload: dict | None = None
    response_payload: dict | None = None
    response_status: int | None = None
    duration_ms: int | None = None
    error_message: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None


AuditHook = Callable[[ApiCallRecord], Awaitable[None]]


class CloverClient(CommerceClient):
    """Client for the Clover sandbox Platform API."""

    def __init__(
        self,
        credentials: MerchantCredentials,
        *,
        timeout: float = 10.0,
        audit_hook: AuditHook | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.merchant_id = credentials.merchant_id
        self.audit_hook = audit_hook
        self.logger = logger.bind(provider="clover", merchant_id=credentials.merchant_id)
        base_url = f"{credentials.environment}v3/merchants/{credentials.merchant_id}/"
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {credentials.api_token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── transport ──────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict | None = None,
        params: dict | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
    ) -> dict[str, Any]:
        record = ApiCallRecord(
            http_method=method,
            url=str(self._http.base_url.join(path)),
            request_payload=payload,
            resource_type=resource_type,
            resource_id=resource_id,
        )
        started = time.monotonic()
        self.logger.debug("clover.request", method=method, path=path)
        try:
            response = await self._http.request(method, path, json=payload, params=params)
        except httpx.TimeoutException as exc:
            record.error_message = f"timeout: {exc}"
            raise TransientApiError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            record.error_message = str(exc)
            raise TransientApiError(f"{method} {path} failed: {exc}") from exc
        else:
            record.response_status = response.status_code
            body = self._parse_body(response)
            record.response_payload = body
            if response.status_code >= 400:
                record.error_message = f"HTTP {response.status_code}: {body.get('message', body)}"
                self._raise_for_status(method, path, response.status_code, body)
            return body
        finally:
            record.duration_ms = round((time.monotonic() - started) * 1000)
            await self._audit(record)

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {"message": response.text}
        return body if isinstance(body, dict) else {"elements": body}

    def _raise_for_status(self, method: str, path: str, status: int, body: dict) -> None:
        message = f"{method} {path} -> HTTP {status}: {body.get('message', body)}"
        if status >= 500 or status == 429:
            self.logger.warning("clover.request.transient", status=status, path=path)
            raise TransientApiError(message, status_code=status)
        self.logger.error("clover.request.rejected", status=status, path=path, body=body)
        raise RejectedApiError(message, status_code=status)

    async def _audit(self, record: ApiCallRecord) -> None:
        if self.audit_hook is None:
            return
        try:
            await self.audit_hook(record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(
                "clover.audit_failed",
                method=record.http_method,
                url=record.url,
                error=str(exc),
            )

    @staticmethod
    def _require_id(body: dict, what: str) -> str:
        value = body.get("id")
        if not value:
            raise RejectedApiError(f"{what} response is missing an id")
        return str(value)

    # ── reference data ─────────────────────────────────────────────────────

    @_retry_transient
    async def fetch_items(self) -> list[CatalogItem]:
        body = await self._request("GET", "items", params={"expand": "categories"}, resource_type="Item")
        items = []
        for element in body.get("elements", []):
            if not element.get("id") or element.get("hidden"):
                continue
            categories = (element.get("categories") or {}).get("elements") or []
            category = categories[0].get("name") if categories else None
            items.append(
                CatalogItem(
                    id=str(element["id"]),
                    name=element.get("name", "Unknown"),
                    price=int(element.get("price") or 0),
                    category=category or "Other",
                )
            )
        return items

    @_retry_transient
    async def fetch_employees(self) -> list[Employee]:
        body = await self._request("GET", "employees", resource_type="Employee")
        return [
            Employee(id=str(e["id"]), name=e.get("name", ""))
            for e in body.get("elements", [])
            if e.get("id") and not e.get("deletedTime")
        ]

    @_retry_transient
    async def fetch_customers(self) -> list[Customer]:
        body = await self._request("GET", "customers", resource_type="Customer")
        customers = []
        for c in body.get("elements", []):
            if not c.get("id"):
                continue
            name = " ".join(part for part in (c.get("firstName"), c.get("lastName")) if part)
            customers.append(Customer(id=str(c["id"]), name=name))
        return customers

    @_retry_transient
    async def fetch_tenders(self) -> list[Tender]:
        body = await self._request("GET", "tenders", resource_type="Tender")
        tenders = [
            Tender(id=str(t["id"]), label=t.get("label", ""), label_key=t.get("labelKey") or "")
            for t in body.get("elements", [])
            if t.get("id") and t.get("enabled") is True
        ]
        safe = [t for t in tenders if not t.is_card]
        self.logger.info("clover.tenders_loaded", enabled=len(tenders), sandbox_safe=len(safe))
        return safe

    @_retry_transient
    async def fetch_discounts(self) -> list[Discount]:
        body = await self._request("GET", "discounts", resource_type="Discount")
        discounts = []
        for d in body.get("elements", []):
            if not d.get("id"):
                continue
            amount = d.get("amount")
            discounts.append(
                Discount(
                    id=str(d["id"]),
                    name=d.get("name", ""),
                    amount=abs(int(amount)) if amount else None,
                    percentage=d.get("percentage"),
                )
            )
        return discounts

    @_retry_transient
    async def fetch_gift_cards(self) -> list[GiftCard]:
        body = await self._request("GET", "gift_cards", resource_type="GiftCard")
        return [
            GiftCard(id=str(g["id"]), balance=int(g.get("balance") or 0), status=g.get("status") or "ACTIVE")
            for g in body.get("elements", [])
            if g.get("id")
        ]

    @_retry_transient
    async def get_gift_card_balance(self, gift_card_id: str) -> int:
        body = await self._request(
            "GET", f"gift_cards/{gift_card_id}", resource_type="GiftCard", resource_id=gift_card_id
        )
        return int(body.get("balance") or 0)

    # ── order lifecycle ────────────────────────────────────────────────────

    async def open_order(self, employee_id: str, customer_id: str | None = None) -> OrderRef:
        body = await self._request("POST", "orders", payload={"employee": {"id": employee_id}}, resource_type="Order")
        order = OrderRef(id=self._require_id(body, "order"))
        if customer_id:
            await self._request(
                "POST",
                f"orders/{order.id}",
                payload={"customers": {"elements": [{"id": customer_id}]}},
                resource_type="Order",
                resource_id=order.id,
            )
        return order

    async def set_dining_option(self, order: OrderRef, option: str) -> None:
        if option not in DINING_OPTION_CODES:
            raise PayloadValidationError(
                f"Invalid dining option: {option}. Must be one of {', '.join(DINING_OPTION_CODES)}"
            )
        await self._request(
            "POST", f"orders/{order.id}", payload={"diningOption": option}, resource_type="Order", resource_id=order.id
        )

    async def add_line_items(self, order: OrderRef, items: list[LineItemRequest]) -> list[LineItemRef]:
        # Clover has no bulk endpoint for line items
        added = []
        for item in items:
            payload: dict[str, Any] = {"item": {"id": item.item_id}, "quantity": item.quantity}
            if item.note:
                payload["note"] = item.note
            body = await self._request(
                "POST", f"orders/{order.id}/line_items", payload=payload, resource_type="LineItem", resource_id=order.id
            )
            added.append(
                LineItemRef(
                    id=self._require_id(body, "line item"),
                    item_id=item.item_id,
                    price=int(body.get("price") or 0),
                    quantity=item.quantity,
                )
            )
        return added

    async def apply_discount(self, order: OrderRef, discount: Discount) -> None:
        # Percentage discounts are sent as a computed amount; Clover reports
        # amount=0 for percentage discounts when the order is read back.
        if discount.amount:
            amount = discount.amount
        elif discount.percentage:
            amount = percent_of(await self.get_order_total(order), discount.percentage)
        else:
            raise PayloadValidationError(f"Discount {discount.id} has neither amount nor percentage")
        await self._request(
            "POST",
            f"orders/{order.id}/discounts",
            payload={"name": discount.name, "amount": -abs(amount)},
            resource_type="Discount",
            resource_id=order.id,
        )

    @_retry_transient
    async def get_order_total(self, order: OrderRef) -> int:
        body = await self._request(
            "GET",
            f"orders/{order.id}",
            params={"expand": "lineItems,lineItems.modifications,discounts"},
            resource_type="Order",
            resource_id=order.id,
        )
        total = 0
        for line_item in (body.get("lineItems") or {}).get("elements", []):
            line_total = int(line_item.get("price") or 0) * int(line_item.get("quantity") or 1)
            for mod in (line_item.get("modifications") or {}).get("elements", []):
                line_total += int(mod.get("price") or 0)
            total += line_total
        for discount in (body.get("discounts") or {}).get("elements", []):
            if discount.get("percentage"):
                total -= percent_of(total, discount["percentage"])
            else:
                total -= abs(int(discount.get("amount") or 0))
        return max(total, 0)

    async def submit_payment(self, order: OrderRef, payment: PaymentRequest) -> PaymentRef:
        payload: dict[str, Any] = {
            "order": {"id": order.id},
            "tender": {"id": payment.tender_id},
            "offline": False,
            "amount": payment.amount,
            "tipAmount": payment.tip_amount,
            "taxAmount": payment.tax_amount,
        }
        if payment.employee_id:
            payload["employee"] = {"id": payment.employee_id}
        body = await self._request(
            "POST", f"orders/{order.id}/payments", payload=payload, resource_type="Payment", resource_id=order.id
        )
        return PaymentRef(
            id=self._require_id(body, "payment"),
            tender_id=payment.tender_id,
            amount=payment.amount,
            tip_amount=payment.tip_amount,
            tax_amount=payment.tax_amount,
        )

    @_retry_transient
    async def set_order_state(self, order: OrderRef, state: OrderState) -> None:
        await self._request(
            "POST", f"orders/{order.id}", payload={"state": state.value}, resource_type="Order", resource_id=order.id
        )

    async def create_refund(
        self,
        payment: PaymentRef,
        amount: int | None = None,
        reason: str = "customer_request",
    ) -> RefundRef:
        if reason not in REFUND_REASONS:
            self.logger.warning("clover.refund.unknown_reason", reason=reason)
            reason = "customer_request"
        if amount is not None and amount <= 0:
            raise PayloadValidationError("Refund amount must be positive")

        payload: dict[str, Any] = {"payment": {"id": payment.id}, "reason": reason}
        if amount is not None:
            payload["amount"] = amount
        body = await self._request("POST", "refunds", payload=payload, resource_type="Refund", resource_id=payment.id)
        refunded = body.get("amount")
        return RefundRef(
            id=self._require_id(body, "refund"),
            payment_id=payment.id,
            amount=int(refunded) if refunded is not None else (amount if amount is not None else payment.amount),
        )

    async def redeem_gift_card(self, gift_card: GiftCard, amount: int) -> GiftCardRedemption:
        if amount <= 0:
            raise PayloadValidationError("Gift card redemption amount must be positive")
        # The cached balance may be stale; the provider refuses overdrafts
        balance = await self.get_gift_card_balance(gift_card.id)
        if balance <= 0:
            raise RejectedApiError(f"Gift card {gift_card.id} has no balance")

        redeem = min(amount, balance)
        body = await self._request(
            "POST",
            f"gift_cards/{gift_card.id}/redeem",
            payload={"amount": redeem},
            resource_type="GiftCard",
            resource_id=gift_card.id,
        )
        remaining = body.get("balance")
        return GiftCardRedemption(
            gift_card_id=gift_card.id,
            amount_redeemed=redeem,
            remaining_balance=int(remaining) if remaining is not None else balance - redeem,
        )
