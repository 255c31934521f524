"""
Commerce API integrations.

The simulator talks to a POS provider only through `CommerceClient`:

    from integrations.clover import CloverClient

    client = CloverClient(credentials, timeout=settings.api_timeout_seconds)
    order = await client.open_order(employee_id="EMP1")
"""

from integrations.base import (
    CatalogItem,
    CommerceApiError,
    CommerceClient,
    Customer,
    Discount,
    Employee,
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
from integrations.clover import ApiCallRecord, CloverClient

__all__ = [
    "ApiCallRecord",
    "CatalogItem",
    "CloverClient",
    "CommerceApiError",
    "CommerceClient",
    "Customer",
    "Discount",
    "Employee",
    "LineItemRef",
    "LineItemRequest",
    "OrderRef",
    "OrderState",
    "PayloadValidationError",
    "PaymentRef",
    "PaymentRequest",
    "RefundRef",
    "RejectedApiError",
    "Tender",
    "TransientApiError",
]
