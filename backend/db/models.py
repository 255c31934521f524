"""
POS Simulator Database Models

Ledger tables for the synthetic point-of-sale audit trail.
All monetary columns are integer cents.

Tables:
  1. simulated_orders    - One row per synthesized provider order
  2. simulated_payments  - Tender-level payments belonging to an order
  3. daily_summaries     - Per merchant/day aggregate, recomputed on demand
  4. api_requests        - Audit trail of every Commerce API call
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import relationship

from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ─── 1. Simulated Orders ───────────────────────────────────────────────────


class SimulatedOrder(Base):
    __tablename__ = "simulated_orders"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    merchant_id = Column(String(64), nullable=False)
    provider_order_id = Column(String(64), nullable=False)
    business_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="open")
    subtotal = Column(Integer, nullable=False, default=0)
    tax_amount = Column(Integer, nullable=False, default=0)
    tip_amount = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    meal_period = Column(String(20), nullable=True)
    dining_option = Column(String(20), nullable=True)
    order_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("merchant_id", "provider_order_id", name="uq_simulated_order_provider_id"),
        Index("ix_simulated_orders_merchant_date", "merchant_id", "business_date"),
        Index("ix_simulated_orders_status", "status"),
        CheckConstraint("status IN ('open', 'paid', 'refunded', 'failed')", name="ck_simulated_order_status"),
        CheckConstraint(
            "subtotal >= 0 AND tax_amount >= 0 AND tip_amount >= 0 AND discount_amount >= 0 AND total >= 0",
            name="ck_simulated_order_amounts_non_negative",
        ),
        CheckConstraint(
            "total = subtotal + tax_amount + tip_amount - discount_amount",
            name="ck_simulated_order_total_balances",
        ),
    )

    payments = relationship(
        "SimulatedPayment",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SimulatedPayment.sequence",
    )


# ─── 2. Simulated Payments ─────────────────────────────────────────────────


class SimulatedPayment(Base):
    __tablename__ = "simulated_payments"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    order_id = Column(GUID(), ForeignKey("simulated_orders.id", ondelete="CASCADE"), nullable=False)
    provider_payment_id = Column(String(64), nullable=True)
    sequence = Column(Integer, nullable=False, default=0)  # position within a split
    tender_name = Column(String(100), nullable=False)
    payment_type = Column(String(20), nullable=False, default="other")
    amount = Column(Integer, nullable=False, default=0)
    tip_amount = Column(Integer, nullable=False, default=0)
    tax_amount = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # NULLs are distinct in unique indexes on both PostgreSQL and SQLite.
        UniqueConstraint("provider_payment_id", name="uq_simulated_payment_provider_id"),
        Index("ix_simulated_payments_order", "order_id"),
        Index("ix_simulated_payments_tender", "tender_name"),
        CheckConstraint("status IN ('pending', 'paid', 'failed', 'refunded')", name="ck_simulated_payment_status"),
        CheckConstraint(
            "payment_type IN ('cash', 'card', 'gift_card', 'check', 'other')",
            name="ck_simulated_payment_type",
        ),
        CheckConstraint(
            "amount >= 0 AND tip_amount >= 0 AND tax_amount >= 0",
            name="ck_simulated_payment_amounts_non_negative",
        ),
    )

    order = relationship("SimulatedOrder", back_populates="payments")


# ─── 3. Daily Summaries ────────────────────────────────────────────────────


class DailySummary(Base):
    __tablename__ = "daily_summaries"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    merchant_id = Column(String(64), nullable=False)
    business_date = Column(Date, nullable=False)
    order_count = Column(Integer, nullable=False, default=0)
    payment_count = Column(Integer, nullable=False, default=0)
    refund_count = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Integer, nullable=False, default=0)
    total_tax = Column(Integer, nullable=False, default=0)
    total_tips = Column(Integer, nullable=False, default=0)
    total_discounts = Column(Integer, nullable=False, default=0)
    breakdown = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("merchant_id", "business_date", name="uq_daily_summary_merchant_date"),
        Index("ix_daily_summaries_business_date", "business_date"),
    )


# ─── 4. API Requests ───────────────────────────────────────────────────────


class ApiRequest(Base):
    __tablename__ = "api_requests"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    http_method = Column(String(10), nullable=False)
    url = Column(Text, nullable=False)
    request_payload = Column(JSONType, nullable=True)
    response_payload = Column(JSONType, nullable=True)
    response_status = Column(Integer, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_api_requests_resource", "resource_type", "resource_id"),
        Index("ix_api_requests_created_at", "created_at"),
    )
