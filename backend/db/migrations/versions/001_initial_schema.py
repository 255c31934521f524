"""
Initial schema - ledger tables

Revision ID: 001
Revises: None
Create Date: 2026-02-06
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Simulated orders
    op.create_table(
        "simulated_orders",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("merchant_id", sa.String(64), nullable=False),
        sa.Column("provider_order_id", sa.String(64), nullable=False),
        sa.Column("business_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("subtotal", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tip_amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total", sa.Integer, nullable=False, server_default="0"),
        sa.Column("meal_period", sa.String(20)),
        sa.Column("dining_option", sa.String(20)),
        sa.Column("metadata", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("merchant_id", "provider_order_id", name="uq_simulated_order_provider_id"),
        sa.CheckConstraint("status IN ('open', 'paid', 'refunded', 'failed')", name="ck_simulated_order_status"),
        sa.CheckConstraint(
            "subtotal >= 0 AND tax_amount >= 0 AND tip_amount >= 0 AND discount_amount >= 0 AND total >= 0",
            name="ck_simulated_order_amounts_non_negative",
        ),
        sa.CheckConstraint(
            "total = subtotal + tax_amount + tip_amount - discount_amount",
            name="ck_simulated_order_total_balances",
        ),
    )
    op.create_index("ix_simulated_orders_merchant_date", "simulated_orders", ["merchant_id", "business_date"])
    op.create_index("ix_simulated_orders_status", "simulated_orders", ["status"])

    # 2. Simulated payments
    op.create_table(
        "simulated_payments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "order_id",
            UUID(as_uuid=True),
            sa.ForeignKey("simulated_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider_payment_id", sa.String(64)),
        sa.Column("sequence", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tender_name", sa.String(100), nullable=False),
        sa.Column("payment_type", sa.String(20), nullable=False, server_default="other"),
        sa.Column("amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tip_amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("provider_payment_id", name="uq_simulated_payment_provider_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'paid', 'failed', 'refunded')", name="ck_simulated_payment_status"
        ),
        sa.CheckConstraint(
            "payment_type IN ('cash', 'card', 'gift_card', 'check', 'other')",
            name="ck_simulated_payment_type",
        ),
        sa.CheckConstraint(
            "amount >= 0 AND tip_amount >= 0 AND tax_amount >= 0",
            name="ck_simulated_payment_amounts_non_negative",
        ),
    )
    op.create_index("ix_simulated_payments_order", "simulated_payments", ["order_id"])
    op.create_index("ix_simulated_payments_tender", "simulated_payments", ["tender_name"])

    # 3. Daily summaries
    op.create_table(
        "daily_summaries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("merchant_id", sa.String(64), nullable=False),
        sa.Column("business_date", sa.Date, nullable=False),
        sa.Column("order_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("payment_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("refund_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_revenue", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_tax", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_tips", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_discounts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("breakdown", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("merchant_id", "business_date", name="uq_daily_summary_merchant_date"),
    )
    op.create_index("ix_daily_summaries_business_date", "daily_summaries", ["business_date"])

    # 4. API request audit trail
    op.create_table(
        "api_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("http_method", sa.String(10), nullable=False),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("request_payload", JSONB),
        sa.Column("response_payload", JSONB),
        sa.Column("response_status", sa.Integer),
        sa.Column("duration_ms", sa.Integer),
        sa.Column("error_message", sa.Text),
        sa.Column("resource_type", sa.String(50)),
        sa.Column("resource_id", sa.String(64)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_api_requests_resource", "api_requests", ["resource_type", "resource_id"])
    op.create_index("ix_api_requests_created_at", "api_requests", ["created_at"])


def downgrade() -> None:
    op.drop_table("api_requests")
    op.drop_table("daily_summaries")
    op.drop_table("simulated_payments")
    op.drop_table("simulated_orders")
