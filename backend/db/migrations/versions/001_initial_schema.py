"""
Initial schema - vendors, orders, vendor_actions

Revision ID: 001
Revises: None
Create Date: 2026-10-19
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
    # 1. Vendors
    op.create_table(
        "vendors",
        sa.Column("vendor_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("suspended_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('active', 'suspended', 'blocked')", name="ck_vendor_status"),
    )
    op.create_index("ix_vendors_status", "vendors", ["status"])

    # 2. Orders
    op.create_table(
        "orders",
        sa.Column("order_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("vendor_id", UUID(as_uuid=True), sa.ForeignKey("vendors.vendor_id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("has_dispute", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cancelled_by", sa.String(20)),
        sa.Column("cancellation_reason", sa.String(100)),
        sa.Column("shipped_at", sa.DateTime),
        sa.Column("expected_dispatch_date", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'shipped', 'delivered', 'completed', "
            "'cancelled', 'refunded', 'returned')",
            name="ck_order_status",
        ),
        sa.CheckConstraint(
            "cancelled_by IS NULL OR cancelled_by IN ('buyer', 'vendor', 'admin', 'system')",
            name="ck_order_cancelled_by",
        ),
    )
    op.create_index("ix_orders_vendor_created", "orders", ["vendor_id", "created_at"])

    # 3. Vendor actions (append-only escalation ledger)
    op.create_table(
        "vendor_actions",
        sa.Column("action_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("vendor_id", UUID(as_uuid=True), sa.ForeignKey("vendors.vendor_id"), nullable=False),
        sa.Column("action_type", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("triggered_by", sa.String(10), nullable=False, server_default="system"),
        sa.Column("triggered_by_user", sa.String(255)),
        sa.Column("metrics_snapshot", JSONB, nullable=False, server_default="{}"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("override_reason", sa.Text),
        sa.Column("override_by", sa.String(255)),
        sa.Column("override_at", sa.DateTime),
        sa.Column("approved_by", sa.String(255)),
        sa.Column("approved_at", sa.DateTime),
        sa.Column("expires_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "action_type IN ('warning', 'temp_suspend', 'permanent_block')",
            name="ck_vendor_action_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'overridden', 'expired')",
            name="ck_vendor_action_status",
        ),
        sa.CheckConstraint("triggered_by IN ('system', 'admin')", name="ck_vendor_action_triggered_by"),
        sa.CheckConstraint(
            "triggered_by = 'system' OR triggered_by_user IS NOT NULL",
            name="ck_vendor_action_admin_user",
        ),
    )
    op.create_index(
        "ix_vendor_actions_vendor_status_created",
        "vendor_actions",
        ["vendor_id", "status", "created_at"],
    )
    op.create_index("ix_vendor_actions_status_expires", "vendor_actions", ["status", "expires_at"])


def downgrade() -> None:
    op.drop_table("vendor_actions")
    op.drop_table("orders")
    op.drop_table("vendors")
