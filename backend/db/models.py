"""
Bazaar Reputation Database Models

Tables:
  1. vendors          - Marketplace sellers (status is a projection of vendor_actions)
  2. orders           - Vendor orders, read by the metrics aggregator
  3. vendor_actions   - Append-only escalation ledger (warning / suspension / block)
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    TypeDecorator,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


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
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from db.session import Base

VENDOR_STATUSES = ("active", "suspended", "blocked")
ORDER_STATUSES = (
    "pending",
    "confirmed",
    "shipped",
    "delivered",
    "completed",
    "cancelled",
    "refunded",
    "returned",
)
ACTION_TYPES = ("warning", "temp_suspend", "permanent_block")
ACTION_STATUSES = ("pending", "active", "overridden", "expired")
TRIGGER_SOURCES = ("system", "admin")


# ─── 1. Vendors ─────────────────────────────────────────────────────────────


class Vendor(Base):
    __tablename__ = "vendors"

    vendor_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="active")
    suspended_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_vendors_status", "status"),
        CheckConstraint("status IN ('active', 'suspended', 'blocked')", name="ck_vendor_status"),
    )

    orders = relationship("Order", back_populates="vendor")
    actions = relationship("VendorAction", back_populates="vendor", order_by="VendorAction.created_at")


# ─── 2. Orders ──────────────────────────────────────────────────────────────


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(GUID(), ForeignKey("vendors.vendor_id"), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    has_dispute = Column(Boolean, nullable=False, default=False)
    cancelled_by = Column(String(20))
    cancellation_reason = Column(String(100))
    shipped_at = Column(DateTime)
    expected_dispatch_date = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_orders_vendor_created", "vendor_id", "created_at"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'shipped', 'delivered', 'completed', "
            "'cancelled', 'refunded', 'returned')",
            name="ck_order_status",
        ),
        CheckConstraint(
            "cancelled_by IS NULL OR cancelled_by IN ('buyer', 'vendor', 'admin', 'system')",
            name="ck_order_cancelled_by",
        ),
    )

    vendor = relationship("Vendor", back_populates="orders")


# ─── 3. Vendor Actions (escalation ledger) ──────────────────────────────────


class VendorAction(Base):
    __tablename__ = "vendor_actions"

    action_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(GUID(), ForeignKey("vendors.vendor_id"), nullable=False)
    action_type = Column(String(20), nullable=False)
    reason = Column(Text, nullable=False)
    triggered_by = Column(String(10), nullable=False, default="system")
    triggered_by_user = Column(String(255))
    metrics_snapshot = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending")
    override_reason = Column(Text)
    override_by = Column(String(255))
    override_at = Column(DateTime)
    approved_by = Column(String(255))
    approved_at = Column(DateTime)
    expires_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_vendor_actions_vendor_status_created", "vendor_id", "status", "created_at"),
        Index("ix_vendor_actions_status_expires", "status", "expires_at"),
        CheckConstraint(
            "action_type IN ('warning', 'temp_suspend', 'permanent_block')",
            name="ck_vendor_action_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'active', 'overridden', 'expired')",
            name="ck_vendor_action_status",
        ),
        CheckConstraint("triggered_by IN ('system', 'admin')", name="ck_vendor_action_triggered_by"),
        CheckConstraint(
            "triggered_by = 'system' OR triggered_by_user IS NOT NULL",
            name="ck_vendor_action_admin_user",
        ),
    )

    vendor = relationship("Vendor", back_populates="actions")
