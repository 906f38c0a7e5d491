"""
Metrics Aggregator — vendor performance over a trailing window.

Metrics:
  - Order Defect Rate (ODR): refunded + returned + disputed / non-cancelled orders
  - Late Shipment Rate: shipped after expected dispatch / shipped orders with both dates
  - Cancellation Rate: vendor-initiated or out-of-stock cancellations / all orders

All rates are percentages rounded half-up to 2 decimal places, computed in
Decimal so repeated evaluations of the same counts always agree.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import Vendor
from reputation.orders import (
    ALL_ORDERS,
    DEFECTIVE,
    NON_CANCELLED,
    SHIPPED_LATE,
    SHIPPED_WITH_DATES,
    VENDOR_CANCELLED,
    DateRange,
    count_orders,
)
from reputation.policy import StandingPolicy, get_standing_policy
from reputation.standing import STANDING_RANK, classify_standing

_CENT = Decimal("0.01")


def percentage(numerator: int, denominator: int) -> float:
    """numerator / denominator as a percentage, half-up to 2 dp. Zero denominator -> 0."""
    if denominator <= 0:
        return 0.0
    value = Decimal(numerator) * 100 / Decimal(denominator)
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class VendorMetricsSnapshot:
    """Point-in-time vendor metrics. Build with ``from_rates`` so standing stays derived."""

    order_defect_rate: float
    late_shipment_rate: float
    cancellation_rate: float
    total_orders: int
    period_days: int
    standing: str

    @classmethod
    def from_rates(
        cls,
        *,
        order_defect_rate: float,
        late_shipment_rate: float,
        cancellation_rate: float,
        total_orders: int = 0,
        period_days: int = 30,
        policy: StandingPolicy | None = None,
    ) -> "VendorMetricsSnapshot":
        return cls(
            order_defect_rate=order_defect_rate,
            late_shipment_rate=late_shipment_rate,
            cancellation_rate=cancellation_rate,
            total_orders=total_orders,
            period_days=period_days,
            standing=classify_standing(order_defect_rate, late_shipment_rate, cancellation_rate, policy),
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "VendorMetricsSnapshot":
        """Rehydrate a frozen ledger snapshot exactly as stored."""
        return cls(
            order_defect_rate=float(payload["order_defect_rate"]),
            late_shipment_rate=float(payload["late_shipment_rate"]),
            cancellation_rate=float(payload["cancellation_rate"]),
            total_orders=int(payload.get("total_orders", 0)),
            period_days=int(payload.get("period_days", 0)),
            standing=str(payload.get("standing", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def compute_vendor_metrics(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    window_days: int | None = None,
    *,
    now: datetime | None = None,
    policy: StandingPolicy | None = None,
) -> VendorMetricsSnapshot:
    """Compute a vendor's metrics over the trailing ``window_days`` ending at ``now``. Read-only."""
    days = window_days or get_settings().reputation_window_days
    window = DateRange.trailing(days, now or datetime.utcnow())

    non_cancelled = await count_orders(db, vendor_id, window, NON_CANCELLED)
    defective = await count_orders(db, vendor_id, window, DEFECTIVE)
    shipped = await count_orders(db, vendor_id, window, SHIPPED_WITH_DATES)
    late = await count_orders(db, vendor_id, window, SHIPPED_LATE)
    total = await count_orders(db, vendor_id, window, ALL_ORDERS)
    vendor_cancelled = await count_orders(db, vendor_id, window, VENDOR_CANCELLED)

    return VendorMetricsSnapshot.from_rates(
        order_defect_rate=percentage(defective, non_cancelled),
        late_shipment_rate=percentage(late, shipped),
        cancellation_rate=percentage(vendor_cancelled, total),
        total_orders=total,
        period_days=days,
        policy=policy,
    )


async def get_all_vendors_reputation(
    db: AsyncSession,
    window_days: int | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Admin overview: metrics for every active vendor, worst standing first,
    then highest ODR first, with per-standing counts.
    """
    policy = get_standing_policy()
    now = now or datetime.utcnow()
    result = await db.execute(select(Vendor).where(Vendor.status == "active").order_by(Vendor.created_at))
    vendors = result.scalars().all()

    rows = []
    for vendor in vendors:
        snapshot = await compute_vendor_metrics(db, vendor.vendor_id, window_days, now=now, policy=policy)
        rows.append(
            {
                "vendor_id": vendor.vendor_id,
                "vendor_name": vendor.name,
                "vendor_email": vendor.email,
                **snapshot.to_dict(),
            }
        )

    rows.sort(key=lambda row: (STANDING_RANK[row["standing"]], -row["order_defect_rate"]))

    return {
        "vendors": rows,
        "summary": {
            "total": len(rows),
            "critical": sum(1 for r in rows if r["standing"] == "critical"),
            "needs_improvement": sum(1 for r in rows if r["standing"] == "needs_improvement"),
            "good": sum(1 for r in rows if r["standing"] == "good"),
            "excellent": sum(1 for r in rows if r["standing"] == "excellent"),
        },
        "thresholds": policy.to_dict(),
    }
