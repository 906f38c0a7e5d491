"""
Order store queries used by the metrics aggregator.

Every rate is built from ``count_orders`` with a different ``OrderFilter``
over the same window, so all three metrics always cover identical periods.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Order

DEFECT_STATUSES = ("refunded", "returned")
SHIPPED_STATUSES = ("shipped", "delivered")
OUT_OF_STOCK_REASON = "out_of_stock"


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    @classmethod
    def trailing(cls, days: int, end: datetime) -> "DateRange":
        return cls(start=end - timedelta(days=days), end=end)


@dataclass(frozen=True)
class OrderFilter:
    """Composable predicate over an order row. All set conditions are ANDed."""

    exclude_cancelled: bool = False
    defective: bool = False
    vendor_cancelled: bool = False
    shipped_with_dates: bool = False
    late: bool = False

    def clauses(self) -> list:
        clauses = []
        if self.exclude_cancelled:
            clauses.append(Order.status != "cancelled")
        if self.defective:
            clauses.append(or_(Order.status.in_(DEFECT_STATUSES), Order.has_dispute.is_(True)))
        if self.vendor_cancelled:
            clauses.append(Order.status == "cancelled")
            clauses.append(
                or_(Order.cancelled_by == "vendor", Order.cancellation_reason == OUT_OF_STOCK_REASON)
            )
        if self.shipped_with_dates or self.late:
            clauses.append(Order.status.in_(SHIPPED_STATUSES))
            clauses.append(Order.shipped_at.is_not(None))
            clauses.append(Order.expected_dispatch_date.is_not(None))
        if self.late:
            clauses.append(Order.shipped_at > Order.expected_dispatch_date)
        return clauses


ALL_ORDERS = OrderFilter()
NON_CANCELLED = OrderFilter(exclude_cancelled=True)
DEFECTIVE = OrderFilter(exclude_cancelled=True, defective=True)
SHIPPED_WITH_DATES = OrderFilter(shipped_with_dates=True)
SHIPPED_LATE = OrderFilter(late=True)
VENDOR_CANCELLED = OrderFilter(vendor_cancelled=True)


async def count_orders(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    window: DateRange,
    order_filter: OrderFilter = ALL_ORDERS,
) -> int:
    """Count a vendor's orders created inside ``window`` that match ``order_filter``."""
    query = select(func.count(Order.order_id)).where(
        and_(
            Order.vendor_id == vendor_id,
            Order.created_at >= window.start,
            Order.created_at <= window.end,
            *order_filter.clauses(),
        )
    )
    result = await db.execute(query)
    return int(result.scalar() or 0)
