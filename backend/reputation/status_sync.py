"""
Vendor Status Synchronizer — keeps vendors.status consistent with the ledger.

The ledger (vendor_actions) is the source of truth. vendors.status is a
projection that must always be rederivable from the vendor's active
restrictive actions:

    active permanent_block  -> blocked
    active temp_suspend     -> suspended
    otherwise               -> active

This module is the only writer of vendors.status. Functions here flush but
never commit; callers commit the ledger write and the projection together.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Vendor, VendorAction
from reputation.errors import NotFoundError

logger = structlog.get_logger()

STATUS_BY_ACTION = {
    "warning": "active",
    "temp_suspend": "suspended",
    "permanent_block": "blocked",
}

RESTRICTIVE_ACTIONS = ("temp_suspend", "permanent_block")

_STATUS_SEVERITY = {"active": 0, "suspended": 1, "blocked": 2}

BLOCKED_REASON = "Account permanently blocked due to performance issues"


# ──────────────────────────────────────────────────────────────────────────
# Vendor store
# ──────────────────────────────────────────────────────────────────────────


async def get_vendor(db: AsyncSession, vendor_id: uuid.UUID) -> Vendor:
    vendor = await db.get(Vendor, vendor_id)
    if vendor is None:
        raise NotFoundError(f"Vendor {vendor_id} not found")
    return vendor


async def find_active_vendors(db: AsyncSession) -> list[Vendor]:
    result = await db.execute(select(Vendor).where(Vendor.status == "active").order_by(Vendor.created_at))
    return list(result.scalars().all())


# ──────────────────────────────────────────────────────────────────────────
# Projection
# ──────────────────────────────────────────────────────────────────────────


def _more_severe(left: str, right: str) -> str:
    return left if _STATUS_SEVERITY[left] >= _STATUS_SEVERITY[right] else right


async def derive_vendor_status(db: AsyncSession, vendor_id: uuid.UUID) -> str:
    """Vendor status implied by the ledger's currently active actions."""
    result = await db.execute(
        select(VendorAction.action_type).where(
            VendorAction.vendor_id == vendor_id,
            VendorAction.status == "active",
            VendorAction.action_type.in_(RESTRICTIVE_ACTIONS),
        )
    )
    status = "active"
    for action_type in result.scalars().all():
        status = _more_severe(status, STATUS_BY_ACTION[action_type])
    return status


def _apply_status(vendor: Vendor, status: str, now: datetime) -> bool:
    """Write ``status`` onto the vendor row. Returns True if anything changed."""
    if status == "active":
        changed = vendor.status != "active" or vendor.suspended_at is not None
        vendor.status = "active"
        vendor.suspended_at = None
        return changed

    changed = vendor.status != status
    vendor.status = status
    if changed or vendor.suspended_at is None:
        vendor.suspended_at = now
        changed = True
    return changed


async def update_vendor_status(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    action_type: str,
    *,
    now: datetime | None = None,
) -> Vendor:
    """
    Project a newly activated action onto the vendor.

    warning leaves the vendor active (flagged in the ledger only);
    temp_suspend / permanent_block set suspended / blocked and stamp
    suspended_at when the status changes. The result never drops below what other active actions
    in the ledger already imply.
    """
    now = now or datetime.utcnow()
    vendor = await get_vendor(db, vendor_id)
    status = _more_severe(STATUS_BY_ACTION[action_type], await derive_vendor_status(db, vendor_id))

    _apply_status(vendor, status, now)

    await db.flush()
    logger.info("status_sync.updated", vendor_id=str(vendor_id), action_type=action_type, status=vendor.status)
    return vendor


async def restore_vendor_status(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> Vendor:
    """
    Unwind an overridden or expired restriction. The vendor returns to active
    unless another restrictive action is still active in the ledger.
    """
    vendor = await get_vendor(db, vendor_id)
    await db.flush()
    status = await derive_vendor_status(db, vendor_id)
    _apply_status(vendor, status, now or datetime.utcnow())
    await db.flush()
    if status != "active":
        logger.info("status_sync.restore_held", vendor_id=str(vendor_id), status=status)
    return vendor


async def reconcile_vendor_status(
    db: AsyncSession,
    vendor: Vendor,
    *,
    now: datetime | None = None,
) -> bool:
    """Repair a single vendor whose projection drifted from the ledger."""
    derived = await derive_vendor_status(db, vendor.vendor_id)
    if vendor.status == derived and (derived == "active") == (vendor.suspended_at is None):
        return False

    previous = vendor.status
    _apply_status(vendor, derived, now or datetime.utcnow())
    await db.flush()
    logger.warning(
        "status_sync.projection_repaired",
        vendor_id=str(vendor.vendor_id),
        previous_status=previous,
        status=derived,
    )
    return True


async def reconcile_vendor_statuses(db: AsyncSession, *, now: datetime | None = None) -> int:
    """
    Repair every vendor whose stored status disagrees with the ledger.
    Only vendors that are restricted, or have an active restrictive action,
    can be out of sync.
    """
    now = now or datetime.utcnow()
    restricted_ids = select(VendorAction.vendor_id).where(
        VendorAction.status == "active",
        VendorAction.action_type.in_(RESTRICTIVE_ACTIONS),
    )
    result = await db.execute(
        select(Vendor).where(
            or_(
                Vendor.status != "active",
                Vendor.suspended_at.is_not(None),
                Vendor.vendor_id.in_(restricted_ids),
            )
        )
    )

    repaired = 0
    for vendor in result.scalars().all():
        if await reconcile_vendor_status(db, vendor, now=now):
            repaired += 1

    await db.commit()
    return repaired


# ──────────────────────────────────────────────────────────────────────────
# Order-acceptance gate
# ──────────────────────────────────────────────────────────────────────────


@dataclass
class OrderAcceptance:
    allowed: bool
    reason: str | None = None
    action_type: str | None = None


async def can_vendor_accept_orders(db: AsyncSession, vendor_id: uuid.UUID) -> OrderAcceptance:
    """
    Enforcement point for order placement. The projection is checked against
    the ledger first so a status left stale by an interrupted write is
    repaired before it is trusted.
    """
    vendor = await db.get(Vendor, vendor_id)
    if vendor is None:
        return OrderAcceptance(allowed=False, reason="Vendor not found")

    if await reconcile_vendor_status(db, vendor):
        await db.commit()

    if vendor.status == "blocked":
        return OrderAcceptance(allowed=False, reason=BLOCKED_REASON, action_type="permanent_block")

    if vendor.status == "suspended":
        result = await db.execute(
            select(VendorAction)
            .where(
                VendorAction.vendor_id == vendor_id,
                VendorAction.status == "active",
                VendorAction.action_type.in_(RESTRICTIVE_ACTIONS),
            )
            .order_by(VendorAction.created_at.desc())
        )
        action = result.scalars().first()
        if action is not None:
            return OrderAcceptance(
                allowed=False,
                reason=f"Account suspended: {action.reason}",
                action_type=action.action_type,
            )

    return OrderAcceptance(allowed=True)
