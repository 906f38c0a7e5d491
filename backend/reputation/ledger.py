"""
Action Ledger — append-only history of vendor escalation actions.

State machine per action:

    (none)  --create(system|admin)-------------------> active
    (none)  --create(admin, require_approval)--------> pending
    pending --approve(admin)-------------------------> active
    active | pending --override(admin, reason)-------> overridden
    active  --expire(temp_suspend, now >= expires_at)-> expired

overridden and expired are terminal. Rows are never deleted.

At most one action per (vendor, action_type) may be active. Creation checks
for an existing active action first and returns it unchanged, which is what
keeps the daily job from re-warning the same vendor every run.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import ACTION_TYPES, TRIGGER_SOURCES, Vendor, VendorAction
from reputation import notifications
from reputation.errors import EscalationValidationError, InvalidTransitionError, NotFoundError
from reputation.metrics import VendorMetricsSnapshot
from reputation.status_sync import (
    RESTRICTIVE_ACTIONS,
    get_vendor,
    restore_vendor_status,
    update_vendor_status,
)

logger = structlog.get_logger()

OVERRIDABLE_STATUSES = ("active", "pending")
OPEN_STATUSES = ("pending", "active")


# ──────────────────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────────────────


def validate_action_type(action_type: str) -> None:
    if action_type not in ACTION_TYPES:
        raise EscalationValidationError(
            f"Invalid action type '{action_type}'. Must be one of: {', '.join(ACTION_TYPES)}"
        )


def validate_override_reason(override_reason: str | None) -> str:
    min_length = get_settings().reputation_override_min_length
    reason = (override_reason or "").strip()
    if len(reason) < min_length:
        raise EscalationValidationError(f"Override reason required (minimum {min_length} characters)")
    return reason


def _require_admin(admin_id: str | None) -> str:
    if not admin_id or not str(admin_id).strip():
        raise EscalationValidationError("Admin id is required")
    return str(admin_id)


def _suspension_expiry(action_type: str, now: datetime) -> datetime | None:
    if action_type != "temp_suspend":
        return None
    return now + timedelta(days=get_settings().reputation_suspension_days)


# ──────────────────────────────────────────────────────────────────────────
# Queries
# ──────────────────────────────────────────────────────────────────────────


async def get_action(db: AsyncSession, action_id: uuid.UUID) -> VendorAction:
    action = await db.get(VendorAction, action_id)
    if action is None:
        raise NotFoundError(f"Action {action_id} not found")
    return action


async def find_open_action(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    action_type: str,
    statuses: tuple[str, ...] = ("active",),
) -> VendorAction | None:
    result = await db.execute(
        select(VendorAction)
        .where(
            VendorAction.vendor_id == vendor_id,
            VendorAction.action_type == action_type,
            VendorAction.status.in_(statuses),
        )
        .order_by(VendorAction.created_at.desc())
    )
    return result.scalars().first()


async def get_vendor_actions(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    include_inactive: bool = False,
) -> list[VendorAction]:
    """A vendor's actions, newest first. Pending + active only unless ``include_inactive``."""
    query = select(VendorAction).where(VendorAction.vendor_id == vendor_id)
    if not include_inactive:
        query = query.where(VendorAction.status.in_(OPEN_STATUSES))
    result = await db.execute(query.order_by(VendorAction.created_at.desc()))
    return list(result.scalars().all())


async def get_escalation_history(db: AsyncSession, vendor_id: uuid.UUID) -> dict[str, Any]:
    await get_vendor(db, vendor_id)
    actions = await get_vendor_actions(db, vendor_id, include_inactive=True)
    return {
        "total_actions": len(actions),
        "warnings": sum(1 for a in actions if a.action_type == "warning"),
        "suspensions": sum(1 for a in actions if a.action_type == "temp_suspend"),
        "blocks": sum(1 for a in actions if a.action_type == "permanent_block"),
        "active_actions": [a for a in actions if a.status == "active"],
        "recent_actions": actions[:10],
    }


async def get_vendors_requiring_action(db: AsyncSession) -> list[dict[str, Any]]:
    """Every pending or active action with its vendor and frozen metrics, newest first."""
    result = await db.execute(
        select(VendorAction, Vendor)
        .join(Vendor, Vendor.vendor_id == VendorAction.vendor_id)
        .where(VendorAction.status.in_(OPEN_STATUSES))
        .order_by(VendorAction.created_at.desc())
    )
    return [
        {
            "vendor_id": vendor.vendor_id,
            "vendor_name": vendor.name,
            "vendor_status": vendor.status,
            "action": action,
            "metrics": VendorMetricsSnapshot.from_dict(action.metrics_snapshot),
        }
        for action, vendor in result.all()
    ]


# ──────────────────────────────────────────────────────────────────────────
# Transitions
# ──────────────────────────────────────────────────────────────────────────


async def record_vendor_action(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    action_type: str,
    reason: str,
    metrics: VendorMetricsSnapshot,
    triggered_by: str = "system",
    triggered_by_user: str | None = None,
    *,
    require_approval: bool = False,
    notify: bool = True,
    now: datetime | None = None,
) -> tuple[VendorAction, bool]:
    """
    Idempotently create an action. Returns (action, created); ``created`` is
    False when an existing open action of the same type was returned instead.
    The action row and the vendor status projection commit together. With
    ``notify=False`` the caller owns dispatching the notification.
    """
    validate_action_type(action_type)
    if triggered_by not in TRIGGER_SOURCES:
        raise EscalationValidationError(f"Invalid trigger source '{triggered_by}'")
    if not reason or not reason.strip():
        raise EscalationValidationError("Reason is required")
    if triggered_by == "admin":
        triggered_by_user = _require_admin(triggered_by_user)
    elif require_approval:
        raise EscalationValidationError("Only admin-created actions can await approval")

    vendor = await get_vendor(db, vendor_id)

    statuses = OPEN_STATUSES if require_approval else ("active",)
    existing = await find_open_action(db, vendor.vendor_id, action_type, statuses)
    if existing is not None:
        logger.info(
            "escalation.action_exists",
            vendor_id=str(vendor.vendor_id),
            action_type=action_type,
            action_id=str(existing.action_id),
        )
        return existing, False

    now = now or datetime.utcnow()
    status = "pending" if require_approval else "active"
    action = VendorAction(
        vendor_id=vendor.vendor_id,
        action_type=action_type,
        reason=reason.strip(),
        triggered_by=triggered_by,
        triggered_by_user=triggered_by_user,
        metrics_snapshot=metrics.to_dict(),
        status=status,
        expires_at=_suspension_expiry(action_type, now) if status == "active" else None,
        created_at=now,
        updated_at=now,
    )
    db.add(action)

    try:
        if status == "active":
            await update_vendor_status(db, vendor.vendor_id, action_type, now=now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "escalation.action_created",
        vendor_id=str(vendor.vendor_id),
        action_id=str(action.action_id),
        action_type=action_type,
        status=status,
        triggered_by=triggered_by,
    )

    if notify and status == "active":
        await notifications.dispatch_action_notification(vendor, action)

    return action, True


async def create_vendor_action(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    action_type: str,
    reason: str,
    metrics: VendorMetricsSnapshot,
    triggered_by: str = "system",
    triggered_by_user: str | None = None,
    *,
    require_approval: bool = False,
    now: datetime | None = None,
) -> VendorAction:
    """Create a vendor action, or return the existing active one of the same type."""
    action, _ = await record_vendor_action(
        db,
        vendor_id,
        action_type,
        reason,
        metrics,
        triggered_by,
        triggered_by_user,
        require_approval=require_approval,
        now=now,
    )
    return action


async def approve_vendor_action(
    db: AsyncSession,
    action_id: uuid.UUID,
    admin_id: str,
    *,
    now: datetime | None = None,
) -> VendorAction:
    """Activate a pending action. Suspension expiry counts from approval."""
    admin_id = _require_admin(admin_id)
    action = await get_action(db, action_id)
    if action.status != "pending":
        raise InvalidTransitionError(f"Cannot approve action in '{action.status}' status. Must be 'pending'.")

    duplicate = await find_open_action(db, action.vendor_id, action.action_type)
    if duplicate is not None:
        raise InvalidTransitionError(
            f"Vendor already has an active {action.action_type} action ({duplicate.action_id})"
        )

    now = now or datetime.utcnow()
    action.status = "active"
    action.approved_by = admin_id
    action.approved_at = now
    action.expires_at = _suspension_expiry(action.action_type, now)
    action.updated_at = now

    try:
        vendor = await update_vendor_status(db, action.vendor_id, action.action_type, now=now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "escalation.action_approved",
        vendor_id=str(action.vendor_id),
        action_id=str(action.action_id),
        action_type=action.action_type,
        admin_id=admin_id,
    )
    await notifications.dispatch_action_notification(vendor, action)
    return action


async def override_vendor_action(
    db: AsyncSession,
    action_id: uuid.UUID,
    admin_id: str,
    override_reason: str,
    *,
    now: datetime | None = None,
) -> VendorAction:
    """
    Cancel an active or pending action with an audited reason. Overriding a
    suspension or block restores the vendor; overriding a warning leaves the
    vendor's status alone.
    """
    override_reason = validate_override_reason(override_reason)
    admin_id = _require_admin(admin_id)

    action = await get_action(db, action_id)
    if action.status not in OVERRIDABLE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot override action in '{action.status}' status. Must be 'active' or 'pending'."
        )

    now = now or datetime.utcnow()
    action.status = "overridden"
    action.override_reason = override_reason
    action.override_by = admin_id
    action.override_at = now
    action.updated_at = now

    try:
        if action.action_type in RESTRICTIVE_ACTIONS:
            await restore_vendor_status(db, action.vendor_id, now=now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "escalation.action_overridden",
        vendor_id=str(action.vendor_id),
        action_id=str(action.action_id),
        action_type=action.action_type,
        admin_id=admin_id,
    )
    return action


async def expire_suspensions(db: AsyncSession, *, now: datetime | None = None) -> int:
    """
    Sweep: expire every active temp_suspend whose expires_at is at or before
    ``now`` and restore the vendor. Each expiry commits on its own, so a
    re-run after a partial failure only touches the remaining ones.
    """
    now = now or datetime.utcnow()
    result = await db.execute(
        select(VendorAction)
        .where(
            VendorAction.status == "active",
            VendorAction.action_type == "temp_suspend",
            VendorAction.expires_at <= now,
        )
        .order_by(VendorAction.expires_at)
    )
    expired_actions = result.scalars().all()

    count = 0
    for action in expired_actions:
        action.status = "expired"
        action.updated_at = now
        try:
            await restore_vendor_status(db, action.vendor_id, now=now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("escalation.suspension_expired", vendor_id=str(action.vendor_id), action_id=str(action.action_id))
        count += 1

    return count
