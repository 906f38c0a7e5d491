"""
Vendor Actions Router — escalation ledger endpoints for vendors, admins and
the order pipeline.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_current_vendor_id, get_db, get_session_factory, require_admin
from reputation.job import run_reputation_check
from reputation.ledger import (
    approve_vendor_action,
    get_escalation_history,
    get_vendor_actions,
    get_vendors_requiring_action,
    override_vendor_action,
    record_vendor_action,
    validate_action_type,
)
from reputation.metrics import compute_vendor_metrics
from reputation.policy import get_escalation_policy, get_standing_policy
from reputation.status_sync import can_vendor_accept_orders, get_vendor

router = APIRouter(prefix="/api/v1/vendor-actions", tags=["vendor-actions"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class VendorActionSummary(BaseModel):
    action_id: UUID
    action_type: str
    reason: str
    status: str
    created_at: datetime
    expires_at: datetime | None

    model_config = {"from_attributes": True}


class VendorActionResponse(VendorActionSummary):
    vendor_id: UUID
    triggered_by: str
    triggered_by_user: str | None
    metrics_snapshot: dict
    override_reason: str | None
    override_by: str | None
    override_at: datetime | None
    approved_by: str | None
    approved_at: datetime | None
    updated_at: datetime


class OrderAcceptanceResponse(BaseModel):
    allowed: bool
    reason: str | None = None
    action_type: str | None = None


class VendorRequiringAction(BaseModel):
    vendor_id: UUID
    vendor_name: str
    vendor_status: str
    action: VendorActionResponse
    metrics: dict


class EscalationHistoryResponse(BaseModel):
    total_actions: int
    warnings: int
    suspensions: int
    blocks: int
    active_actions: list[VendorActionResponse]
    recent_actions: list[VendorActionResponse]


class OverrideRequest(BaseModel):
    override_reason: str


class ManualActionRequest(BaseModel):
    action_type: str
    reason: str
    require_approval: bool = False


class ActionMutationResponse(BaseModel):
    action: VendorActionResponse
    created: bool = True
    message: str


# ─── Vendor ─────────────────────────────────────────────────────────────────


@router.get("/my-actions", response_model=list[VendorActionSummary])
async def list_my_actions(
    vendor_id: UUID = Depends(get_current_vendor_id),
    db: AsyncSession = Depends(get_db),
):
    """The calling vendor's pending and active actions."""
    return await get_vendor_actions(db, vendor_id)


@router.get("/can-accept-orders", response_model=OrderAcceptanceResponse)
async def check_my_order_acceptance(
    vendor_id: UUID = Depends(get_current_vendor_id),
    db: AsyncSession = Depends(get_db),
):
    result = await can_vendor_accept_orders(db, vendor_id)
    return OrderAcceptanceResponse(**vars(result))


@router.get("/vendor/{vendor_id}/can-accept-orders", response_model=OrderAcceptanceResponse)
async def check_order_acceptance(
    vendor_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Gate called by order placement before committing a new order."""
    result = await can_vendor_accept_orders(db, vendor_id)
    return OrderAcceptanceResponse(**vars(result))


# ─── Admin ──────────────────────────────────────────────────────────────────


@router.get("/pending", response_model=list[VendorRequiringAction])
async def list_vendors_requiring_action(
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    rows = await get_vendors_requiring_action(db)
    return [
        VendorRequiringAction(
            vendor_id=row["vendor_id"],
            vendor_name=row["vendor_name"],
            vendor_status=row["vendor_status"],
            action=VendorActionResponse.model_validate(row["action"]),
            metrics=row["metrics"].to_dict(),
        )
        for row in rows
    ]


@router.get("/rules")
async def get_escalation_rules(admin: dict = Depends(require_admin)):
    """Threshold tables, for display in the admin console."""
    return {
        "escalation": get_escalation_policy().to_dict(),
        "standing": get_standing_policy().to_dict(),
        "description": "Thresholds for automatic vendor actions based on performance metrics",
    }


@router.get("/vendor/{vendor_id}/history", response_model=EscalationHistoryResponse)
async def get_vendor_escalation_history(
    vendor_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return await get_escalation_history(db, vendor_id)


@router.post("/action/{action_id}/override", response_model=ActionMutationResponse)
async def admin_override_action(
    action_id: UUID,
    body: OverrideRequest,
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    action = await override_vendor_action(db, action_id, admin["sub"], body.override_reason)
    if action.action_type == "warning":
        message = "Warning overridden."
    else:
        message = "Action overridden successfully. Vendor restrictions from this action have been lifted."
    return ActionMutationResponse(action=VendorActionResponse.model_validate(action), message=message)


@router.post("/action/{action_id}/approve", response_model=ActionMutationResponse)
async def admin_approve_action(
    action_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    action = await approve_vendor_action(db, action_id, admin["sub"])
    return ActionMutationResponse(
        action=VendorActionResponse.model_validate(action),
        message=f"{action.action_type} approved and now active",
    )


@router.post("/vendor/{vendor_id}/action", response_model=ActionMutationResponse)
async def admin_create_action(
    vendor_id: UUID,
    body: ManualActionRequest,
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    """Manually create an action, snapshotting the vendor's current metrics."""
    validate_action_type(body.action_type)
    await get_vendor(db, vendor_id)
    metrics = await compute_vendor_metrics(db, vendor_id)

    action, created = await record_vendor_action(
        db,
        vendor_id,
        body.action_type,
        body.reason,
        metrics,
        "admin",
        admin["sub"],
        require_approval=body.require_approval,
    )
    if created:
        message = f"{body.action_type} created successfully for vendor"
    else:
        message = f"Vendor already has an open {body.action_type} action"
    return ActionMutationResponse(
        action=VendorActionResponse.model_validate(action),
        created=created,
        message=message,
    )


@router.post("/run-check")
async def run_evaluation_now(
    session_factory=Depends(get_session_factory),
    admin: dict = Depends(require_admin),
):
    """Run a full evaluation cycle immediately and return its summary."""
    summary = await run_reputation_check(session_factory)
    return summary.to_dict()
