"""
Reputation Router — vendor performance metrics and dry-run evaluation.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_vendor_id, get_db, require_admin
from reputation.job import preview_vendor_escalation
from reputation.metrics import compute_vendor_metrics, get_all_vendors_reputation

router = APIRouter(prefix="/api/v1/reputation", tags=["reputation"])


class MetricsResponse(BaseModel):
    order_defect_rate: float
    late_shipment_rate: float
    cancellation_rate: float
    total_orders: int
    period_days: int
    standing: str


class DecisionResponse(BaseModel):
    should_act: bool
    action_type: str | None
    reason: str
    violations: list[str]


class EvaluationResponse(BaseModel):
    vendor_id: UUID
    metrics: MetricsResponse
    decision: DecisionResponse


@router.get("/vendor", response_model=MetricsResponse)
async def get_my_reputation(
    days: int = Query(30, ge=1, le=365),
    vendor_id: UUID = Depends(get_current_vendor_id),
    db: AsyncSession = Depends(get_db),
):
    """Reputation metrics for the calling vendor."""
    snapshot = await compute_vendor_metrics(db, vendor_id, days)
    return snapshot.to_dict()


@router.get("/admin")
async def get_all_vendors_reputation_overview(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    """Metrics for every active vendor, worst standing first."""
    return await get_all_vendors_reputation(db, days)


@router.get("/evaluate/{vendor_id}", response_model=EvaluationResponse)
async def evaluate_vendor_standing(
    vendor_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    """What the escalation rules would do for this vendor right now. Writes nothing."""
    evaluation = await preview_vendor_escalation(db, vendor_id)
    return EvaluationResponse(
        vendor_id=vendor_id,
        metrics=MetricsResponse(**evaluation.metrics.to_dict()),
        decision=DecisionResponse(**vars(evaluation.decision)),
    )
