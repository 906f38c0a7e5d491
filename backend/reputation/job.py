"""
Periodic Evaluation Job — expire, reconcile, then evaluate every active vendor.

Order of operations per run:
  1. Expire lapsed temporary suspensions (global, once). A failure here is a
     hard failure: the store is likely down, so evaluation is skipped.
  2. Reconcile vendor status projections that drifted from the ledger.
  3. For each active vendor: compute metrics, evaluate, idempotently record
     the warranted action. Each vendor runs in its own session under a
     timeout; one vendor failing never aborts the others.

Schedule: see workers/celery_app.py beat_schedule
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import Vendor, VendorAction
from reputation import notifications
from reputation.errors import ExternalStoreError
from reputation.ledger import expire_suspensions, record_vendor_action
from reputation.metrics import VendorMetricsSnapshot, compute_vendor_metrics
from reputation.policy import EscalationPolicy, StandingPolicy
from reputation.rules import EscalationDecision, evaluate_escalation
from reputation.status_sync import find_active_vendors, get_vendor, reconcile_vendor_statuses

logger = structlog.get_logger()

# Anything returning an async context manager that yields an AsyncSession
SessionFactory = Callable[[], Any]

_CREATED_COUNTERS = {
    "warning": "warnings_created",
    "temp_suspend": "suspensions_created",
    "permanent_block": "blocks_created",
}


@dataclass
class VendorEvaluation:
    vendor_id: uuid.UUID
    metrics: VendorMetricsSnapshot
    decision: EscalationDecision
    action: VendorAction | None = None
    created: bool = False
    vendor: Vendor | None = None


@dataclass
class ReputationCheckSummary:
    total_checked: int = 0
    expired_suspensions: int = 0
    statuses_reconciled: int = 0
    reconcile_failed: bool = False
    warnings_created: int = 0
    suspensions_created: int = 0
    blocks_created: int = 0
    already_active: int = 0
    failed: int = 0
    timed_out: int = 0
    failed_vendor_ids: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or self.reconcile_failed

    @property
    def status(self) -> str:
        return "partial_failure" if self.has_failures else "success"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["has_failures"] = self.has_failures
        payload["status"] = self.status
        payload["started_at"] = self.started_at.isoformat()
        payload["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return payload


async def evaluate_vendor(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    *,
    apply: bool = True,
    notify: bool = True,
    window_days: int | None = None,
    now: datetime | None = None,
    standing_policy: StandingPolicy | None = None,
    escalation_policy: EscalationPolicy | None = None,
) -> VendorEvaluation:
    """
    Compute metrics and the escalation decision for one vendor. With
    ``apply`` the warranted action is recorded; without it this is a dry run.
    With ``notify=False`` a newly created action is left for the caller to
    announce, and ``vendor`` is filled in for that purpose.
    """
    now = now or datetime.utcnow()
    metrics = await compute_vendor_metrics(db, vendor_id, window_days, now=now, policy=standing_policy)
    decision = evaluate_escalation(metrics, escalation_policy)
    evaluation = VendorEvaluation(vendor_id=vendor_id, metrics=metrics, decision=decision)

    if apply and decision.should_act and decision.action_type:
        evaluation.action, evaluation.created = await record_vendor_action(
            db,
            vendor_id,
            decision.action_type,
            decision.reason,
            metrics,
            "system",
            notify=notify,
            now=now,
        )
        if evaluation.created and not notify:
            evaluation.vendor = await get_vendor(db, vendor_id)
    return evaluation


async def preview_vendor_escalation(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    window_days: int | None = None,
    *,
    now: datetime | None = None,
) -> VendorEvaluation:
    """Dry-run evaluation for the admin console. Never writes."""
    await get_vendor(db, vendor_id)
    return await evaluate_vendor(db, vendor_id, apply=False, window_days=window_days, now=now)


async def run_reputation_check(
    session_factory: SessionFactory,
    *,
    window_days: int | None = None,
    vendor_timeout: float | None = None,
    max_concurrency: int | None = None,
    now: datetime | None = None,
    standing_policy: StandingPolicy | None = None,
    escalation_policy: EscalationPolicy | None = None,
) -> ReputationCheckSummary:
    """
    Run one full evaluation cycle. Raises ExternalStoreError only when a
    global step (suspension sweep, vendor listing) cannot reach the store.
    """
    settings = get_settings()
    now = now or datetime.utcnow()
    vendor_timeout = vendor_timeout or settings.reputation_vendor_timeout_seconds
    concurrency = max(1, max_concurrency or settings.reputation_max_concurrency)
    summary = ReputationCheckSummary()
    logger.info("reputation_check.started", concurrency=concurrency, vendor_timeout=vendor_timeout)

    # 1. Sweep lapsed suspensions first so those vendors are evaluated fresh
    try:
        async with session_factory() as db:
            summary.expired_suspensions = await expire_suspensions(db, now=now)
    except Exception as exc:
        logger.error("reputation_check.sweep_failed", error=str(exc), exc_info=True)
        raise ExternalStoreError("Suspension sweep failed; evaluation skipped") from exc
    logger.info("reputation_check.suspensions_expired", count=summary.expired_suspensions)

    # 2. Repair projections left behind by interrupted writes
    try:
        async with session_factory() as db:
            summary.statuses_reconciled = await reconcile_vendor_statuses(db, now=now)
    except Exception as exc:  # noqa: BLE001
        summary.reconcile_failed = True
        logger.error("reputation_check.reconcile_failed", error=str(exc), exc_info=True)

    # 3. Evaluate every active vendor
    try:
        async with session_factory() as db:
            vendor_ids = [vendor.vendor_id for vendor in await find_active_vendors(db)]
    except Exception as exc:
        logger.error("reputation_check.vendor_listing_failed", error=str(exc), exc_info=True)
        raise ExternalStoreError("Could not load active vendors") from exc

    semaphore = asyncio.Semaphore(concurrency)

    async def _evaluate_in_session(vendor_id: uuid.UUID) -> VendorEvaluation:
        async with session_factory() as db:
            return await evaluate_vendor(
                db,
                vendor_id,
                notify=False,
                window_days=window_days,
                now=now,
                standing_policy=standing_policy,
                escalation_policy=escalation_policy,
            )

    async def _process(vendor_id: uuid.UUID) -> None:
        async with semaphore:
            summary.total_checked += 1
            try:
                evaluation = await asyncio.wait_for(_evaluate_in_session(vendor_id), timeout=vendor_timeout)
            except asyncio.TimeoutError:
                summary.failed += 1
                summary.timed_out += 1
                summary.failed_vendor_ids.append(str(vendor_id))
                logger.warning("reputation_check.vendor_timed_out", vendor_id=str(vendor_id), timeout=vendor_timeout)
                return
            except Exception as exc:  # noqa: BLE001
                summary.failed += 1
                summary.failed_vendor_ids.append(str(vendor_id))
                logger.error("reputation_check.vendor_failed", vendor_id=str(vendor_id), error=str(exc), exc_info=True)
                return

        decision = evaluation.decision
        if evaluation.action is None:
            return
        if evaluation.created:
            counter = _CREATED_COUNTERS[evaluation.action.action_type]
            setattr(summary, counter, getattr(summary, counter) + 1)
            logger.warning(
                "reputation_check.action_created",
                vendor_id=str(vendor_id),
                action_type=evaluation.action.action_type,
                reason=decision.reason,
                metrics=evaluation.metrics.to_dict(),
            )
            # Outside the per-vendor timeout: the action is already committed
            await notifications.dispatch_action_notification(evaluation.vendor, evaluation.action)
        else:
            summary.already_active += 1

    await asyncio.gather(*(_process(vendor_id) for vendor_id in vendor_ids))

    summary.completed_at = datetime.utcnow()
    log = logger.warning if summary.has_failures else logger.info
    log("reputation_check.completed", **summary.to_dict())
    return summary
