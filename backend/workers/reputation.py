"""
Reputation Workers — daily vendor evaluation and hourly suspension expiry.

  1. run_reputation_check: expire lapsed suspensions, reconcile vendor
     status, evaluate all active vendors against the escalation rules
  2. expire_vendor_suspensions: sweep only, so suspensions lift close to
     their expiry time instead of waiting for the daily run

Schedule: See celery_app.py beat_schedule
Queue: reputation
"""

import asyncio
from datetime import datetime, timezone

import structlog

from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.reputation.run_reputation_check",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def run_reputation_check(self):
    """
    Daily job: evaluate every active vendor and record warranted actions.

    Per-vendor failures are reported in the summary and retried on the next
    scheduled run. Only a store outage during the global steps retries the
    task itself.
    """
    run_id = self.request.id or "manual"
    logger.info("reputation_worker.started", run_id=run_id)

    async def _run():
        from core.config import get_settings
        from db.session import build_engine, build_session_factory
        from reputation.job import run_reputation_check as run_check

        settings = get_settings()
        engine = build_engine(settings.database_url)
        try:
            session_factory = build_session_factory(engine)
            summary = await run_check(session_factory)
        finally:
            await engine.dispose()

        return {**summary.to_dict(), "run_id": run_id}

    try:
        return asyncio.run(_run())
    except Exception as exc:
        logger.error("reputation_worker.failed", run_id=run_id, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)


@celery_app.task(
    name="workers.reputation.expire_vendor_suspensions",
    bind=True,
    max_retries=2,
    default_retry_delay=120,
    acks_late=True,
)
def expire_vendor_suspensions(self):
    """Hourly job: expire temporary suspensions whose expiry has passed."""
    run_id = self.request.id or "manual"

    async def _expire():
        from core.config import get_settings
        from db.session import build_engine, build_session_factory
        from reputation.ledger import expire_suspensions

        settings = get_settings()
        engine = build_engine(settings.database_url)
        try:
            session_factory = build_session_factory(engine)
            async with session_factory() as db:
                expired = await expire_suspensions(db)
        finally:
            await engine.dispose()

        summary = {
            "status": "success",
            "expired_suspensions": expired,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "run_id": run_id,
        }
        logger.info("reputation_worker.sweep_completed", **summary)
        return summary

    try:
        return asyncio.run(_expire())
    except Exception as exc:
        logger.error("reputation_worker.sweep_failed", run_id=run_id, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
