"""
Vendor action notifications — Redis pub/sub + SendGrid email.

Best-effort only: a failed notification is logged and never undoes or
blocks the ledger write that triggered it.
"""

import asyncio
import json

import redis.asyncio as aioredis
import sendgrid
import structlog
from sendgrid.helpers.mail import Mail

from core.config import get_settings
from db.models import Vendor, VendorAction

logger = structlog.get_logger()

SUBJECTS = {
    "warning": "Performance warning on your seller account",
    "temp_suspend": "Your seller account has been temporarily suspended",
    "permanent_block": "Your seller account has been blocked",
}


def build_payload(vendor: Vendor, action: VendorAction) -> dict:
    return {
        "type": "vendor_action",
        "payload": {
            "action_id": str(action.action_id),
            "vendor_id": str(vendor.vendor_id),
            "action_type": action.action_type,
            "status": action.status,
            "reason": action.reason,
            "triggered_by": action.triggered_by,
            "expires_at": action.expires_at.isoformat() if action.expires_at else None,
            "created_at": action.created_at.isoformat() if action.created_at else None,
        },
    }


async def publish_vendor_action(vendor: Vendor, action: VendorAction) -> int:
    """
    Publish the action on the vendor's channel for dashboard delivery.
    Returns number of subscribers notified.
    """
    settings = get_settings()
    redis = aioredis.from_url(settings.redis_url)
    try:
        channel = f"vendor_actions:{vendor.vendor_id}"
        return await redis.publish(channel, json.dumps(build_payload(vendor, action)))
    finally:
        await redis.aclose()


async def send_vendor_action_email(vendor: Vendor, action: VendorAction) -> bool:
    """
    Email the vendor about a new action via SendGrid.
    Returns True if sent successfully.
    """
    settings = get_settings()
    if not settings.sendgrid_api_key or not vendor.email:
        return False

    expiry = ""
    if action.expires_at:
        expiry = f"<p>This suspension lifts automatically on {action.expires_at:%Y-%m-%d}.</p>"

    html_content = f"""
    <div style="font-family: Inter, sans-serif; max-width: 600px; margin: 0 auto;">
      <h1 style="font-size: 20px;">{SUBJECTS[action.action_type]}</h1>
      <p>Hello {vendor.name},</p>
      <p>Our performance review found the following:</p>
      <p style="color: #334155; line-height: 1.6;">{action.reason}</p>
      {expiry}
      <p>You can review the details and your current metrics in the seller portal.</p>
    </div>
    """

    sg = sendgrid.SendGridAPIClient(api_key=settings.sendgrid_api_key)
    email = Mail(
        from_email=settings.notification_from_email,
        to_emails=vendor.email,
        subject=SUBJECTS[action.action_type],
        html_content=html_content,
    )
    # SendGrid's client is synchronous
    response = await asyncio.to_thread(sg.send, email)
    return response.status_code in (200, 201, 202)


async def dispatch_action_notification(vendor: Vendor, action: VendorAction) -> dict[str, bool]:
    """Notify the vendor about an action on every channel. Never raises."""
    settings = get_settings()
    outcome = {"published": False, "emailed": False}
    if not settings.notifications_enabled:
        return outcome

    log = logger.bind(vendor_id=str(vendor.vendor_id), action_id=str(action.action_id))
    timeout = settings.notification_timeout_seconds

    try:
        await asyncio.wait_for(publish_vendor_action(vendor, action), timeout=timeout)
        outcome["published"] = True
    except Exception as exc:  # noqa: BLE001
        log.warning("notifications.publish_failed", error=str(exc))

    try:
        outcome["emailed"] = await asyncio.wait_for(send_vendor_action_email(vendor, action), timeout=timeout)
    except Exception as exc:  # noqa: BLE001
        log.warning("notifications.email_failed", error=str(exc))

    log.info("notifications.dispatched", **outcome)
    return outcome
