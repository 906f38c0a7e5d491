"""
Tests for the vendor actions API.
"""

import uuid
from datetime import datetime, timedelta

import pytest

from conftest import ADMIN_ID, snapshot
from reputation.ledger import create_vendor_action

OVERRIDE_REASON = "Buyer disputes were confirmed fraudulent"


def _as_vendor(auth_user, vendor):
    auth_user.update({"sub": "vendor-user-1", "role": "vendor", "vendor_id": str(vendor.vendor_id)})


@pytest.mark.asyncio
class TestVendorEndpoints:
    async def test_my_actions_lists_open_actions(self, client, test_db, auth_user, make_vendor):
        vendor = await make_vendor()
        await create_vendor_action(test_db, vendor.vendor_id, "warning", "late 6%", snapshot(late=6.0))
        _as_vendor(auth_user, vendor)

        resp = await client.get("/api/v1/vendor-actions/my-actions")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["action_type"] == "warning"
        assert data[0]["status"] == "active"

    async def test_my_actions_requires_vendor_role(self, client):
        resp = await client.get("/api/v1/vendor-actions/my-actions")
        assert resp.status_code == 403

    async def test_vendor_can_check_own_acceptance(self, client, test_db, auth_user, make_vendor):
        vendor = await make_vendor()
        await create_vendor_action(test_db, vendor.vendor_id, "temp_suspend", "cancel 7%", snapshot(cancel=7.0))
        _as_vendor(auth_user, vendor)

        resp = await client.get("/api/v1/vendor-actions/can-accept-orders")
        assert resp.status_code == 200
        assert resp.json() == {
            "allowed": False,
            "reason": "Account suspended: cancel 7%",
            "action_type": "temp_suspend",
        }


@pytest.mark.asyncio
class TestOrderGateEndpoint:
    async def test_active_vendor_allowed(self, client, make_vendor):
        vendor = await make_vendor()
        resp = await client.get(f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/can-accept-orders")
        assert resp.status_code == 200
        assert resp.json()["allowed"] is True

    async def test_unknown_vendor_denied(self, client):
        resp = await client.get(f"/api/v1/vendor-actions/vendor/{uuid.uuid4()}/can-accept-orders")
        assert resp.status_code == 200
        assert resp.json() == {"allowed": False, "reason": "Vendor not found", "action_type": None}


@pytest.mark.asyncio
class TestAdminOverride:
    async def test_override_block(self, client, test_db, make_vendor):
        vendor = await make_vendor()
        action = await create_vendor_action(test_db, vendor.vendor_id, "permanent_block", "ODR 5%", snapshot(odr=5.0))

        resp = await client.post(
            f"/api/v1/vendor-actions/action/{action.action_id}/override",
            json={"override_reason": OVERRIDE_REASON},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["action"]["status"] == "overridden"
        assert data["action"]["override_by"] == ADMIN_ID
        assert "restrictions" in data["message"]

        gate = await client.get(f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/can-accept-orders")
        assert gate.json()["allowed"] is True

    async def test_override_warning_message(self, client, test_db, make_vendor):
        vendor = await make_vendor()
        action = await create_vendor_action(test_db, vendor.vendor_id, "warning", "late 6%", snapshot(late=6.0))

        resp = await client.post(
            f"/api/v1/vendor-actions/action/{action.action_id}/override",
            json={"override_reason": OVERRIDE_REASON},
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Warning overridden."

    async def test_short_reason_is_422(self, client, test_db, make_vendor):
        vendor = await make_vendor()
        action = await create_vendor_action(test_db, vendor.vendor_id, "warning", "late 6%", snapshot(late=6.0))

        resp = await client.post(
            f"/api/v1/vendor-actions/action/{action.action_id}/override",
            json={"override_reason": "nope"},
        )
        assert resp.status_code == 422
        assert "minimum 10 characters" in resp.json()["detail"]

    async def test_unknown_action_is_404(self, client):
        resp = await client.post(
            f"/api/v1/vendor-actions/action/{uuid.uuid4()}/override",
            json={"override_reason": OVERRIDE_REASON},
        )
        assert resp.status_code == 404

    async def test_terminal_action_is_400(self, client, test_db, make_vendor):
        vendor = await make_vendor()
        action = await create_vendor_action(test_db, vendor.vendor_id, "warning", "late 6%", snapshot(late=6.0))
        url = f"/api/v1/vendor-actions/action/{action.action_id}/override"

        assert (await client.post(url, json={"override_reason": OVERRIDE_REASON})).status_code == 200
        resp = await client.post(url, json={"override_reason": OVERRIDE_REASON})
        assert resp.status_code == 400

    async def test_non_admin_is_forbidden(self, client, test_db, auth_user, make_vendor):
        vendor = await make_vendor()
        action = await create_vendor_action(test_db, vendor.vendor_id, "permanent_block", "ODR 5%", snapshot(odr=5.0))
        _as_vendor(auth_user, vendor)

        resp = await client.post(
            f"/api/v1/vendor-actions/action/{action.action_id}/override",
            json={"override_reason": OVERRIDE_REASON},
        )
        assert resp.status_code == 403
        await test_db.refresh(action)
        assert action.status == "active"


@pytest.mark.asyncio
class TestAdminCreateAndApprove:
    async def test_manual_action_snapshots_current_metrics(self, client, make_vendor, add_orders):
        vendor = await make_vendor()
        recent = datetime.utcnow() - timedelta(days=1)
        await add_orders(vendor, 9, created_at=recent, status="delivered")
        await add_orders(vendor, 1, created_at=recent, status="returned")

        resp = await client.post(
            f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/action",
            json={"action_type": "temp_suspend", "reason": "Counterfeit listings reported"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["created"] is True
        action = data["action"]
        assert action["triggered_by"] == "admin"
        assert action["triggered_by_user"] == ADMIN_ID
        assert action["metrics_snapshot"]["order_defect_rate"] == 10.0
        assert action["expires_at"] is not None

    async def test_duplicate_manual_action_returns_existing(self, client, make_vendor):
        vendor = await make_vendor()
        url = f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/action"
        body = {"action_type": "warning", "reason": "Slow responses to buyers"}

        first = (await client.post(url, json=body)).json()
        second = (await client.post(url, json=body)).json()
        assert second["created"] is False
        assert second["action"]["action_id"] == first["action"]["action_id"]

    async def test_invalid_action_type_is_422(self, client, make_vendor):
        vendor = await make_vendor()
        resp = await client.post(
            f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/action",
            json={"action_type": "shadow_ban", "reason": "nope"},
        )
        assert resp.status_code == 422

    async def test_unknown_vendor_is_404(self, client):
        resp = await client.post(
            f"/api/v1/vendor-actions/vendor/{uuid.uuid4()}/action",
            json={"action_type": "warning", "reason": "Slow responses"},
        )
        assert resp.status_code == 404

    async def test_pending_then_approve(self, client, make_vendor):
        vendor = await make_vendor()
        resp = await client.post(
            f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/action",
            json={"action_type": "permanent_block", "reason": "Fraud ring", "require_approval": True},
        )
        action_id = resp.json()["action"]["action_id"]
        assert resp.json()["action"]["status"] == "pending"

        gate = await client.get(f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/can-accept-orders")
        assert gate.json()["allowed"] is True

        approved = await client.post(f"/api/v1/vendor-actions/action/{action_id}/approve")
        assert approved.status_code == 200
        assert approved.json()["action"]["status"] == "active"
        assert approved.json()["action"]["approved_by"] == ADMIN_ID

        gate = await client.get(f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/can-accept-orders")
        assert gate.json()["allowed"] is False

        again = await client.post(f"/api/v1/vendor-actions/action/{action_id}/approve")
        assert again.status_code == 400


@pytest.mark.asyncio
class TestAdminQueries:
    async def test_pending_lists_open_actions_with_metrics(self, client, test_db, make_vendor):
        vendor = await make_vendor("Flagged Shop")
        await create_vendor_action(test_db, vendor.vendor_id, "temp_suspend", "cancel 7%", snapshot(cancel=7.0))

        resp = await client.get("/api/v1/vendor-actions/pending")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["vendor_name"] == "Flagged Shop"
        assert data[0]["vendor_status"] == "suspended"
        assert data[0]["metrics"]["cancellation_rate"] == 7.0

    async def test_history(self, client, test_db, make_vendor):
        vendor = await make_vendor()
        await create_vendor_action(test_db, vendor.vendor_id, "warning", "late 6%", snapshot(late=6.0))

        resp = await client.get(f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/history")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_actions"] == 1
        assert data["warnings"] == 1
        assert len(data["active_actions"]) == 1

    async def test_history_unknown_vendor_is_404(self, client):
        resp = await client.get(f"/api/v1/vendor-actions/vendor/{uuid.uuid4()}/history")
        assert resp.status_code == 404

    async def test_rules(self, client):
        resp = await client.get("/api/v1/vendor-actions/rules")
        assert resp.status_code == 200
        rules = resp.json()["escalation"]["rules"]
        assert rules[0] == {"metric": "odr", "warning": 1.0, "temp_suspend": 2.0, "permanent_block": 4.0}

    async def test_rules_requires_admin(self, client, auth_user):
        auth_user["role"] = "vendor"
        resp = await client.get("/api/v1/vendor-actions/rules")
        assert resp.status_code == 403

    async def test_run_check(self, client, make_vendor, add_orders):
        vendor = await make_vendor()
        await add_orders(vendor, 40, created_at=datetime.utcnow() - timedelta(days=1), status="delivered", has_dispute=True)

        resp = await client.post("/api/v1/vendor-actions/run-check")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "success"
        assert data["total_checked"] == 1
        assert data["blocks_created"] == 1
