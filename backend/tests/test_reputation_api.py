"""
Tests for the reputation metrics API.
"""

import uuid
from datetime import datetime, timedelta

import pytest


@pytest.fixture
def recent():
    return datetime.utcnow() - timedelta(days=1)


@pytest.mark.asyncio
async def test_vendor_sees_own_metrics(client, auth_user, make_vendor, add_orders, recent):
    vendor = await make_vendor()
    await add_orders(vendor, 97, created_at=recent, status="delivered")
    await add_orders(vendor, 3, created_at=recent, status="refunded")
    auth_user.update({"role": "vendor", "vendor_id": str(vendor.vendor_id)})

    resp = await client.get("/api/v1/reputation/vendor")
    assert resp.status_code == 200
    data = resp.json()
    assert data["order_defect_rate"] == 3.0
    assert data["total_orders"] == 100
    assert data["period_days"] == 30
    assert data["standing"] == "critical"


@pytest.mark.asyncio
async def test_vendor_metrics_window_is_bounded(client, auth_user, make_vendor):
    vendor = await make_vendor()
    auth_user.update({"role": "vendor", "vendor_id": str(vendor.vendor_id)})

    assert (await client.get("/api/v1/reputation/vendor?days=0")).status_code == 422
    assert (await client.get("/api/v1/reputation/vendor?days=366")).status_code == 422
    assert (await client.get("/api/v1/reputation/vendor?days=90")).json()["period_days"] == 90


@pytest.mark.asyncio
async def test_admin_overview(client, make_vendor, add_orders, recent):
    healthy = await make_vendor("Healthy Hal")
    await add_orders(healthy, 10, created_at=recent)
    await make_vendor("Quiet Quinn")

    resp = await client.get("/api/v1/reputation/admin")
    assert resp.status_code == 200
    data = resp.json()
    assert data["summary"]["total"] == 2
    assert data["summary"]["excellent"] == 2
    assert {row["vendor_name"] for row in data["vendors"]} == {"Healthy Hal", "Quiet Quinn"}


@pytest.mark.asyncio
async def test_admin_overview_requires_admin(client, auth_user):
    auth_user["role"] = "vendor"
    assert (await client.get("/api/v1/reputation/admin")).status_code == 403


@pytest.mark.asyncio
async def test_evaluate_is_a_dry_run(client, make_vendor, add_orders, recent, sent_notifications):
    vendor = await make_vendor()
    await add_orders(vendor, 94, created_at=recent, status="delivered")
    await add_orders(vendor, 6, created_at=recent, status="cancelled", cancelled_by="vendor")

    resp = await client.get(f"/api/v1/reputation/evaluate/{vendor.vendor_id}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["metrics"]["cancellation_rate"] == 6.0
    assert data["decision"]["action_type"] == "temp_suspend"
    assert data["decision"]["violations"] == ["Cancellation Rate: 6% (threshold: 6%)"]

    history = await client.get(f"/api/v1/vendor-actions/vendor/{vendor.vendor_id}/history")
    assert history.json()["total_actions"] == 0
    assert sent_notifications == []


@pytest.mark.asyncio
async def test_evaluate_unknown_vendor_is_404(client):
    resp = await client.get(f"/api/v1/reputation/evaluate/{uuid.uuid4()}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json()["status"] == "healthy"
