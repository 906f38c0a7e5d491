"""
Test Configuration — Fixtures for async DB, test client, and seeded vendors/orders.

Each test gets its own file-backed SQLite database so that code opening
several sessions (the evaluation job) sees the same committed data.
"""

import uuid
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from api.deps import get_current_user, get_db, get_session_factory
from api.main import app
from db.session import Base, build_engine, build_session_factory
from reputation.metrics import VendorMetricsSnapshot

# Fixed evaluation instant so windows and expiries are deterministic.
NOW = datetime(2026, 3, 1, 12, 0, 0)

ADMIN_ID = "admin-0001"


@pytest.fixture
async def test_engine(tmp_path):
    """Create a per-test database and build all tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def sent_notifications(monkeypatch):
    """Capture vendor notifications instead of hitting Redis / SendGrid."""
    sent = []

    async def _capture(vendor, action):
        sent.append({"vendor_id": vendor.vendor_id, "action_type": action.action_type, "status": action.status})
        return {"published": True, "emailed": False}

    monkeypatch.setattr("reputation.notifications.dispatch_action_notification", _capture)
    return sent


@pytest.fixture
def auth_user():
    """Authenticated caller. Tests mutate this to switch identity."""
    return {
        "sub": ADMIN_ID,
        "email": "admin@bazaar.example",
        "role": "admin",
    }


@pytest.fixture
async def client(test_db, session_factory, auth_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return auth_user

    def override_get_session_factory():
        return session_factory

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_session_factory] = override_get_session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_vendor(test_db):
    """Factory: persist a vendor and return it."""
    from db.models import Vendor

    async def _make(name: str = "Acme Traders", status: str = "active", suspended_at=None):
        vendor = Vendor(
            vendor_id=uuid.uuid4(),
            name=name,
            email=f"{name.lower().replace(' ', '.')}.{uuid.uuid4().hex[:6]}@sellers.example",
            status=status,
            suspended_at=suspended_at,
            created_at=NOW - timedelta(days=365),
        )
        test_db.add(vendor)
        await test_db.commit()
        return vendor

    return _make


@pytest.fixture
def add_orders(test_db):
    """Factory: add ``count`` orders for a vendor, created one day before NOW by default."""
    from db.models import Order

    async def _add(vendor, count: int, created_at: datetime | None = None, **fields):
        for _ in range(count):
            test_db.add(
                Order(
                    vendor_id=vendor.vendor_id,
                    status=fields.get("status", "delivered"),
                    has_dispute=fields.get("has_dispute", False),
                    cancelled_by=fields.get("cancelled_by"),
                    cancellation_reason=fields.get("cancellation_reason"),
                    shipped_at=fields.get("shipped_at"),
                    expected_dispatch_date=fields.get("expected_dispatch_date"),
                    created_at=created_at or NOW - timedelta(days=1),
                )
            )
        await test_db.commit()

    return _add


def snapshot(odr: float = 0.0, late: float = 0.0, cancel: float = 0.0, total: int = 100) -> VendorMetricsSnapshot:
    return VendorMetricsSnapshot.from_rates(
        order_defect_rate=odr,
        late_shipment_rate=late,
        cancellation_rate=cancel,
        total_orders=total,
        period_days=30,
    )
