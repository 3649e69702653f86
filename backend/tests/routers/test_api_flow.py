from datetime import datetime, time
from typing import Any, AsyncIterator, Iterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from volunteer_portal.config import get_settings
from volunteer_portal.deps import (
    get_coordinator,
    get_delivery_log,
    get_policy_store,
    get_retry_engine,
    get_session,
    get_session_factory,
)
from volunteer_portal.infrastructure.delivery_log import DeliveryAuditLog
from volunteer_portal.infrastructure.policy_store import AdminPolicyStore, PolicySnapshot
from volunteer_portal.main import app
from volunteer_portal.models import NotificationType
from volunteer_portal.usecases.bookings import BookingCoordinator
from volunteer_portal.usecases.delivery import DeliveryRetryEngine, DuplicateSuppressor, NotificationDispatcher
from volunteer_portal.utils.auth import ADMIN_ROLE, create_access_token

MONDAY_MORNING = datetime(2026, 10, 19, 15, 0)


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture(autouse=True)
def _auth_secret(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("AUTH_SECRET", "testsecret")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def client(session_factory: Any, gateway: Any) -> AsyncIterator[AsyncClient]:
    policy_store = AdminPolicyStore(
        session_factory,
        defaults=PolicySnapshot(
            admin_email="admin@example.com",
            max_per_day=2,
            notify_lead_hours=12,
            service_start=time(12, 0),
        ),
    )
    delivery_log = DeliveryAuditLog(session_factory)
    engine = DeliveryRetryEngine(gateway, delivery_log, DuplicateSuppressor(session_factory), sleep=_no_sleep)
    coordinator = BookingCoordinator(
        session_factory,
        policy_store,
        NotificationDispatcher(engine),
        service_timezone="America/Merida",
        clock=lambda: MONDAY_MORNING,
    )

    async def override_get_session() -> AsyncIterator[Any]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_policy_store] = lambda: policy_store
    app.dependency_overrides[get_delivery_log] = lambda: delivery_log
    app.dependency_overrides[get_retry_engine] = lambda: engine
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


def _admin_headers() -> dict[str, str]:
    token = create_access_token(subject="admin-1", role=ADMIN_ROLE, secret="testsecret")
    return {"Authorization": f"Bearer {token}"}


async def _register(client: AsyncClient, email: str = "ana@example.com") -> dict[str, Any]:
    res = await client.post("/volunteers", json={"email": email, "first_name": "Ana", "last_name": "Pech"})
    assert res.status_code in (200, 201)
    return res.json()


@pytest.mark.asyncio
async def test_health_echoes_request_id(client: AsyncClient) -> None:
    res = await client.get("/health", headers={"X-Request-ID": "req-health-1"})
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}
    assert res.headers["X-Request-ID"] == "req-health-1"


@pytest.mark.asyncio
async def test_register_returns_existing_volunteer(client: AsyncClient) -> None:
    first = await client.post("/volunteers", json={"email": "Ana@Example.com", "first_name": "Ana", "last_name": "Pech"})
    second = await client.post("/volunteers", json={"email": "ana@example.com", "first_name": "A", "last_name": "P"})

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["volunteer_id"] == first.json()["volunteer_id"]
    assert second.json()["first_name"] == "Ana"


@pytest.mark.asyncio
async def test_volunteer_profile_round_trip(client: AsyncClient) -> None:
    volunteer = await _register(client)
    vid = volunteer["volunteer_id"]

    res = await client.patch(f"/volunteers/{vid}", json={"phone": "999 555 0101"})
    assert res.status_code == 200
    assert res.json()["phone"] == "999 555 0101"
    assert (await client.get(f"/volunteers/{vid}")).json()["email"] == "ana@example.com"
    assert (await client.get("/volunteers/missing")).status_code == 404


@pytest.mark.asyncio
async def test_booking_notifies_admin_after_response(client: AsyncClient, gateway: Any) -> None:
    volunteer = await _register(client)

    res = await client.post("/reservations", json={"volunteer_id": volunteer["volunteer_id"], "date": "2026-10-20"})

    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "pending"
    assert body["reservation_date"] == "2026-10-20"
    assert [r.type for r in gateway.sent] == [NotificationType.NEW_RESERVATION]
    assert gateway.sent[0].related_id == body["reservation_id"]


@pytest.mark.asyncio
async def test_booking_errors_carry_codes(client: AsyncClient) -> None:
    volunteer = await _register(client)
    other = await _register(client, email="bob@example.com")
    third = await _register(client, email="eve@example.com")
    vid = volunteer["volunteer_id"]

    weekend = await client.post("/reservations", json={"volunteer_id": vid, "date": "2026-10-24"})
    assert weekend.status_code == 400
    assert weekend.json()["detail"]["code"] == "INVALID_DATE"

    unknown = await client.post(
        "/reservations", json={"volunteer_id": "00000000-0000-4000-8000-000000000000", "date": "2026-10-20"}
    )
    assert unknown.status_code == 404
    assert unknown.json()["detail"]["code"] == "VOLUNTEER_NOT_FOUND"

    assert (await client.post("/reservations", json={"volunteer_id": vid, "date": "2026-10-20"})).status_code == 201
    duplicate = await client.post("/reservations", json={"volunteer_id": vid, "date": "2026-10-20"})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "DUPLICATE_BOOKING"

    payload = {"volunteer_id": other["volunteer_id"], "date": "2026-10-20"}
    assert (await client.post("/reservations", json=payload)).status_code == 201
    full = await client.post("/reservations", json={"volunteer_id": third["volunteer_id"], "date": "2026-10-20"})
    assert full.status_code == 409
    assert full.json()["detail"]["code"] == "CAPACITY_EXCEEDED"


@pytest.mark.asyncio
async def test_admin_decision_flow(client: AsyncClient, gateway: Any) -> None:
    volunteer = await _register(client)
    booked = await client.post("/reservations", json={"volunteer_id": volunteer["volunteer_id"], "date": "2026-10-20"})
    rid = booked.json()["reservation_id"]

    confirmed = await client.post(
        f"/admin/reservations/{rid}/decision", json={"action": "confirm"}, headers=_admin_headers()
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert confirmed.json()["email_sent"] is True
    assert gateway.sent[-1].type == NotificationType.CONFIRMATION

    listing = await client.get("/admin/reservations", params={"status": "confirmed"}, headers=_admin_headers())
    assert [row["volunteer_name"] for row in listing.json()] == ["Ana Pech"]

    cancelled = await client.post(f"/admin/reservations/{rid}/decision", json={"action": "cancel"}, headers=_admin_headers())
    assert cancelled.json()["status"] == "cancelled"
    reconfirm = await client.post(
        f"/admin/reservations/{rid}/decision", json={"action": "confirm"}, headers=_admin_headers()
    )
    assert reconfirm.status_code == 409
    assert reconfirm.json()["detail"]["code"] == "INVALID_TRANSITION"

    missing = await client.post(
        "/admin/reservations/00000000-0000-4000-8000-000000000000/decision",
        json={"action": "confirm"},
        headers=_admin_headers(),
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_availability_reflects_bookings(client: AsyncClient) -> None:
    volunteer = await _register(client)
    await client.post("/reservations", json={"volunteer_id": volunteer["volunteer_id"], "date": "2026-10-20"})

    res = await client.get("/days/availability", params={"start": "2026-10-19", "end": "2026-10-21"})

    assert res.status_code == 200
    rows = {row["date"]: row for row in res.json()}
    assert rows["2026-10-20"] == {
        "date": "2026-10-20",
        "capacity": 2,
        "reserved": 1,
        "remaining": 1,
        "service_day": True,
    }
    bad = await client.get("/days/availability", params={"start": "2026-10-21", "end": "2026-10-19"})
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_unfilled_alert_and_delivery_listing(client: AsyncClient, gateway: Any) -> None:
    res = await client.post("/admin/alerts/unfilled", headers=_admin_headers())
    assert res.status_code == 200
    body = res.json()
    assert body["target_date"] == "2026-10-20"
    assert body["outcome"] == "alert_sent"
    assert body["slots_available"] == 2
    assert body["email_sent"] is True

    deliveries = await client.get("/admin/deliveries", params={"type": "unfilled_slots_alert"}, headers=_admin_headers())
    rows = deliveries.json()
    assert len(rows) == 1
    assert rows[0]["status"] == "sent"
    assert rows[0]["related_id"] == "alert-2026-10-20"


@pytest.mark.asyncio
async def test_policy_update_and_deactivation(client: AsyncClient) -> None:
    updated = await client.put("/admin/policy", json={"max_per_day": 5, "service_start": "11:30"}, headers=_admin_headers())
    assert updated.status_code == 200
    assert updated.json()["max_per_day"] == 5
    assert updated.json()["service_start"] == "11:30"
    assert (await client.put("/admin/policy", json={}, headers=_admin_headers())).status_code == 400

    volunteer = await _register(client)
    vid = volunteer["volunteer_id"]
    res = await client.post(f"/admin/volunteers/{vid}/deactivate", headers=_admin_headers())
    assert res.json()["status"] == "inactive"
    blocked = await client.post("/reservations", json={"volunteer_id": vid, "date": "2026-10-20"})
    assert blocked.status_code == 404


@pytest.mark.asyncio
async def test_diagnostic_email_and_recovery(client: AsyncClient, gateway: Any) -> None:
    res = await client.post("/admin/notifications/test", json={"to": "ops@example.com"}, headers=_admin_headers())
    assert res.status_code == 200
    assert res.json()["success"] is True
    assert gateway.sent[-1].type == NotificationType.TEST

    recovered = await client.post("/admin/deliveries/recover", headers=_admin_headers())
    assert recovered.json() == {"resumed": 0, "delivered": 0, "failed": 0}

    gateway.ready = False
    unconfigured = await client.post("/admin/deliveries/recover", headers=_admin_headers())
    assert unconfigured.status_code == 503
    assert unconfigured.json()["detail"]["code"] == "CONFIGURATION_ERROR"
