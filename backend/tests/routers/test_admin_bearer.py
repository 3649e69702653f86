from datetime import time, timedelta
from typing import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from volunteer_portal.config import get_settings
from volunteer_portal.deps import get_policy_store
from volunteer_portal.infrastructure.policy_store import PolicySnapshot
from volunteer_portal.routers import admin
from volunteer_portal.utils.auth import ADMIN_ROLE, create_access_token


class StaticPolicyStore:
    async def get(self) -> PolicySnapshot:
        return PolicySnapshot(
            admin_email="admin@example.com",
            max_per_day=23,
            notify_lead_hours=12,
            service_start=time(12, 0),
        )


def _client() -> TestClient:
    app = FastAPI()
    app.include_router(admin.router)
    app.dependency_overrides[get_policy_store] = StaticPolicyStore
    return TestClient(app)


def _token(role: str | None = ADMIN_ROLE, *, expired: bool = False) -> str:
    delta = timedelta(seconds=-1) if expired else timedelta(minutes=30)
    return create_access_token(subject="admin-1", role=role, secret="testsecret", expires_delta=delta)


@pytest.fixture(autouse=True)
def _auth_secret(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("AUTH_SECRET", "testsecret")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_admin_routes_accept_admin_token() -> None:
    res = _client().get("/admin/policy", headers={"Authorization": f"Bearer {_token()}"})
    assert res.status_code == 200
    assert res.json() == {
        "admin_email": "admin@example.com",
        "max_per_day": 23,
        "notify_lead_hours": 12,
        "service_start": "12:00",
    }


def test_admin_routes_reject_missing_header() -> None:
    res = _client().get("/admin/policy")
    assert res.status_code == 401
    assert res.headers.get("www-authenticate", "").lower().startswith("bearer")


def test_admin_routes_reject_invalid_and_expired_tokens() -> None:
    client = _client()
    assert client.get("/admin/policy", headers={"Authorization": "Bearer invalid"}).status_code == 401
    expired = _token(expired=True)
    assert client.get("/admin/policy", headers={"Authorization": f"Bearer {expired}"}).status_code == 401


def test_admin_routes_forbid_volunteer_role() -> None:
    res = _client().get("/admin/policy", headers={"Authorization": f"Bearer {_token(role='volunteer')}"})
    assert res.status_code == 403
