from datetime import datetime, timezone
from typing import Any, cast

import pytest
from fastapi import HTTPException, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from volunteer_portal.models import Volunteer, VolunteerStatus
from volunteer_portal.routers import admin as admin_router
from volunteer_portal.routers import volunteers as router
from volunteer_portal.schemas import VolunteerCreate, VolunteerRead
from volunteer_portal.utils.auth import ADMIN_ROLE, Principal


class DummySession:
    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False

    def begin(self) -> "DummySession":
        return self


def _volunteer(status: VolunteerStatus = VolunteerStatus.ACTIVE) -> Volunteer:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return Volunteer(
        id="vol-1",
        email="ana@example.com",
        first_name="Ana",
        last_name="Pech",
        phone=None,
        status=status,
        created_at=now,
        updated_at=now,
    )


def _payload() -> VolunteerCreate:
    return VolunteerCreate(email="ana@example.com", first_name="Ana", last_name="Pech")


@pytest.mark.asyncio
async def test_register_emits_audit_only_for_new_volunteers(monkeypatch: pytest.MonkeyPatch) -> None:
    volunteer = _volunteer()
    created_flags = [True, False]

    async def fake_register(*args: object, **kwargs: object) -> tuple[Volunteer, bool]:
        return volunteer, created_flags.pop(0)

    calls: list[dict[str, Any]] = []

    def fake_emit(**kwargs: Any) -> None:
        calls.append(kwargs)

    monkeypatch.setattr(router, "SqlAlchemyVolunteerRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router.volunteer_usecase, "register_volunteer", fake_register)
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)

    first_response, second_response = Response(), Response()
    first: VolunteerRead = await router.register_volunteer(
        payload=_payload(), response=first_response, session=cast(AsyncSession, DummySession())
    )
    await router.register_volunteer(payload=_payload(), response=second_response, session=cast(AsyncSession, DummySession()))

    assert first.volunteer_id == "vol-1"
    assert second_response.status_code == 200
    assert len(calls) == 1
    assert calls[0]["action"] == "volunteer.registered"
    assert calls[0]["volunteer_id"] == "vol-1"


@pytest.mark.asyncio
async def test_register_race_on_email_returns_409(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_register(*args: object, **kwargs: object) -> tuple[Volunteer, bool]:
        raise IntegrityError("insert", None, Exception("Duplicate entry"))

    monkeypatch.setattr(router, "SqlAlchemyVolunteerRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router.volunteer_usecase, "register_volunteer", fake_register)

    with pytest.raises(HTTPException) as excinfo:
        await router.register_volunteer(payload=_payload(), response=Response(), session=cast(AsyncSession, DummySession()))
    assert excinfo.value.status_code == 409


@pytest.mark.asyncio
async def test_deactivate_emits_audit_with_actor(monkeypatch: pytest.MonkeyPatch) -> None:
    volunteer = _volunteer(VolunteerStatus.INACTIVE)

    async def fake_deactivate(*args: object, **kwargs: object) -> tuple[Volunteer, VolunteerStatus]:
        return volunteer, VolunteerStatus.ACTIVE

    calls: list[dict[str, Any]] = []

    def fake_emit(**kwargs: Any) -> None:
        calls.append(kwargs)

    monkeypatch.setattr(admin_router, "SqlAlchemyVolunteerRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(admin_router.volunteer_usecase, "deactivate_volunteer", fake_deactivate)
    monkeypatch.setattr(admin_router, "emit_audit_log", fake_emit)

    result = await admin_router.deactivate_volunteer(
        volunteer_id="vol-1",
        admin=Principal(subject="admin-1", role=ADMIN_ROLE),
        session=cast(AsyncSession, DummySession()),
    )

    assert result.status == VolunteerStatus.INACTIVE
    assert calls[0]["action"] == "volunteer.deactivated"
    assert calls[0]["status_from"] == VolunteerStatus.ACTIVE
    assert calls[0]["actor_id"] == "admin-1"
