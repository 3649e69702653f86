from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from ..models import Reservation, ReservationStatus, Volunteer


class VolunteerRepository(Protocol):
    async def get(self, volunteer_id: str) -> Volunteer | None: ...

    async def get_by_email(self, email: str) -> Volunteer | None: ...

    async def create(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        phone: str | None,
    ) -> Volunteer: ...

    async def save(self, volunteer: Volunteer) -> Volunteer: ...


class ServiceDayRepository(Protocol):
    async def open(self, day: date) -> None: ...

    async def lock(self, day: date) -> None: ...


class ReservationRepository(Protocol):
    async def volunteer_has_active(self, day: date, volunteer_id: str) -> bool: ...

    async def count_active(self, day: date) -> int: ...

    async def count_active_between(self, start: date, end: date) -> dict[date, int]: ...

    async def create(self, *, day: date, volunteer_id: str, status: ReservationStatus) -> Reservation: ...

    async def get(self, reservation_id: str) -> Reservation | None: ...

    async def get_for_update(self, reservation_id: str) -> Reservation | None: ...

    async def release(self, reservation_id: str, *, now: datetime) -> bool: ...

    async def save(self, reservation: Reservation) -> Reservation: ...

    async def search(
        self,
        *,
        status: ReservationStatus | None = None,
        day: date | None = None,
        volunteer_id: str | None = None,
    ) -> list[Reservation]: ...

    async def names_for_day(self, day: date, status: ReservationStatus) -> list[str]: ...
