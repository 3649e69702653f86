from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from ..domain.errors import DuplicateBookingError
from ..domain.repositories import ReservationRepository, ServiceDayRepository, VolunteerRepository
from ..models import Reservation, ReservationStatus, ServiceDay, Volunteer, VolunteerStatus
from ..utils.time import utc_now_naive


def new_id() -> str:
    return str(uuid.uuid4())


class SqlAlchemyVolunteerRepository(VolunteerRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, volunteer_id: str) -> Volunteer | None:
        return await self.session.get(Volunteer, volunteer_id)

    async def get_by_email(self, email: str) -> Volunteer | None:
        return await self.session.scalar(select(Volunteer).where(Volunteer.email == email))

    async def create(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        phone: str | None,
    ) -> Volunteer:
        now = utc_now_naive()
        volunteer = Volunteer(
            id=new_id(),
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            status=VolunteerStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self.session.add(volunteer)
        await self.session.flush()
        return volunteer

    async def save(self, volunteer: Volunteer) -> Volunteer:
        volunteer.updated_at = utc_now_naive()
        self.session.add(volunteer)
        await self.session.flush()
        return volunteer


class SqlAlchemyServiceDayRepository(ServiceDayRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def open(self, day: date) -> None:
        """
        Make sure the lock row for `day` exists. Run it in its own short
        transaction, committed before the reserving transaction starts.

        Never preceded by a locking read, so no gap lock is held while
        inserting and concurrent openers cannot deadlock on InnoDB.
        """
        values = {"day": day, "created_at": utc_now_naive()}
        dialect = self.session.get_bind().dialect.name
        if dialect == "mysql":
            await self.session.execute(mysql_insert(ServiceDay).values(**values).prefix_with("IGNORE"))
        elif dialect == "sqlite":
            await self.session.execute(sqlite_insert(ServiceDay).values(**values).on_conflict_do_nothing())
        else:
            try:
                async with self.session.begin_nested():
                    self.session.add(ServiceDay(**values))
            except IntegrityError:
                pass

    async def lock(self, day: date) -> None:
        """
        Take the row lock that serializes every reserver of `day`.

        Only locking reads happen here, so on MySQL the transaction's
        consistent snapshot is not opened until after the lock is held.
        """
        stmt = select(ServiceDay.day).where(ServiceDay.day == day).with_for_update()
        if await self.session.scalar(stmt) is None:
            raise RuntimeError(f"service day {day} must be opened before it is locked")


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def volunteer_has_active(self, day: date, volunteer_id: str) -> bool:
        stmt = select(Reservation.id).where(
            Reservation.reservation_date == day,
            Reservation.volunteer_id == volunteer_id,
            Reservation.status != ReservationStatus.CANCELLED,
        )
        return await self.session.scalar(stmt) is not None

    async def count_active(self, day: date) -> int:
        stmt = select(func.count(Reservation.id)).where(
            Reservation.reservation_date == day,
            Reservation.status != ReservationStatus.CANCELLED,
        )
        return int(await self.session.scalar(stmt) or 0)

    async def count_active_between(self, start: date, end: date) -> dict[date, int]:
        stmt: Select[tuple[date, Any]] = (
            select(Reservation.reservation_date, func.count(Reservation.id))
            .where(
                Reservation.reservation_date >= start,
                Reservation.reservation_date <= end,
                Reservation.status != ReservationStatus.CANCELLED,
            )
            .group_by(Reservation.reservation_date)
        )
        rows = await self.session.execute(stmt)
        return {day: int(count) for day, count in rows.all()}

    async def create(self, *, day: date, volunteer_id: str, status: ReservationStatus) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            id=new_id(),
            volunteer_id=volunteer_id,
            reservation_date=day,
            status=status,
            active=True,
            created_at=now,
            updated_at=now,
        )
        self.session.add(reservation)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # uq_res_volunteer_day_active: a concurrent duplicate committed first
            raise DuplicateBookingError("volunteer already holds a reservation for this date") from exc
        return reservation

    async def get(self, reservation_id: str) -> Reservation | None:
        stmt = (
            select(Reservation)
            .options(joinedload(Reservation.volunteer))
            .where(Reservation.id == reservation_id)
        )
        return await self.session.scalar(stmt)

    async def get_for_update(self, reservation_id: str) -> Reservation | None:
        stmt = (
            select(Reservation)
            .options(joinedload(Reservation.volunteer))
            .where(Reservation.id == reservation_id)
            .with_for_update(of=Reservation)
        )
        return await self.session.scalar(stmt)

    async def release(self, reservation_id: str, *, now: datetime) -> bool:
        stmt = (
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status != ReservationStatus.CANCELLED,
            )
            .values(status=ReservationStatus.CANCELLED, active=None, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def save(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def search(
        self,
        *,
        status: ReservationStatus | None = None,
        day: date | None = None,
        volunteer_id: str | None = None,
    ) -> list[Reservation]:
        stmt = select(Reservation).options(joinedload(Reservation.volunteer))
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        if day is not None:
            stmt = stmt.where(Reservation.reservation_date == day)
        if volunteer_id is not None:
            stmt = stmt.where(Reservation.volunteer_id == volunteer_id)
        stmt = stmt.order_by(Reservation.reservation_date, Reservation.created_at)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def names_for_day(self, day: date, status: ReservationStatus) -> list[str]:
        stmt = (
            select(Volunteer.first_name, Volunteer.last_name)
            .join(Reservation, Reservation.volunteer_id == Volunteer.id)
            .where(Reservation.reservation_date == day, Reservation.status == status)
            .order_by(Volunteer.last_name, Volunteer.first_name)
        )
        rows = await self.session.execute(stmt)
        return [f"{first} {last}" for first, last in rows.all()]
