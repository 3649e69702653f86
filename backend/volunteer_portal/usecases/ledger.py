"""Capacity ledger: the only place reservations become active or stop being active."""

from datetime import date, datetime
from enum import StrEnum

from ..domain.errors import ReservationNotFoundError, VolunteerNotFoundError
from ..domain.repositories import ReservationRepository, ServiceDayRepository, VolunteerRepository
from ..domain.services import DaySnapshot, validate_reservation
from ..models import Reservation, ReservationStatus, VolunteerStatus


class ReleaseResult(StrEnum):
    RELEASED = "released"
    ALREADY_RELEASED = "already_released"


async def open_day(day_repo: ServiceDayRepository, *, day: date) -> None:
    """Create the lock row for `day`. Commit this before calling `reserve`."""
    await day_repo.open(day)


async def reserve(
    day_repo: ServiceDayRepository,
    res_repo: ReservationRepository,
    volunteer_repo: VolunteerRepository,
    *,
    day: date,
    volunteer_id: str,
    capacity: int,
) -> Reservation:
    """
    Insert a pending reservation for `day` if the day still has room.

    Must run inside the caller's transaction, after `open_day` committed.
    The day lock is taken before anything else is read so the count below
    reflects every reservation committed by earlier holders of the lock.
    """
    await day_repo.lock(day)

    volunteer = await volunteer_repo.get(volunteer_id)
    if volunteer is None or volunteer.status != VolunteerStatus.ACTIVE:
        raise VolunteerNotFoundError("volunteer not found or inactive")

    snapshot = DaySnapshot(
        capacity=capacity,
        reserved=await res_repo.count_active(day),
        volunteer_has_active_reservation=await res_repo.volunteer_has_active(day, volunteer_id),
    )
    validate_reservation(snapshot)

    return await res_repo.create(day=day, volunteer_id=volunteer_id, status=ReservationStatus.PENDING)


async def release(
    res_repo: ReservationRepository,
    *,
    reservation_id: str,
    now: datetime,
) -> ReleaseResult:
    if await res_repo.release(reservation_id, now=now):
        return ReleaseResult.RELEASED
    # Idempotent: an already cancelled reservation frees nothing twice
    if await res_repo.get(reservation_id) is None:
        raise ReservationNotFoundError("reservation not found")
    return ReleaseResult.ALREADY_RELEASED
