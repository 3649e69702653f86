from dataclasses import dataclass
from datetime import date
from enum import StrEnum

from ..models import ReservationStatus
from .errors import CapacityExceededError, DuplicateBookingError, InvalidDateError, InvalidTransitionError


class Decision(StrEnum):
    CONFIRM = "confirm"
    CANCEL = "cancel"


@dataclass(frozen=True)
class DaySnapshot:
    capacity: int
    reserved: int
    volunteer_has_active_reservation: bool


def is_service_day(day: date) -> bool:
    """Service runs Monday to Friday."""
    return day.weekday() < 5


def validate_service_date(day: date, *, today: date) -> None:
    if day < today:
        raise InvalidDateError("cannot book a date in the past")
    if not is_service_day(day):
        raise InvalidDateError("bookings are only accepted for weekdays")


def validate_reservation(snapshot: DaySnapshot) -> int:
    """
    Pure validation: rejects duplicates first, then a full day.
    Returns remaining capacity after booking if OK. Raises domain errors otherwise.
    """
    if snapshot.volunteer_has_active_reservation:
        raise DuplicateBookingError("volunteer already holds a reservation for this date")

    remaining = snapshot.capacity - snapshot.reserved
    if remaining <= 0:
        raise CapacityExceededError("no slots left for this date")
    return remaining - 1


def next_status(current: ReservationStatus, decision: Decision) -> ReservationStatus | None:
    """
    Target status for an admin decision, or None when the decision re-applies
    the current state (cancel on cancelled, confirm on confirmed).
    """
    if decision is Decision.CANCEL:
        if current == ReservationStatus.CANCELLED:
            return None
        return ReservationStatus.CANCELLED

    if current == ReservationStatus.CONFIRMED:
        return None
    if current == ReservationStatus.CANCELLED:
        raise InvalidTransitionError("a cancelled reservation cannot be confirmed")
    return ReservationStatus.CONFIRMED
