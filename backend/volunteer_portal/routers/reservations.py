from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path, status

from ..deps import get_coordinator
from ..domain.errors import (
    CapacityExceededError,
    DuplicateBookingError,
    InvalidDateError,
    ReservationNotFoundError,
    VolunteerNotFoundError,
)
from ..schemas import ReservationCreate, ReservationRead
from ..usecases.bookings import BookingCoordinator
from .errors import to_http_exception

router = APIRouter(prefix="", tags=["reservations"])


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    background_tasks: BackgroundTasks,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> ReservationRead:
    try:
        result = await coordinator.create_reservation(payload.volunteer_id, payload.reservation_date)
    except (InvalidDateError, VolunteerNotFoundError, DuplicateBookingError, CapacityExceededError) as exc:
        raise to_http_exception(exc) from exc

    # runs after the response is sent; the booking is already committed
    if result.notification is not None:
        background_tasks.add_task(coordinator.dispatcher.dispatch, result.notification)
    return ReservationRead.from_db(reservation=result.reservation)


@router.get("/reservations/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    reservation_id: str = Path(..., min_length=1, max_length=36),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> ReservationRead:
    try:
        reservation = await coordinator.get_reservation(reservation_id)
    except ReservationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    return ReservationRead.from_db(reservation=reservation, volunteer=reservation.volunteer)
