from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_coordinator, get_session
from ..domain.errors import VolunteerNotFoundError
from ..infrastructure.repositories import SqlAlchemyVolunteerRepository
from ..schemas import ReservationRead, VolunteerCreate, VolunteerRead, VolunteerUpdate
from ..usecases import volunteers as volunteer_usecase
from ..usecases.bookings import BookingCoordinator
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="/volunteers", tags=["volunteers"])


@router.post("", response_model=VolunteerRead, status_code=status.HTTP_201_CREATED)
async def register_volunteer(
    payload: VolunteerCreate,
    response: Response,
    session: AsyncSession = Depends(get_session),
) -> VolunteerRead:
    repo = SqlAlchemyVolunteerRepository(session)
    try:
        async with session.begin():
            volunteer, created = await volunteer_usecase.register_volunteer(
                repo,
                email=payload.email,
                first_name=payload.first_name,
                last_name=payload.last_name,
                phone=payload.phone,
            )
    except IntegrityError:
        # the same email registered concurrently
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="email already registered")

    if created:
        emit_audit_log(action="volunteer.registered", initiator="volunteer", volunteer_id=volunteer.id)
    else:
        response.status_code = status.HTTP_200_OK
    return VolunteerRead.from_db(volunteer=volunteer)


@router.get("/{volunteer_id}", response_model=VolunteerRead)
async def get_volunteer(
    volunteer_id: str = Path(..., min_length=1, max_length=36),
    session: AsyncSession = Depends(get_session),
) -> VolunteerRead:
    repo = SqlAlchemyVolunteerRepository(session)
    try:
        volunteer = await volunteer_usecase.get_volunteer(repo, volunteer_id=volunteer_id)
    except VolunteerNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="volunteer not found")
    return VolunteerRead.from_db(volunteer=volunteer)


@router.patch("/{volunteer_id}", response_model=VolunteerRead)
async def update_volunteer(
    payload: VolunteerUpdate,
    volunteer_id: str = Path(..., min_length=1, max_length=36),
    session: AsyncSession = Depends(get_session),
) -> VolunteerRead:
    repo = SqlAlchemyVolunteerRepository(session)
    async with session.begin():
        try:
            volunteer = await volunteer_usecase.update_profile(
                repo,
                volunteer_id=volunteer_id,
                first_name=payload.first_name,
                last_name=payload.last_name,
                phone=payload.phone,
            )
        except VolunteerNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="volunteer not found")
    return VolunteerRead.from_db(volunteer=volunteer)


@router.get("/{volunteer_id}/reservations", response_model=List[ReservationRead])
async def list_volunteer_reservations(
    volunteer_id: str = Path(..., min_length=1, max_length=36),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> list[ReservationRead]:
    rows = await coordinator.list_reservations(volunteer_id=volunteer_id)
    return [ReservationRead.from_db(reservation=reservation, volunteer=reservation.volunteer) for reservation in rows]
