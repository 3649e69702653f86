from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_policy_store, get_session
from ..domain.errors import ValidationError
from ..infrastructure.policy_store import AdminPolicyStore
from ..infrastructure.repositories import SqlAlchemyReservationRepository
from ..schemas import DayAvailability
from ..usecases import availability as availability_usecase
from .errors import to_http_exception

router = APIRouter(prefix="/days", tags=["days"])


@router.get("/availability", response_model=List[DayAvailability], response_model_by_alias=True)
async def list_availability(
    start: date = Query(..., description="first service date (inclusive)"),
    end: date = Query(..., description="last service date (inclusive)"),
    session: AsyncSession = Depends(get_session),
    policy_store: AdminPolicyStore = Depends(get_policy_store),
) -> list[DayAvailability]:
    policy = await policy_store.get()
    try:
        rows = await availability_usecase.list_availability(
            SqlAlchemyReservationRepository(session),
            start=start,
            end=end,
            capacity=policy.max_per_day,
        )
    except ValidationError as exc:
        raise to_http_exception(exc) from exc
    return [
        DayAvailability(
            day=entry["date"],
            capacity=entry["capacity"],
            reserved=entry["reserved"],
            remaining=entry["remaining"],
            service_day=entry["service_day"],
        )
        for entry in rows
    ]
