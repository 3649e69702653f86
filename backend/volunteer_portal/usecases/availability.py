from datetime import date
from typing import Any, Dict, List

from ..domain.errors import ValidationError
from ..domain.repositories import ReservationRepository
from ..domain.services import is_service_day
from ..utils.time import date_range

MAX_RANGE_DAYS = 62


async def list_availability(
    res_repo: ReservationRepository,
    *,
    start: date,
    end: date,
    capacity: int,
) -> List[Dict[str, Any]]:
    if start > end:
        raise ValidationError("start must not be after end")
    if (end - start).days >= MAX_RANGE_DAYS:
        raise ValidationError(f"range is limited to {MAX_RANGE_DAYS} days")

    reserved_by_day = await res_repo.count_active_between(start, end)
    items: List[Dict[str, Any]] = []
    for day in date_range(start, end):
        reserved = reserved_by_day.get(day, 0)
        items.append(
            {
                "date": day,
                "capacity": capacity,
                "reserved": reserved,
                "remaining": max(capacity - reserved, 0),
                "service_day": is_service_day(day),
            }
        )
    return items
