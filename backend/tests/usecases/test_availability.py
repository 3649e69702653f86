from datetime import date
from typing import cast

import pytest
from volunteer_portal.domain.errors import ValidationError
from volunteer_portal.domain.repositories import ReservationRepository
from volunteer_portal.usecases import availability as uc


class FakeReservationRepo:
    def __init__(self, counts: dict[date, int]) -> None:
        self.counts = counts
        self.calls: list[tuple[date, date]] = []

    async def count_active_between(self, start: date, end: date) -> dict[date, int]:
        self.calls.append((start, end))
        return self.counts


@pytest.mark.asyncio
async def test_lists_every_day_in_range() -> None:
    repo = FakeReservationRepo({date(2026, 10, 20): 5, date(2026, 10, 23): 30})

    rows = await uc.list_availability(
        cast(ReservationRepository, repo),
        start=date(2026, 10, 19),
        end=date(2026, 10, 25),
        capacity=23,
    )

    assert [row["date"] for row in rows][0] == date(2026, 10, 19)
    assert len(rows) == 7
    by_day = {row["date"]: row for row in rows}
    assert by_day[date(2026, 10, 19)]["remaining"] == 23
    assert by_day[date(2026, 10, 20)]["reserved"] == 5
    assert by_day[date(2026, 10, 20)]["remaining"] == 18
    # over-booked legacy data never shows negative room
    assert by_day[date(2026, 10, 23)]["remaining"] == 0
    assert by_day[date(2026, 10, 24)]["service_day"] is False
    assert repo.calls == [(date(2026, 10, 19), date(2026, 10, 25))]


@pytest.mark.asyncio
async def test_rejects_inverted_or_oversized_range() -> None:
    repo = cast(ReservationRepository, FakeReservationRepo({}))
    with pytest.raises(ValidationError):
        await uc.list_availability(repo, start=date(2026, 10, 20), end=date(2026, 10, 19), capacity=23)
    with pytest.raises(ValidationError):
        await uc.list_availability(repo, start=date(2026, 10, 1), end=date(2026, 12, 31), capacity=23)
