from typing import Optional

from ..domain.errors import VolunteerNotFoundError
from ..domain.repositories import VolunteerRepository
from ..models import Volunteer, VolunteerStatus


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def register_volunteer(
    repo: VolunteerRepository,
    *,
    email: str,
    first_name: str,
    last_name: str,
    phone: Optional[str],
) -> tuple[Volunteer, bool]:
    """Return the volunteer for `email`, creating it on first registration."""
    email = normalize_email(email)
    existing = await repo.get_by_email(email)
    if existing is not None:
        return existing, False
    volunteer = await repo.create(
        email=email,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        phone=phone.strip() if phone else None,
    )
    return volunteer, True


async def get_volunteer(repo: VolunteerRepository, *, volunteer_id: str) -> Volunteer:
    volunteer = await repo.get(volunteer_id)
    if volunteer is None:
        raise VolunteerNotFoundError("volunteer not found")
    return volunteer


async def update_profile(
    repo: VolunteerRepository,
    *,
    volunteer_id: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
) -> Volunteer:
    # email is the volunteer's identity and is never changed here
    volunteer = await get_volunteer(repo, volunteer_id=volunteer_id)
    if first_name is not None:
        volunteer.first_name = first_name.strip()
    if last_name is not None:
        volunteer.last_name = last_name.strip()
    if phone is not None:
        volunteer.phone = phone.strip() or None
    return await repo.save(volunteer)


async def deactivate_volunteer(repo: VolunteerRepository, *, volunteer_id: str) -> tuple[Volunteer, VolunteerStatus]:
    volunteer = await get_volunteer(repo, volunteer_id=volunteer_id)
    previous = volunteer.status
    if previous == VolunteerStatus.INACTIVE:
        return volunteer, previous
    volunteer.status = VolunteerStatus.INACTIVE
    return await repo.save(volunteer), previous
