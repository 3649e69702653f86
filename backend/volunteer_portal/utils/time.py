from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_today(tz_name: str, *, now_utc: datetime | None = None) -> date:
    """Calendar date in the service time zone; `now_utc` is naive UTC."""
    current = now_utc if now_utc is not None else utc_now_naive()
    return current.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).date()


def parse_clock(value: str) -> time:
    """Parse an "HH:MM" or "HH:MM:SS" wall-clock string."""
    return time.fromisoformat(value)


def date_range(start: date, end: date) -> list[date]:
    days = (end - start).days
    return [start + timedelta(days=offset) for offset in range(days + 1)]
