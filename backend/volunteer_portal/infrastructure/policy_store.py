from __future__ import annotations

import logging
import time as _time
from dataclasses import dataclass
from datetime import time
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..models import CapacityPolicy
from ..utils.time import parse_clock, utc_now_naive

logger = logging.getLogger(__name__)

POLICY_ID = 1


@dataclass(frozen=True)
class PolicySnapshot:
    admin_email: str
    max_per_day: int
    notify_lead_hours: int
    service_start: time


class AdminPolicyStore:
    """Read-mostly access to the capacity policy singleton, cached for `ttl_seconds`."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        defaults: PolicySnapshot,
        ttl_seconds: float = 30.0,
        monotonic: Callable[[], float] = _time.monotonic,
    ) -> None:
        self.session_factory = session_factory
        self.defaults = defaults
        self.ttl_seconds = ttl_seconds
        self._monotonic = monotonic
        self._cached: PolicySnapshot | None = None
        self._cached_at = 0.0

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
    ) -> "AdminPolicyStore":
        defaults = PolicySnapshot(
            admin_email=settings.admin_email,
            max_per_day=settings.default_max_per_day,
            notify_lead_hours=settings.default_notify_lead_hours,
            service_start=parse_clock(settings.default_service_start),
        )
        return cls(session_factory, defaults=defaults, ttl_seconds=settings.policy_cache_ttl_seconds)

    async def get(self) -> PolicySnapshot:
        if self._cached is not None and self._monotonic() - self._cached_at < self.ttl_seconds:
            return self._cached
        async with self.session_factory() as session, session.begin():
            row = await self._load_or_seed(session)
            snapshot = _snapshot(row)
        self._remember(snapshot)
        return snapshot

    async def update(self, **fields: Any) -> PolicySnapshot:
        allowed = {"admin_email", "max_per_day", "notify_lead_hours", "service_start"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"unknown policy fields: {sorted(unknown)}")
        async with self.session_factory() as session, session.begin():
            row = await self._load_or_seed(session)
            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = utc_now_naive()
            await session.flush()
            snapshot = _snapshot(row)
        logger.info("capacity policy updated: %s", sorted(fields))
        self._remember(snapshot)
        return snapshot

    def invalidate(self) -> None:
        self._cached = None

    def _remember(self, snapshot: PolicySnapshot) -> None:
        self._cached = snapshot
        self._cached_at = self._monotonic()

    async def _load_or_seed(self, session: AsyncSession) -> CapacityPolicy:
        row = await session.get(CapacityPolicy, POLICY_ID)
        if row is None:
            logger.info("seeding capacity policy from configuration")
            row = CapacityPolicy(
                id=POLICY_ID,
                admin_email=self.defaults.admin_email,
                max_per_day=self.defaults.max_per_day,
                notify_lead_hours=self.defaults.notify_lead_hours,
                service_start=self.defaults.service_start,
                updated_at=utc_now_naive(),
            )
            session.add(row)
            await session.flush()
        return row


def _snapshot(row: CapacityPolicy) -> PolicySnapshot:
    return PolicySnapshot(
        admin_email=row.admin_email,
        max_per_day=row.max_per_day,
        notify_lead_hours=row.notify_lead_hours,
        service_start=row.service_start,
    )

