"""Booking coordinator: reservation state changes first, notifications after commit."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import ConfigurationError, ReservationNotFoundError
from ..domain.notifications import DispatchResult, NotificationRequest
from ..domain.services import Decision, is_service_day, next_status, validate_service_date
from ..infrastructure.policy_store import AdminPolicyStore, PolicySnapshot
from ..infrastructure.repositories import (
    SqlAlchemyReservationRepository,
    SqlAlchemyServiceDayRepository,
    SqlAlchemyVolunteerRepository,
)
from ..models import Reservation, ReservationStatus
from ..utils.audit_log import emit_audit_log
from ..utils.time import local_today, utc_now_naive
from . import ledger, messages
from .delivery import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingResult:
    reservation: Reservation
    reserved: int
    capacity: int
    # None when no admin recipient is configured
    notification: Optional[NotificationRequest]


@dataclass(frozen=True)
class DecisionResult:
    reservation: Reservation
    changed: bool
    dispatch: DispatchResult

    @property
    def email_sent(self) -> bool:
        return self.dispatch.success


class UnfilledOutcome(StrEnum):
    SKIPPED = "skipped"
    FULL = "full"
    ALERT_SENT = "alert_sent"
    ALERT_FAILED = "alert_failed"


@dataclass(frozen=True)
class UnfilledCheckResult:
    day: date
    outcome: UnfilledOutcome
    reserved: int
    capacity: int
    dispatch: Optional[DispatchResult] = None


def admin_recipient(policy: PolicySnapshot) -> str:
    if not policy.admin_email:
        raise ConfigurationError("ADMIN_EMAIL is not configured")
    return policy.admin_email


class BookingCoordinator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy_store: AdminPolicyStore,
        dispatcher: NotificationDispatcher,
        *,
        service_timezone: str,
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self.session_factory = session_factory
        self.policy_store = policy_store
        self.dispatcher = dispatcher
        self.service_timezone = service_timezone
        self.clock = clock

    def today(self) -> date:
        return local_today(self.service_timezone, now_utc=self.clock())

    async def create_reservation(self, volunteer_id: str, day: date) -> BookingResult:
        """
        Book `day` for the volunteer. Raises InvalidDateError, VolunteerNotFoundError,
        DuplicateBookingError or CapacityExceededError; nothing is written then.

        The returned notification is meant to be dispatched after the response
        is sent; it never affects the booking itself.
        """
        validate_service_date(day, today=self.today())
        policy = await self.policy_store.get()

        async with self.session_factory() as session:
            async with session.begin():
                await ledger.open_day(SqlAlchemyServiceDayRepository(session), day=day)
            async with session.begin():
                res_repo = SqlAlchemyReservationRepository(session)
                volunteer_repo = SqlAlchemyVolunteerRepository(session)
                reservation = await ledger.reserve(
                    SqlAlchemyServiceDayRepository(session),
                    res_repo,
                    volunteer_repo,
                    day=day,
                    volunteer_id=volunteer_id,
                    capacity=policy.max_per_day,
                )
                reserved = await res_repo.count_active(day)
                volunteer = await volunteer_repo.get(volunteer_id)

        emit_audit_log(
            action="reservation.created",
            initiator="volunteer",
            reservation_id=reservation.id,
            volunteer_id=volunteer_id,
            reservation_date=day,
            status_to=reservation.status,
        )

        notification: Optional[NotificationRequest] = None
        try:
            notification = messages.new_reservation_message(
                admin_email=admin_recipient(policy),
                reservation=reservation,
                volunteer=volunteer,
                reserved=reserved,
                capacity=policy.max_per_day,
            )
        except ConfigurationError as exc:
            logger.warning("reservation %s will not be announced: %s", reservation.id, exc)

        return BookingResult(
            reservation=reservation,
            reserved=reserved,
            capacity=policy.max_per_day,
            notification=notification,
        )

    async def decide(
        self,
        reservation_id: str,
        decision: Decision,
        *,
        actor_id: Optional[str] = None,
    ) -> DecisionResult:
        """
        Apply an admin decision, commit it, then notify the volunteer.

        The transition is durable before dispatch starts; a failed email only
        shows up as `email_sent == False`.
        """
        policy = await self.policy_store.get()
        now = self.clock()

        async with self.session_factory() as session:
            async with session.begin():
                res_repo = SqlAlchemyReservationRepository(session)
                reservation = await res_repo.get_for_update(reservation_id)
                if reservation is None:
                    raise ReservationNotFoundError("reservation not found")

                previous = reservation.status
                target = next_status(previous, decision)
                if target == ReservationStatus.CANCELLED:
                    await ledger.release(res_repo, reservation_id=reservation.id, now=now)
                elif target == ReservationStatus.CONFIRMED:
                    reservation.status = ReservationStatus.CONFIRMED
                    reservation.confirmed_at = now
                    reservation.updated_at = now
                    await res_repo.save(reservation)
                volunteer = reservation.volunteer

        if target is not None:
            emit_audit_log(
                action="reservation.confirmed" if target == ReservationStatus.CONFIRMED else "reservation.cancelled",
                initiator="admin",
                reservation_id=reservation.id,
                volunteer_id=reservation.volunteer_id,
                reservation_date=reservation.reservation_date,
                status_from=previous,
                status_to=target,
                actor_id=actor_id,
            )

        request = messages.decision_message(
            reservation=reservation,
            volunteer=volunteer,
            service_start=policy.service_start,
        )
        dispatch = await self.dispatcher.dispatch(request)
        if not dispatch.success:
            logger.warning("reservation %s is %s but the volunteer was not notified: %s",
                           reservation.id, reservation.status, dispatch.error)
        return DecisionResult(reservation=reservation, changed=target is not None, dispatch=dispatch)

    async def check_unfilled_capacity(self) -> UnfilledCheckResult:
        """Alert the admin when tomorrow's service still has open slots."""
        day = self.today() + timedelta(days=1)
        policy = await self.policy_store.get()
        if not is_service_day(day):
            return UnfilledCheckResult(day=day, outcome=UnfilledOutcome.SKIPPED, reserved=0, capacity=policy.max_per_day)

        async with self.session_factory() as session:
            res_repo = SqlAlchemyReservationRepository(session)
            reserved = await res_repo.count_active(day)
            confirmed_names = await res_repo.names_for_day(day, ReservationStatus.CONFIRMED)

        if reserved >= policy.max_per_day:
            return UnfilledCheckResult(day=day, outcome=UnfilledOutcome.FULL, reserved=reserved, capacity=policy.max_per_day)

        request = messages.unfilled_alert_message(
            admin_email=admin_recipient(policy),
            day=day,
            reserved=reserved,
            capacity=policy.max_per_day,
            confirmed_names=confirmed_names,
            lead_hours=policy.notify_lead_hours,
        )
        dispatch = await self.dispatcher.dispatch(request)
        outcome = UnfilledOutcome.ALERT_SENT if dispatch.success else UnfilledOutcome.ALERT_FAILED
        return UnfilledCheckResult(
            day=day,
            outcome=outcome,
            reserved=reserved,
            capacity=policy.max_per_day,
            dispatch=dispatch,
        )

    async def list_reservations(
        self,
        *,
        status: Optional[ReservationStatus] = None,
        day: Optional[date] = None,
        volunteer_id: Optional[str] = None,
    ) -> list[Reservation]:
        async with self.session_factory() as session:
            return await SqlAlchemyReservationRepository(session).search(
                status=status, day=day, volunteer_id=volunteer_id
            )

    async def get_reservation(self, reservation_id: str) -> Reservation:
        async with self.session_factory() as session:
            reservation = await SqlAlchemyReservationRepository(session).get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError("reservation not found")
        return reservation
