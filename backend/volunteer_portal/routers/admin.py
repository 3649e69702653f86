from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import (
    get_admin,
    get_coordinator,
    get_delivery_log,
    get_dispatcher,
    get_policy_store,
    get_retry_engine,
    get_session,
)
from ..domain.errors import (
    ConfigurationError,
    InvalidTransitionError,
    ReservationNotFoundError,
    VolunteerNotFoundError,
)
from ..domain.notifications import Delivered, Exhausted
from ..infrastructure.delivery_log import DeliveryAuditLog
from ..infrastructure.policy_store import AdminPolicyStore
from ..infrastructure.repositories import SqlAlchemyVolunteerRepository
from ..models import DeliveryStatus, NotificationType, ReservationStatus
from ..schemas import (
    DecisionCreate,
    DecisionRead,
    DeliveryAttemptRead,
    DiagnosticEmailCreate,
    DispatchRead,
    PolicyRead,
    PolicyUpdate,
    RecoveryRead,
    ReservationRead,
    UnfilledCheckRead,
    VolunteerRead,
)
from ..usecases import messages
from ..usecases import volunteers as volunteer_usecase
from ..usecases.bookings import BookingCoordinator
from ..usecases.delivery import DeliveryRetryEngine, NotificationDispatcher
from ..utils.audit_log import emit_audit_log
from ..utils.auth import Principal
from ..utils.time import utc_now_naive
from .errors import to_http_exception

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_admin)])


@router.get("/reservations", response_model=List[ReservationRead])
async def list_reservations(
    status_filter: Optional[ReservationStatus] = Query(default=None, alias="status"),
    day: Optional[date] = Query(default=None, alias="date"),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> list[ReservationRead]:
    rows = await coordinator.list_reservations(status=status_filter, day=day)
    return [ReservationRead.from_db(reservation=reservation, volunteer=reservation.volunteer) for reservation in rows]


@router.post("/reservations/{reservation_id}/decision", response_model=DecisionRead)
async def decide_reservation(
    payload: DecisionCreate,
    reservation_id: str = Path(..., min_length=1, max_length=36),
    admin: Principal = Depends(get_admin),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> DecisionRead:
    try:
        result = await coordinator.decide(reservation_id, payload.action, actor_id=admin.subject)
    except (ReservationNotFoundError, InvalidTransitionError) as exc:
        raise to_http_exception(exc) from exc
    return DecisionRead.from_result(result)


@router.post("/alerts/unfilled", response_model=UnfilledCheckRead)
async def check_unfilled(
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> UnfilledCheckRead:
    try:
        result = await coordinator.check_unfilled_capacity()
    except ConfigurationError as exc:
        raise to_http_exception(exc) from exc
    return UnfilledCheckRead.from_result(result)


@router.post("/notifications/test", response_model=DispatchRead)
async def send_diagnostic_email(
    payload: DiagnosticEmailCreate,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> DispatchRead:
    result = await dispatcher.dispatch(messages.diagnostic_message(recipient=payload.to, now=utc_now_naive()))
    return DispatchRead.from_result(result)


@router.get("/policy", response_model=PolicyRead)
async def read_policy(policy_store: AdminPolicyStore = Depends(get_policy_store)) -> PolicyRead:
    return PolicyRead.from_snapshot(await policy_store.get())


@router.put("/policy", response_model=PolicyRead)
async def update_policy(
    payload: PolicyUpdate,
    policy_store: AdminPolicyStore = Depends(get_policy_store),
) -> PolicyRead:
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no policy fields given")
    snapshot = await policy_store.update(**fields)
    return PolicyRead.from_snapshot(snapshot)


@router.get("/deliveries", response_model=List[DeliveryAttemptRead])
async def list_deliveries(
    status_filter: Optional[DeliveryStatus] = Query(default=None, alias="status"),
    notification_type: Optional[NotificationType] = Query(default=None, alias="type"),
    limit: int = Query(default=50, ge=1, le=500),
    delivery_log: DeliveryAuditLog = Depends(get_delivery_log),
) -> list[DeliveryAttemptRead]:
    rows = await delivery_log.list_recent(status=status_filter, notification_type=notification_type, limit=limit)
    return [DeliveryAttemptRead.from_db(attempt) for attempt in rows]


@router.post("/deliveries/recover", response_model=RecoveryRead)
async def recover_deliveries(
    older_than_minutes: int = Query(default=10, ge=1),
    engine: DeliveryRetryEngine = Depends(get_retry_engine),
) -> RecoveryRead:
    try:
        outcomes = await engine.recover_stalled(older_than=timedelta(minutes=older_than_minutes))
    except ConfigurationError as exc:
        raise to_http_exception(exc) from exc
    return RecoveryRead(
        resumed=len(outcomes),
        delivered=sum(1 for outcome in outcomes if isinstance(outcome, Delivered)),
        failed=sum(1 for outcome in outcomes if isinstance(outcome, Exhausted)),
    )


@router.post("/volunteers/{volunteer_id}/deactivate", response_model=VolunteerRead)
async def deactivate_volunteer(
    volunteer_id: str = Path(..., min_length=1, max_length=36),
    admin: Principal = Depends(get_admin),
    session: AsyncSession = Depends(get_session),
) -> VolunteerRead:
    repo = SqlAlchemyVolunteerRepository(session)
    async with session.begin():
        try:
            volunteer, previous = await volunteer_usecase.deactivate_volunteer(repo, volunteer_id=volunteer_id)
        except VolunteerNotFoundError as exc:
            raise to_http_exception(exc) from exc
    if previous != volunteer.status:
        emit_audit_log(
            action="volunteer.deactivated",
            initiator="admin",
            volunteer_id=volunteer.id,
            status_from=previous,
            status_to=volunteer.status,
            actor_id=admin.subject,
        )
    return VolunteerRead.from_db(volunteer=volunteer)
