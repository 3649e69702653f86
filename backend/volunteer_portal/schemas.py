from datetime import date, datetime, time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .domain.notifications import DispatchResult
from .domain.services import Decision
from .infrastructure.policy_store import PolicySnapshot
from .models import (
    DeliveryAttempt,
    DeliveryStatus,
    NotificationType,
    Reservation,
    ReservationStatus,
    Volunteer,
    VolunteerStatus,
)
from .usecases.bookings import DecisionResult, UnfilledCheckResult, UnfilledOutcome

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class VolunteerCreate(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    phone: Optional[str] = Field(default=None, max_length=50)


class VolunteerUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    phone: Optional[str] = Field(default=None, max_length=50)


class VolunteerRead(BaseModel):
    volunteer_id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str]
    status: VolunteerStatus
    created_at: datetime

    @classmethod
    def from_db(cls, *, volunteer: Volunteer) -> "VolunteerRead":
        return cls(
            volunteer_id=volunteer.id,
            email=volunteer.email,
            first_name=volunteer.first_name,
            last_name=volunteer.last_name,
            phone=volunteer.phone,
            status=volunteer.status,
            created_at=volunteer.created_at,
        )


class ReservationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    volunteer_id: str = Field(min_length=1, max_length=36)
    reservation_date: date = Field(alias="date")


class ReservationRead(BaseModel):
    reservation_id: str
    volunteer_id: str
    reservation_date: date
    status: ReservationStatus
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    volunteer_name: Optional[str] = None
    volunteer_email: Optional[str] = None

    @classmethod
    def from_db(cls, *, reservation: Reservation, volunteer: Optional[Volunteer] = None) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            volunteer_id=reservation.volunteer_id,
            reservation_date=reservation.reservation_date,
            status=reservation.status,
            created_at=reservation.created_at,
            confirmed_at=reservation.confirmed_at,
            volunteer_name=volunteer.full_name if volunteer is not None else None,
            volunteer_email=volunteer.email if volunteer is not None else None,
        )


class DecisionCreate(BaseModel):
    action: Decision


class DecisionRead(BaseModel):
    reservation_id: str
    status: ReservationStatus
    changed: bool
    email_sent: bool
    message_id: Optional[str] = None
    log_id: Optional[str] = None
    email_error: Optional[str] = None

    @classmethod
    def from_result(cls, result: DecisionResult) -> "DecisionRead":
        return cls(
            reservation_id=result.reservation.id,
            status=result.reservation.status,
            changed=result.changed,
            email_sent=result.email_sent,
            message_id=result.dispatch.message_id,
            log_id=result.dispatch.log_id,
            email_error=None if result.email_sent else result.dispatch.error,
        )


class DayAvailability(BaseModel):
    day: date = Field(serialization_alias="date")
    capacity: int
    reserved: int
    remaining: int
    service_day: bool


class PolicyRead(BaseModel):
    admin_email: str
    max_per_day: int
    notify_lead_hours: int
    service_start: time

    @field_serializer("service_start")
    def _ser_time(self, value: time) -> str:
        return value.strftime("%H:%M")

    @classmethod
    def from_snapshot(cls, snapshot: PolicySnapshot) -> "PolicyRead":
        return cls(
            admin_email=snapshot.admin_email,
            max_per_day=snapshot.max_per_day,
            notify_lead_hours=snapshot.notify_lead_hours,
            service_start=snapshot.service_start,
        )


class PolicyUpdate(BaseModel):
    admin_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    max_per_day: Optional[int] = Field(default=None, ge=1)
    notify_lead_hours: Optional[int] = Field(default=None, ge=0)
    service_start: Optional[time] = None


class DispatchRead(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    log_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: DispatchResult) -> "DispatchRead":
        return cls(
            success=result.success,
            message_id=result.message_id,
            error=result.error,
            log_id=result.log_id,
        )


class DiagnosticEmailCreate(BaseModel):
    to: str = Field(pattern=EMAIL_PATTERN, max_length=255)


class UnfilledCheckRead(BaseModel):
    target_date: date
    outcome: UnfilledOutcome
    slots_filled: int
    slots_available: int
    email_sent: bool
    message_id: Optional[str] = None
    log_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: UnfilledCheckResult) -> "UnfilledCheckRead":
        dispatch = result.dispatch
        return cls(
            target_date=result.day,
            outcome=result.outcome,
            slots_filled=result.reserved,
            slots_available=max(result.capacity - result.reserved, 0),
            email_sent=dispatch.success if dispatch is not None else False,
            message_id=dispatch.message_id if dispatch is not None else None,
            log_id=dispatch.log_id if dispatch is not None else None,
        )


class DeliveryAttemptRead(BaseModel):
    id: str
    recipient: str
    type: NotificationType
    subject: str
    status: DeliveryStatus
    provider_message_id: Optional[str]
    error_message: Optional[str]
    retry_count: int
    related_id: Optional[str]
    metadata: dict[str, Any]
    created_at: datetime
    sent_at: Optional[datetime]

    @classmethod
    def from_db(cls, attempt: DeliveryAttempt) -> "DeliveryAttemptRead":
        return cls(
            id=attempt.id,
            recipient=attempt.recipient,
            type=attempt.notification_type,
            subject=attempt.subject,
            status=attempt.status,
            provider_message_id=attempt.provider_message_id,
            error_message=attempt.error_message,
            retry_count=attempt.retry_count,
            related_id=attempt.related_id,
            metadata=dict(attempt.metadata_ or {}),
            created_at=attempt.created_at,
            sent_at=attempt.sent_at,
        )


class RecoveryRead(BaseModel):
    resumed: int
    delivered: int
    failed: int
