from __future__ import annotations

from datetime import date, datetime, time
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import Date, DateTime, Integer, String, Text, Time


class Base(DeclarativeBase):
    pass


class VolunteerStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ReservationStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class NotificationType(StrEnum):
    NEW_RESERVATION = "new_reservation"
    CONFIRMATION = "confirmation"
    CANCELLATION = "cancellation"
    UNFILLED_SLOTS_ALERT = "unfilled_slots_alert"
    TEST = "test"


class DeliveryStatus(StrEnum):
    PENDING = "pending"
    RETRYING = "retrying"
    SENT = "sent"
    FAILED = "failed"


TERMINAL_DELIVERY_STATUSES = (DeliveryStatus.SENT, DeliveryStatus.FAILED)


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class Volunteer(Base):
    __tablename__ = "volunteers"
    __table_args__ = (UniqueConstraint("email", name="uq_volunteers_email"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[VolunteerStatus] = mapped_column(
        _str_enum(VolunteerStatus), nullable=False, default=VolunteerStatus.ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    reservations: Mapped[list["Reservation"]] = relationship(back_populates="volunteer")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ServiceDay(Base):
    """Lock anchor: one row per date that has been booked at least once."""

    __tablename__ = "service_days"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        # active is NULL once cancelled; NULLs never collide in a unique key
        UniqueConstraint("volunteer_id", "reservation_date", "active", name="uq_res_volunteer_day_active"),
        CheckConstraint(
            "(status = 'cancelled' AND active IS NULL) OR (status != 'cancelled' AND active IS NOT NULL)",
            name="chk_res_active_flag",
        ),
        Index("idx_res_day_status", "reservation_date", "status"),
        Index("idx_res_volunteer", "volunteer_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    volunteer_id: Mapped[str] = mapped_column(ForeignKey("volunteers.id"), nullable=False)
    reservation_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        _str_enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING
    )
    active: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    volunteer: Mapped["Volunteer"] = relationship(back_populates="reservations")


class CapacityPolicy(Base):
    __tablename__ = "capacity_policy"
    __table_args__ = (
        CheckConstraint("max_per_day >= 1", name="chk_policy_capacity"),
        CheckConstraint("notify_lead_hours >= 0", name="chk_policy_lead_hours"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    admin_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    max_per_day: Mapped[int] = mapped_column(Integer, nullable=False)
    notify_lead_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    service_start: Mapped[time] = mapped_column(Time, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class DeliveryAttempt(Base):
    __tablename__ = "delivery_attempts"
    __table_args__ = (
        Index("idx_delivery_dedup", "recipient", "type", "related_id", "created_at"),
        Index("idx_delivery_status", "status"),
        Index("idx_delivery_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    notification_type: Mapped[NotificationType] = mapped_column(
        "type", _str_enum(NotificationType), nullable=False
    )
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[DeliveryStatus] = mapped_column(
        _str_enum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING
    )
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    related_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
