"""Email bodies for booking events."""

import html
from datetime import date, datetime, time, timezone

from ..domain.notifications import NotificationRequest
from ..models import NotificationType, Reservation, ReservationStatus, Volunteer


def format_day(day: date) -> str:
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def _page(title: str, *sections: str) -> str:
    body = "\n".join(sections)
    return (
        "<!DOCTYPE html><html><body>"
        f"<h1>{html.escape(title)}</h1>\n{body}\n"
        "<p>Volunteer Portal</p>"
        "</body></html>"
    )


def new_reservation_message(
    *,
    admin_email: str,
    reservation: Reservation,
    volunteer: Volunteer,
    reserved: int,
    capacity: int,
) -> NotificationRequest:
    when = format_day(reservation.reservation_date)
    remaining = max(capacity - reserved, 0)
    body = _page(
        "New reservation",
        "<p>A volunteer asked to reserve a day.</p>",
        "<ul>"
        f"<li>Name: {html.escape(volunteer.full_name)}</li>"
        f"<li>Email: {html.escape(volunteer.email)}</li>"
        f"<li>Date: {when}</li>"
        f"<li>Reservation: {reservation.id}</li>"
        "</ul>",
        f"<p>Slots for that day: {reserved}/{capacity} taken ({remaining} available).</p>",
        "<p>Please confirm or reject it from the admin dashboard.</p>",
    )
    return NotificationRequest(
        recipient=admin_email,
        type=NotificationType.NEW_RESERVATION,
        subject=f"New volunteer reservation - {when}",
        body=body,
        related_id=reservation.id,
        metadata={
            "volunteer_id": volunteer.id,
            "reservation_date": reservation.reservation_date.isoformat(),
            "reserved": reserved,
            "capacity": capacity,
        },
    )


def decision_message(
    *,
    reservation: Reservation,
    volunteer: Volunteer,
    service_start: time,
) -> NotificationRequest:
    when = format_day(reservation.reservation_date)
    confirmed = reservation.status == ReservationStatus.CONFIRMED
    greeting = f"<p>Hello {html.escape(volunteer.full_name)},</p>"
    if confirmed:
        title = "Reservation confirmed"
        subject = f"Your reservation is confirmed - {when}"
        details = (
            "<p>We are happy to confirm your volunteer shift.</p>"
            f"<p>Date: {when}<br>Start: {service_start:%H:%M}</p>"
            "<p>Please arrive ten minutes early. If you cannot make it, let us know in advance.</p>"
        )
    else:
        title = "Reservation cancelled"
        subject = f"Reservation cancelled - {when}"
        details = (
            f"<p>Your reservation for <strong>{when}</strong> has been cancelled.</p>"
            "<p>You are welcome to book another available day.</p>"
        )
    return NotificationRequest(
        recipient=volunteer.email,
        type=NotificationType.CONFIRMATION if confirmed else NotificationType.CANCELLATION,
        subject=subject,
        body=_page(title, greeting, details),
        related_id=reservation.id,
        metadata={
            "volunteer_name": volunteer.full_name,
            "reservation_date": reservation.reservation_date.isoformat(),
            "action": "confirm" if confirmed else "cancel",
        },
    )


def unfilled_alert_message(
    *,
    admin_email: str,
    day: date,
    reserved: int,
    capacity: int,
    confirmed_names: list[str],
    lead_hours: int,
) -> NotificationRequest:
    when = format_day(day)
    available = capacity - reserved
    if confirmed_names:
        roster = "<ul>" + "".join(f"<li>{html.escape(name)}</li>" for name in confirmed_names) + "</ul>"
    else:
        roster = "<p>No volunteers are confirmed for that day yet.</p>"
    body = _page(
        "Unfilled slots",
        f"<p>{when}: {reserved} of {capacity} slots taken, {available} still open.</p>",
        "<h3>Confirmed volunteers</h3>",
        roster,
        f"<p>This reminder is sent about {lead_hours} hours before the service starts.</p>",
    )
    return NotificationRequest(
        recipient=admin_email,
        type=NotificationType.UNFILLED_SLOTS_ALERT,
        subject=f"Alert: {available} unfilled slots for {when}",
        body=body,
        related_id=f"alert-{day.isoformat()}",
        metadata={
            "target_date": day.isoformat(),
            "current_count": reserved,
            "available_slots": available,
            "confirmed_volunteers": confirmed_names,
        },
    )


def diagnostic_message(*, recipient: str, now: datetime) -> NotificationRequest:
    stamp = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return NotificationRequest(
        recipient=recipient,
        type=NotificationType.TEST,
        subject="Test email - Volunteer Portal",
        body=_page(
            "Test email",
            "<p>If you are reading this, outgoing email is working.</p>",
            f"<p>Sent at {now.isoformat()} UTC.</p>",
        ),
        related_id=f"test-{stamp}",
        metadata={"test_timestamp": now.isoformat(), "requested_by": recipient},
    )
