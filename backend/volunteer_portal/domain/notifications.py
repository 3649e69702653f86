from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..models import NotificationType

MAX_CORRELATION_KEY_LENGTH = 64

_UUID_KEY = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)
_NAMESPACED_KEY = re.compile(r"^[a-z][a-z_]*-[0-9A-Za-z]+(?:-[0-9A-Za-z]+)*$")


def is_valid_correlation_key(value: Optional[str]) -> bool:
    """
    Accepts a canonical UUID (a reservation id) or a namespaced key such as
    ``alert-2026-10-19`` or ``test-1760000000000``.

    Anything else disables deduplication for the message: the suppressor fails
    open, so a bad key can cause a duplicate email but never a lost one.
    """
    if not value or len(value) > MAX_CORRELATION_KEY_LENGTH:
        return False
    return bool(_UUID_KEY.match(value) or _NAMESPACED_KEY.match(value))


@dataclass(frozen=True)
class NotificationRequest:
    recipient: str
    type: NotificationType
    subject: str
    body: str
    related_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayResult:
    """What a gateway call produced: a provider id on success, an error otherwise."""

    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Delivered:
    message_id: str
    log_id: str


@dataclass(frozen=True)
class Suppressed:
    pass


@dataclass(frozen=True)
class Exhausted:
    last_error: str
    log_id: str


DeliveryOutcome = Union[Delivered, Suppressed, Exhausted]


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    log_id: Optional[str] = None
