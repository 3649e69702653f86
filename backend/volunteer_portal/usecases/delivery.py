"""Notification pipeline: duplicate suppression, retried delivery, dispatch results."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import ConfigurationError, NotificationDeliveryError
from ..domain.notifications import (
    Delivered,
    DeliveryOutcome,
    DispatchResult,
    Exhausted,
    GatewayResult,
    NotificationRequest,
    Suppressed,
    is_valid_correlation_key,
)
from ..infrastructure.delivery_log import DeliveryAuditLog
from ..infrastructure.gateway import NotificationGateway
from ..models import DeliveryAttempt, DeliveryStatus, NotificationType
from ..utils.time import utc_now_naive

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0
DEFAULT_WINDOW_MINUTES = 5


def backoff(attempt: int, base_delay: float = BASE_DELAY_SECONDS) -> float:
    """Delay after failed attempt number `attempt` (1-based): base, 2*base, 4*base..."""
    return base_delay * 2 ** (attempt - 1)


class DuplicateSuppressor:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self.session_factory = session_factory
        self.window_minutes = window_minutes
        self.clock = clock

    async def should_suppress(
        self,
        recipient: str,
        notification_type: NotificationType,
        related_id: Optional[str],
        window_minutes: Optional[int] = None,
    ) -> bool:
        """
        True if the same (recipient, type, related_id) was sent or is pending
        within the trailing window.

        Fail-open policy: a missing or malformed correlation key, or an
        unreadable delivery log, never suppresses. The worst case is a
        duplicate email rather than a lost one.
        """
        if not is_valid_correlation_key(related_id):
            logger.debug("dedup skipped for %s: no usable correlation key (%r)", notification_type, related_id)
            return False

        window = window_minutes if window_minutes is not None else self.window_minutes
        since = self.clock() - timedelta(minutes=window)
        stmt = (
            select(DeliveryAttempt.id)
            .where(
                DeliveryAttempt.recipient == recipient,
                DeliveryAttempt.notification_type == notification_type,
                DeliveryAttempt.related_id == related_id,
                DeliveryAttempt.status.in_((DeliveryStatus.SENT, DeliveryStatus.PENDING)),
                DeliveryAttempt.created_at > since,
            )
            .limit(1)
        )
        try:
            async with self.session_factory() as session:
                return await session.scalar(stmt) is not None
        except SQLAlchemyError:
            logger.exception("duplicate check failed; sending anyway")
            return False


class DeliveryRetryEngine:
    """
    Drives one notification through the gateway with bounded retries.

    The attempt row is the state machine (pending -> retrying* -> sent|failed),
    so `resume` can pick a stalled attempt up from its persisted retry count.
    Backoff only suspends this coroutine; no database lock is held meanwhile.
    """

    def __init__(
        self,
        gateway: NotificationGateway,
        audit_log: DeliveryAuditLog,
        suppressor: DuplicateSuppressor,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self.gateway = gateway
        self.audit_log = audit_log
        self.suppressor = suppressor
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self.clock = clock

    async def send(self, request: NotificationRequest) -> DeliveryOutcome:
        self.gateway.check_ready()
        if await self.suppressor.should_suppress(request.recipient, request.type, request.related_id):
            logger.info(
                "duplicate %s to %s suppressed (related_id=%s)",
                request.type,
                request.recipient,
                request.related_id,
            )
            return Suppressed()

        log_id = await self.audit_log.append(request)
        return await self._drive(log_id, request, first_attempt=1)

    async def resume(self, attempt: DeliveryAttempt) -> DeliveryOutcome:
        request = NotificationRequest(
            recipient=attempt.recipient,
            type=attempt.notification_type,
            subject=attempt.subject,
            body=attempt.body,
            related_id=attempt.related_id,
            metadata=dict(attempt.metadata_ or {}),
        )
        if attempt.retry_count >= self.max_attempts:
            last_error = attempt.error_message or "attempts exhausted before restart"
            await self.audit_log.update(attempt.id, status=DeliveryStatus.FAILED, error_message=last_error)
            return Exhausted(last_error=last_error, log_id=attempt.id)
        logger.info("resuming delivery %s at attempt %d", attempt.id, attempt.retry_count + 1)
        return await self._drive(attempt.id, request, first_attempt=attempt.retry_count + 1)

    async def recover_stalled(self, *, older_than: timedelta) -> list[DeliveryOutcome]:
        self.gateway.check_ready()
        stalled = await self.audit_log.find_stalled(created_before=self.clock() - older_than)
        outcomes: list[DeliveryOutcome] = []
        for attempt in stalled:
            outcomes.append(await self.resume(attempt))
        return outcomes

    async def _drive(self, log_id: str, request: NotificationRequest, *, first_attempt: int) -> DeliveryOutcome:
        last_error = "no attempt was made"
        for attempt in range(first_attempt, self.max_attempts + 1):
            logger.info("sending %s to %s, attempt %d/%d", request.type, request.recipient, attempt, self.max_attempts)
            result = await self._call_gateway(request)

            if result.message_id:
                await self.audit_log.update(
                    log_id,
                    status=DeliveryStatus.SENT,
                    provider_message_id=result.message_id,
                    retry_count=attempt - 1,
                    sent_at=self.clock(),
                )
                logger.info("delivered %s to %s as %s", request.type, request.recipient, result.message_id)
                return Delivered(message_id=result.message_id, log_id=log_id)

            last_error = result.error or "provider did not return a message id"
            logger.warning("attempt %d for %s failed: %s", attempt, log_id, last_error)
            if attempt < self.max_attempts:
                await self.audit_log.update(
                    log_id,
                    status=DeliveryStatus.RETRYING,
                    error_message=last_error,
                    retry_count=attempt,
                )
                await self._sleep(backoff(attempt, self.base_delay))

        logger.error("giving up on %s to %s after %d attempts", request.type, request.recipient, self.max_attempts)
        await self.audit_log.update(
            log_id,
            status=DeliveryStatus.FAILED,
            error_message=last_error,
            retry_count=self.max_attempts,
        )
        return Exhausted(last_error=last_error, log_id=log_id)

    async def _call_gateway(self, request: NotificationRequest) -> GatewayResult:
        try:
            return await self.gateway.send(request)
        except NotificationDeliveryError as exc:
            return GatewayResult(error=str(exc) or type(exc).__name__)
        except Exception as exc:
            # any gateway failure is one failed attempt; the caller only sees the outcome
            logger.exception("gateway raised while sending %s to %s", request.type, request.recipient)
            return GatewayResult(error=f"{type(exc).__name__}: {exc}")


class NotificationDispatcher:
    """Internal dispatch interface: turns a delivery outcome into a flat result."""

    def __init__(self, engine: DeliveryRetryEngine) -> None:
        self.engine = engine

    async def dispatch(self, request: NotificationRequest) -> DispatchResult:
        try:
            outcome = await self.engine.send(request)
        except ConfigurationError as exc:
            logger.error("cannot send %s to %s: %s", request.type, request.recipient, exc)
            return DispatchResult(success=False, error=str(exc))
        except SQLAlchemyError:
            logger.exception("delivery log unavailable while sending %s", request.type)
            return DispatchResult(success=False, error="delivery log unavailable")

        if isinstance(outcome, Delivered):
            return DispatchResult(success=True, message_id=outcome.message_id, log_id=outcome.log_id)
        if isinstance(outcome, Suppressed):
            return DispatchResult(success=True, error="already sent recently (duplicate suppressed)")
        return DispatchResult(success=False, error=outcome.last_error, log_id=outcome.log_id)
