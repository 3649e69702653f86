from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.notifications import NotificationRequest, is_valid_correlation_key
from ..models import TERMINAL_DELIVERY_STATUSES, DeliveryAttempt, DeliveryStatus, NotificationType
from ..utils.time import utc_now_naive

logger = logging.getLogger(__name__)


class DeliveryAuditLog:
    """
    Durable record of every delivery attempt.

    Each call runs in its own short transaction and commits immediately, so the
    state machine survives a crash of the worker that was driving it. Both
    `append` and `update` are safe to repeat.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock

    async def append(
        self,
        request: NotificationRequest,
        *,
        attempt_id: Optional[str] = None,
    ) -> str:
        attempt_id = attempt_id or str(uuid.uuid4())
        related_id = request.related_id if is_valid_correlation_key(request.related_id) else None
        try:
            async with self.session_factory() as session, session.begin():
                if await session.get(DeliveryAttempt, attempt_id) is not None:
                    return attempt_id
                session.add(
                    DeliveryAttempt(
                        id=attempt_id,
                        recipient=request.recipient,
                        notification_type=request.type,
                        subject=request.subject,
                        body=request.body,
                        status=DeliveryStatus.PENDING,
                        retry_count=0,
                        related_id=related_id,
                        metadata_=dict(request.metadata),
                        created_at=self.clock(),
                    )
                )
        except IntegrityError:
            logger.info("delivery attempt %s already recorded", attempt_id)
        return attempt_id

    async def update(self, attempt_id: str, *, status: DeliveryStatus, **fields: Any) -> bool:
        """Apply `fields` unless the attempt already reached sent or failed."""
        stmt = (
            update(DeliveryAttempt)
            .where(
                DeliveryAttempt.id == attempt_id,
                DeliveryAttempt.status.not_in(TERMINAL_DELIVERY_STATUSES),
            )
            .values(status=status, **fields)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session, session.begin():
            result = await session.execute(stmt)
        applied = result.rowcount == 1
        if not applied:
            logger.debug("ignored update of delivery attempt %s to %s", attempt_id, status)
        return applied

    async def get(self, attempt_id: str) -> DeliveryAttempt | None:
        async with self.session_factory() as session:
            return await session.get(DeliveryAttempt, attempt_id)

    async def list_recent(
        self,
        *,
        status: DeliveryStatus | None = None,
        notification_type: NotificationType | None = None,
        limit: int = 50,
    ) -> list[DeliveryAttempt]:
        stmt = select(DeliveryAttempt)
        if status is not None:
            stmt = stmt.where(DeliveryAttempt.status == status)
        if notification_type is not None:
            stmt = stmt.where(DeliveryAttempt.notification_type == notification_type)
        stmt = stmt.order_by(DeliveryAttempt.created_at.desc()).limit(limit)
        async with self.session_factory() as session:
            rows = await session.scalars(stmt)
            return list(rows.all())

    async def find_stalled(self, *, created_before: datetime) -> list[DeliveryAttempt]:
        stmt = (
            select(DeliveryAttempt)
            .where(
                DeliveryAttempt.status.in_((DeliveryStatus.PENDING, DeliveryStatus.RETRYING)),
                DeliveryAttempt.created_at < created_before,
            )
            .order_by(DeliveryAttempt.created_at)
        )
        async with self.session_factory() as session:
            rows = await session.scalars(stmt)
            return list(rows.all())
