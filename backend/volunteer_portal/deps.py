from functools import lru_cache
from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import get_settings
from .database import async_session
from .infrastructure.delivery_log import DeliveryAuditLog
from .infrastructure.gateway import ResendGateway
from .infrastructure.policy_store import AdminPolicyStore
from .usecases.bookings import BookingCoordinator
from .usecases.delivery import DeliveryRetryEngine, DuplicateSuppressor, NotificationDispatcher
from .utils.auth import Principal, decode_access_token

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session


async def get_admin(authorization: str | None = Header(default=None)) -> Principal:
    """The identity provider's assertion that the caller is an authenticated admin."""
    if authorization is None or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers=_BEARER_CHALLENGE,
        )
    settings = get_settings()
    token = authorization.removeprefix("Bearer ").strip()
    try:
        principal = decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers=_BEARER_CHALLENGE,
        ) from exc
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return principal


@lru_cache
def get_policy_store() -> AdminPolicyStore:
    return AdminPolicyStore.from_settings(get_session_factory(), get_settings())


@lru_cache
def get_delivery_log() -> DeliveryAuditLog:
    return DeliveryAuditLog(get_session_factory())


@lru_cache
def get_retry_engine() -> DeliveryRetryEngine:
    settings = get_settings()
    suppressor = DuplicateSuppressor(get_session_factory(), window_minutes=settings.dedup_window_minutes)
    return DeliveryRetryEngine(ResendGateway.from_settings(settings), get_delivery_log(), suppressor)


def get_dispatcher(engine: DeliveryRetryEngine = Depends(get_retry_engine)) -> NotificationDispatcher:
    return NotificationDispatcher(engine)


def get_coordinator(
    policy_store: AdminPolicyStore = Depends(get_policy_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> BookingCoordinator:
    return BookingCoordinator(
        session_factory,
        policy_store,
        dispatcher,
        service_timezone=get_settings().service_timezone,
    )
