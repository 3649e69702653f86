from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from volunteer_portal.database import build_engine, build_sessionmaker
from volunteer_portal.domain.errors import ConfigurationError
from volunteer_portal.domain.notifications import GatewayResult, NotificationRequest
from volunteer_portal.infrastructure.repositories import SqlAlchemyVolunteerRepository
from volunteer_portal.models import Base, Volunteer


class ScriptedGateway:
    """Gateway double: plays back `results` in order, then keeps succeeding."""

    def __init__(self, results: Optional[list[GatewayResult | Exception]] = None, *, ready: bool = True) -> None:
        self.results = list(results or [])
        self.ready = ready
        self.sent: list[NotificationRequest] = []

    def check_ready(self) -> None:
        if not self.ready:
            raise ConfigurationError("RESEND_API_KEY is not configured")

    async def send(self, request: NotificationRequest) -> GatewayResult:
        self.sent.append(request)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return GatewayResult(message_id=f"msg-{len(self.sent)}")


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'portal.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def make_volunteer(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[Volunteer]]:
    async def _make(email: str = "ana@example.com", first_name: str = "Ana", last_name: str = "Pech") -> Volunteer:
        async with session_factory() as session, session.begin():
            return await SqlAlchemyVolunteerRepository(session).create(
                email=email,
                first_name=first_name,
                last_name=last_name,
                phone=None,
            )

    return _make
