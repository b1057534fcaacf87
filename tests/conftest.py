from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Iterable, Optional

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dealscore.api.routes import health, pipeline, recommendations
from dealscore.domain.models import DealSnapshot, DealStatus, Invite
from dealscore.infrastructure.db.database import Base, get_db
from dealscore.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from dealscore.infrastructure.db.repositories.signal_repository import InviteRepository
from dealscore.services.recalculation_service import RecalculationService

T0 = datetime(2026, 3, 2, 9, 0, 0)


class FakeClock:
    """Manually advanced clock (naive UTC)"""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
async def db_engine(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        future=True,
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def recalculator(session_factory, clock) -> AsyncGenerator[RecalculationService, None]:
    service = RecalculationService(session_factory, clock=clock, workers=2, store_timeout_seconds=5.0)
    service.start()
    yield service
    await service.drain()
    await service.stop()


@pytest.fixture()
def make_deal(session_factory):
    """Insert a recommendation (plus invites) and commit; returns its id."""

    async def _make(
        deal_id: str,
        status: DealStatus = DealStatus.SENT,
        sent_at: Optional[datetime] = T0,
        predicted_monthly: Decimal = Decimal("1000"),
        created_by: str = "rep-1",
        invitees: Iterable[str] = ("buyer@acme.test",),
    ) -> str:
        async with session_factory() as session:
            await RecommendationRepository(session).create(DealSnapshot(
                id=deal_id,
                status=status,
                sent_at=sent_at if status != DealStatus.DRAFT else None,
                predicted_monthly=predicted_monthly,
                created_by=created_by,
            ))
            invites = InviteRepository(session)
            for i, email in enumerate(invitees):
                await invites.create(deal_id, Invite(id=f"{deal_id}-inv-{i}", email=email, sent_at=sent_at))
            await session.commit()
        return deal_id

    return _make


@pytest.fixture()
async def app(session_factory, recalculator) -> FastAPI:
    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(recommendations.router, prefix="/api/v1/recommendations", tags=["Recommendations"])
    app.include_router(pipeline.router, prefix="/api/v1/pipeline", tags=["Pipeline"])

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.recalculation_service = recalculator
    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
