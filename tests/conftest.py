import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["TRUST_SERVICE_URL"] = ""
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from rentmatch.api.deps import (
    get_db,
    get_dispatcher,
    get_recompute_queue,
    get_trust_classifier,
)
from rentmatch.api.main import app
from rentmatch.core.config import get_settings
from rentmatch.core.database import Base
from rentmatch.models import (
    Counterparty,
    CounterpartyMember,
    PoolStatusEnum,
    Property,
    PropertyStatusEnum,
    RentalRequest,
)
from rentmatch.services.match import MatchService
from rentmatch.services.matching.trust import TrustAssessment, TrustTierEnum
from rentmatch.services.notification import MatchNotification
from rentmatch.services.pool import PoolLifecycleManager


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MOVE_IN = date(2025, 9, 1)


def create_test_engine() -> AsyncEngine:
    return create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


def create_file_engine(path) -> AsyncEngine:
    """Engine on a database file, with one connection per session and foreign keys on."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class CollectingDispatcher:
    """Notification dispatcher that keeps everything it is handed."""

    def __init__(self, fail: bool = False):
        self.sent: list[MatchNotification] = []
        self.fail = fail

    async def dispatch(self, notifications: Sequence[MatchNotification]) -> list[uuid.UUID]:
        if self.fail:
            raise RuntimeError("dispatcher down")
        self.sent.extend(notifications)
        return [n.match_id for n in notifications]


class CollectingQueue:

    def __init__(self):
        self.queued: list[uuid.UUID] = []

    async def enqueue_recompute(self, rental_request_id: uuid.UUID) -> bool:
        if rental_request_id in self.queued:
            return False
        self.queued.append(rental_request_id)
        return True


class StaticTrustClassifier:
    """Returns a fixed assessment per counterparty, or raises for unknown ones."""

    def __init__(
        self,
        assessments: Optional[dict[uuid.UUID, TrustAssessment]] = None,
        default: Optional[TrustAssessment] = None,
    ):
        self.assessments = assessments or {}
        self.default = default
        self.calls: list[uuid.UUID] = []

    async def get_trust_tier(self, counterparty_id: uuid.UUID) -> TrustAssessment:
        self.calls.append(counterparty_id)
        if counterparty_id in self.assessments:
            return self.assessments[counterparty_id]
        if self.default is not None:
            return self.default
        raise ConnectionError("trust service unreachable")


class FailingTrustClassifier:

    async def get_trust_tier(self, counterparty_id: uuid.UUID) -> TrustAssessment:
        raise TimeoutError("trust service timed out")


def trusted() -> TrustAssessment:
    return TrustAssessment(
        tier=TrustTierEnum.TRUSTED,
        is_suspended=False,
        review_count=12,
        average_rating=Decimal("4.50"),
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_test_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_file_engine(tmp_path / "rentmatch.db")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def dispatcher() -> CollectingDispatcher:
    return CollectingDispatcher()


@pytest.fixture
def recompute_queue() -> CollectingQueue:
    return CollectingQueue()


@pytest.fixture
def trust_classifier() -> StaticTrustClassifier:
    return StaticTrustClassifier(default=trusted())


@pytest.fixture
def match_service(
    db_session: AsyncSession,
    settings,
    dispatcher: CollectingDispatcher,
    trust_classifier: StaticTrustClassifier,
) -> MatchService:
    return MatchService(
        db_session,
        settings=settings,
        trust_classifier=trust_classifier,
        dispatcher=dispatcher,
    )


@pytest.fixture
def pool_manager(
    db_session: AsyncSession,
    match_service: MatchService,
    recompute_queue: CollectingQueue,
    settings,
) -> PoolLifecycleManager:
    return PoolLifecycleManager(
        db_session,
        match_service,
        recompute_queue=recompute_queue,
        settings=settings,
    )


@pytest.fixture
def make_counterparty(db_session: AsyncSession):
    async def _make(
        name: str = "Kowalski Rentals",
        *,
        review_count: int = 12,
        average_rating: Decimal = Decimal("4.50"),
        is_suspended: bool = False,
        last_active_at: Optional[datetime] = None,
    ) -> Counterparty:
        counterparty = Counterparty(name=name, is_personal=False)
        db_session.add(counterparty)
        await db_session.flush()

        db_session.add(CounterpartyMember(
            counterparty_id=counterparty.id,
            user_id=uuid.uuid4(),
            name=f"{name} owner",
            average_rating=average_rating,
            review_count=review_count,
            is_suspended=is_suspended,
            last_active_at=last_active_at or datetime.now(timezone.utc),
        ))
        await db_session.commit()
        return counterparty

    return _make


@pytest.fixture
def make_property(db_session: AsyncSession):
    async def _make(counterparty: Counterparty, **overrides: Any) -> Property:
        fields: dict[str, Any] = {
            "counterparty_id": counterparty.id,
            "name": "Flat",
            "city": "Warszawa",
            "address": "ul. Puławska 1",
            "monthly_rent": Decimal("2500"),
            "property_type": "apartment",
            "bedrooms": 2,
            "available_from": date(2025, 8, 15),
            "status": PropertyStatusEnum.AVAILABLE,
            "availability": True,
        }
        fields.update(overrides)

        prop = Property(**fields)
        db_session.add(prop)
        await db_session.commit()
        return prop

    return _make


@pytest.fixture
def make_request(db_session: AsyncSession):
    async def _make(**overrides: Any) -> RentalRequest:
        fields: dict[str, Any] = {
            "tenant_id": uuid.uuid4(),
            "title": "Looking for a flat",
            "location": "Mokotów, Warszawa",
            "budget_from": Decimal("2000"),
            "budget_to": Decimal("3000"),
            "property_type": "apartment",
            "bedrooms": 2,
            "move_in_date": MOVE_IN,
            "pool_status": PoolStatusEnum.ACTIVE,
            "expires_at": datetime.now(timezone.utc) + timedelta(days=30),
        }
        fields.update(overrides)

        request = RentalRequest(**fields)
        db_session.add(request)
        await db_session.commit()
        return request

    return _make


@pytest.fixture
def failing_trust_classifier() -> FailingTrustClassifier:
    return FailingTrustClassifier()


@pytest.fixture
def failing_dispatcher() -> CollectingDispatcher:
    return CollectingDispatcher(fail=True)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    dispatcher: CollectingDispatcher,
    trust_classifier: StaticTrustClassifier,
    recompute_queue: CollectingQueue,
) -> AsyncGenerator[AsyncClient, None]:

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_trust_classifier] = lambda: trust_classifier
    app.dependency_overrides[get_recompute_queue] = lambda: recompute_queue

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
