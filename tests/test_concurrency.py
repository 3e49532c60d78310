"""
Tests for concurrent writers: two sessions on one database file.
"""

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.models import (
    Counterparty,
    CounterpartyMember,
    Match,
    PoolStatusEnum,
    Property,
    PropertyStatusEnum,
    RentalRequest,
)
from rentmatch.repositories import match as match_repository_module
from rentmatch.repositories.match import MatchRepository
from rentmatch.services.match import MatchService
from rentmatch.services.matching.trust import TrustAssessment, TrustTierEnum
from rentmatch.services.pool import PoolLifecycleManager


T0 = datetime(2025, 8, 1, 9, 0, tzinfo=timezone.utc)


def trusted() -> TrustAssessment:
    return TrustAssessment(
        tier=TrustTierEnum.TRUSTED,
        is_suspended=False,
        review_count=12,
        average_rating=Decimal("4.50"),
    )


async def seed_counterparty(db: AsyncSession, name: str) -> tuple[Counterparty, Property]:
    counterparty = Counterparty(name=name, is_personal=False)
    db.add(counterparty)
    await db.flush()

    db.add(CounterpartyMember(
        counterparty_id=counterparty.id,
        user_id=uuid.uuid4(),
        name=f"{name} owner",
        average_rating=Decimal("4.50"),
        review_count=12,
        is_suspended=False,
        last_active_at=datetime.now(timezone.utc),
    ))
    prop = Property(
        counterparty_id=counterparty.id,
        name="Flat",
        city="Warszawa",
        address="ul. Puławska 1",
        monthly_rent=Decimal("2500"),
        property_type="apartment",
        bedrooms=2,
        available_from=date(2025, 8, 15),
        status=PropertyStatusEnum.AVAILABLE,
        availability=True,
    )
    db.add(prop)
    await db.commit()
    return counterparty, prop


async def seed_request(db: AsyncSession) -> RentalRequest:
    request = RentalRequest(
        tenant_id=uuid.uuid4(),
        title="Looking for a flat",
        location="Mokotów, Warszawa",
        budget_from=Decimal("2000"),
        budget_to=Decimal("3000"),
        property_type="apartment",
        bedrooms=2,
        move_in_date=date(2025, 9, 1),
        pool_status=PoolStatusEnum.ACTIVE,
        expires_at=datetime.now(timezone.utc) + timedelta(days=30),
    )
    db.add(request)
    await db.commit()
    return request


async def count_matches(session_factory, rental_request_id: uuid.UUID) -> int:
    async with session_factory() as db:
        result = await db.execute(
            select(func.count()).select_from(Match).where(Match.rental_request_id == rental_request_id)
        )
        return result.scalar_one()


class AcceptingTrustClassifier:
    """Accepts an offer for the request from another session on the first lookup."""

    def __init__(self, session_factory, rental_request_id: uuid.UUID, settings):
        self.session_factory = session_factory
        self.rental_request_id = rental_request_id
        self.settings = settings
        self.accepted = False

    async def get_trust_tier(self, counterparty_id: uuid.UUID) -> TrustAssessment:
        if not self.accepted:
            async with self.session_factory() as other:
                manager = PoolLifecycleManager(
                    other,
                    MatchService(other, settings=self.settings),
                    settings=self.settings,
                )
                await manager.mark_matched(self.rental_request_id)
            self.accepted = True
        return trusted()


class PropertyDeletingTrustClassifier:
    """Deletes a property from another session on the first lookup."""

    def __init__(self, session_factory, property_id: uuid.UUID):
        self.session_factory = session_factory
        self.property_id = property_id

    async def get_trust_tier(self, counterparty_id: uuid.UUID) -> TrustAssessment:
        if self.property_id is not None:
            async with self.session_factory() as other:
                await other.execute(delete(Property).where(Property.id == self.property_id))
                await other.commit()
            self.property_id = None
        return trusted()


class TestRecomputeRacingPoolExit:

    async def test_request_matched_during_scoring_keeps_no_matches(
        self, file_session_factory, settings, dispatcher
    ) -> None:
        async with file_session_factory() as db:
            request = await seed_request(db)
            await seed_counterparty(db, "Kowalski Rentals")

        async with file_session_factory() as db:
            service = MatchService(
                db,
                settings=settings,
                trust_classifier=AcceptingTrustClassifier(file_session_factory, request.id, settings),
                dispatcher=dispatcher,
            )
            summary = await service.recompute_for_request(request.id)

        assert summary.active_matches == 0
        assert dispatcher.sent == []
        assert await count_matches(file_session_factory, request.id) == 0

        async with file_session_factory() as db:
            stored = await db.get(RentalRequest, request.id)
            assert stored.pool_status == PoolStatusEnum.MATCHED


class TestPerPairIsolation:

    async def test_failing_pair_does_not_lose_the_others(
        self, file_session_factory, settings, dispatcher
    ) -> None:
        async with file_session_factory() as db:
            request = await seed_request(db)
            kept, _ = await seed_counterparty(db, "Kept")
            _, gone_property = await seed_counterparty(db, "Gone")

        async with file_session_factory() as db:
            service = MatchService(
                db,
                settings=settings,
                trust_classifier=PropertyDeletingTrustClassifier(file_session_factory, gone_property.id),
                dispatcher=dispatcher,
            )
            summary = await service.recompute_for_request(request.id)

        assert summary.candidates == 2
        assert summary.active_matches == 1
        assert summary.failed == 1

        async with file_session_factory() as db:
            matches = await MatchRepository(db).get_matches_for_request(request.id)

        assert [(m.counterparty_id, m.score) for m in matches] == [(kept.id, 86)]
        assert [n.counterparty_id for n in dispatcher.sent] == [kept.id]


class TestConcurrentUpserts:

    @pytest.mark.parametrize("native_upsert", [True, False])
    async def test_racing_upserts_keep_one_row(
        self, file_session_factory, monkeypatch, native_upsert: bool
    ) -> None:
        if not native_upsert:
            monkeypatch.setattr(match_repository_module, "UPSERT_DIALECTS", {})

        async with file_session_factory() as db:
            request = await seed_request(db)
            owner, _ = await seed_counterparty(db, "Kowalski Rentals")

        async def upsert(score: int, minutes: int) -> None:
            async with file_session_factory() as db:
                await MatchRepository(db).upsert_match(
                    request.id,
                    owner.id,
                    score,
                    f"scan {minutes}",
                    now=T0 + timedelta(minutes=minutes),
                )
                await db.commit()

        await asyncio.gather(upsert(60, 1), upsert(90, 2))

        async with file_session_factory() as db:
            matches = await MatchRepository(db).get_matches_for_request(request.id)

        assert len(matches) == 1
        assert matches[0].score == 90
        assert matches[0].reason == "scan 2"
