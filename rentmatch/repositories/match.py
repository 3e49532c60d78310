import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentmatch.core.database import utcnow
from rentmatch.models.match import Match, MatchStatusEnum
from rentmatch.models.rental_request import PoolStatusEnum, RentalRequest
from rentmatch.repositories.base import UPSERT_DIALECTS, BaseRepository

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    match: Match
    created: bool
    previous_score: Optional[int] = None
    previous_status: Optional[MatchStatusEnum] = None


def clamp_score(score: int) -> int:
    return min(100, max(0, int(score)))


def _feed_conditions(counterparty_id: uuid.UUID, now: datetime):
    return and_(
        Match.counterparty_id == counterparty_id,
        Match.status == MatchStatusEnum.ACTIVE,
        RentalRequest.pool_status == PoolStatusEnum.ACTIVE,
        or_(
            RentalRequest.expires_at.is_(None),
            RentalRequest.expires_at > now,
        ),
    )


class MatchRepository(BaseRepository[Match]):
    def __init__(self, session: AsyncSession):
        super().__init__(Match, session)

    async def get_by_pair(
        self,
        rental_request_id: uuid.UUID,
        counterparty_id: uuid.UUID,
    ) -> Match | None:
        query = (
            select(Match)
            .where(
                and_(
                    Match.rental_request_id == rental_request_id,
                    Match.counterparty_id == counterparty_id,
                )
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upsert_match(
        self,
        rental_request_id: uuid.UUID,
        counterparty_id: uuid.UUID,
        score: int,
        reason: str,
        *,
        property_id: uuid.UUID | None = None,
        status: MatchStatusEnum = MatchStatusEnum.ACTIVE,
        now: datetime | None = None,
    ) -> UpsertResult:
        """
        Insert or update the single match of a (request, counterparty) pair.

        Runs as one INSERT ... ON CONFLICT DO UPDATE where the dialect has
        it. A write carrying an older ``updated_at`` than the stored row does
        not overwrite it. Other dialects insert and fall back to an update
        when the unique constraint fires.
        """
        now = now or utcnow()
        score = clamp_score(score)

        previous = await self.get_by_pair(rental_request_id, counterparty_id)
        previous_score = previous.score if previous is not None else None
        previous_status = previous.status if previous is not None else None

        insert_factory = UPSERT_DIALECTS.get(self.dialect_name)

        if insert_factory is not None:
            stmt = insert_factory(Match).values(
                id=uuid.uuid4(),
                rental_request_id=rental_request_id,
                counterparty_id=counterparty_id,
                property_id=property_id,
                score=score,
                reason=reason,
                status=status,
                is_viewed=False,
                is_notified=False,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[Match.rental_request_id, Match.counterparty_id],
                set_={
                    "property_id": stmt.excluded.property_id,
                    "score": stmt.excluded.score,
                    "reason": stmt.excluded.reason,
                    "status": stmt.excluded.status,
                    "updated_at": stmt.excluded.updated_at,
                },
                where=Match.updated_at <= stmt.excluded.updated_at,
            )
            await self.session.execute(stmt)
        else:
            await self._insert_or_update(
                rental_request_id,
                counterparty_id,
                score=score,
                reason=reason,
                property_id=property_id,
                status=status,
                now=now,
            )

        match = await self.get_by_pair(rental_request_id, counterparty_id)

        return UpsertResult(
            match=match,
            created=previous is None,
            previous_score=previous_score,
            previous_status=previous_status,
        )

    async def _insert_or_update(
        self,
        rental_request_id: uuid.UUID,
        counterparty_id: uuid.UUID,
        *,
        score: int,
        reason: str,
        property_id: uuid.UUID | None,
        status: MatchStatusEnum,
        now: datetime,
    ) -> None:
        try:
            async with self.session.begin_nested():
                self.session.add(Match(
                    rental_request_id=rental_request_id,
                    counterparty_id=counterparty_id,
                    property_id=property_id,
                    score=score,
                    reason=reason,
                    status=status,
                    created_at=now,
                    updated_at=now,
                ))
            return
        except IntegrityError:
            logger.info(
                f"Match for request {rental_request_id} and counterparty "
                f"{counterparty_id} already exists, updating"
            )

        await self.session.execute(
            update(Match)
            .where(
                and_(
                    Match.rental_request_id == rental_request_id,
                    Match.counterparty_id == counterparty_id,
                    Match.updated_at <= now,
                )
            )
            .values(
                property_id=property_id,
                score=score,
                reason=reason,
                status=status,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    async def downgrade_missing(
        self,
        rental_request_id: uuid.UUID,
        keep_counterparty_ids: set[uuid.UUID],
        *,
        reason: str = "no longer a candidate",
    ) -> int:
        """Mark ACTIVE matches not confirmed by the latest scan as BELOW_THRESHOLD."""
        conditions = [
            Match.rental_request_id == rental_request_id,
            Match.status == MatchStatusEnum.ACTIVE,
        ]
        if keep_counterparty_ids:
            conditions.append(Match.counterparty_id.notin_(list(keep_counterparty_ids)))

        result = await self.session.execute(
            update(Match)
            .where(and_(*conditions))
            .values(
                status=MatchStatusEnum.BELOW_THRESHOLD,
                reason=reason,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_for_request(self, rental_request_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(Match)
            .where(Match.rental_request_id == rental_request_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def get_matches_for_request(
        self,
        rental_request_id: uuid.UUID,
        *,
        status: MatchStatusEnum | None = None,
    ) -> Sequence[Match]:
        query = (
            select(Match)
            .where(Match.rental_request_id == rental_request_id)
            .execution_options(populate_existing=True)
        )

        if status is not None:
            query = query.where(Match.status == status)

        query = query.order_by(Match.score.desc(), Match.created_at, Match.id)

        result = await self.session.execute(query)
        return result.scalars().all()

    async def get_matches_for_counterparty(
        self,
        counterparty_id: uuid.UUID,
        *,
        skip: int = 0,
        limit: int = 50,
        now: datetime | None = None,
    ) -> Sequence[Match]:
        """
        Landlord feed: ACTIVE matches of ACTIVE, unexpired requests.

        Ordered by score descending, then oldest first, then id.
        """
        query = (
            select(Match)
            .join(RentalRequest, Match.rental_request_id == RentalRequest.id)
            .options(
                selectinload(Match.rental_request),
                selectinload(Match.matched_property),
            )
            .where(_feed_conditions(counterparty_id, now or datetime.now(timezone.utc)))
            .order_by(Match.score.desc(), Match.created_at.asc(), Match.id.asc())
            .offset(skip)
            .limit(limit)
        )

        result = await self.session.execute(query)
        return result.scalars().all()

    async def count_matches_for_counterparty(
        self,
        counterparty_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> int:
        query = (
            select(func.count())
            .select_from(Match)
            .join(RentalRequest, Match.rental_request_id == RentalRequest.id)
            .where(_feed_conditions(counterparty_id, now or datetime.now(timezone.utc)))
        )

        result = await self.session.execute(query)
        return result.scalar_one()

    async def mark_viewed(self, id: uuid.UUID) -> tuple[Match | None, bool]:
        """
        Flag a match as viewed.

        Returns:
            Tuple of (match, first_view)
        """
        match = await self.get(id)
        if match is None:
            return None, False

        first_view = not match.is_viewed
        match.is_viewed = True

        await self.session.flush()
        return match, first_view

    async def mark_notified(self, ids: Sequence[uuid.UUID]) -> int:
        if not ids:
            return 0

        result = await self.session.execute(
            update(Match)
            .where(Match.id.in_(list(ids)))
            .values(is_notified=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def count_recent(self, hours: int = 24, *, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=hours)

        query = select(func.count()).select_from(Match).where(Match.created_at >= since)

        result = await self.session.execute(query)
        return result.scalar_one()
