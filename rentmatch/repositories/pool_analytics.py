import uuid
from datetime import date
from typing import Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.core.database import utcnow
from rentmatch.models.pool_analytics import PoolAnalytics
from rentmatch.models.rental_request import PoolStatusEnum, RentalRequest
from rentmatch.repositories.base import UPSERT_DIALECTS, BaseRepository


class PoolAnalyticsRepository(BaseRepository[PoolAnalytics]):
    def __init__(self, session: AsyncSession):
        super().__init__(PoolAnalytics, session)

    async def get_for_location(self, location: str, day: date) -> PoolAnalytics | None:
        query = (
            select(PoolAnalytics)
            .where(
                and_(
                    PoolAnalytics.location == location,
                    PoolAnalytics.date_bucket == day,
                )
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_for_day(self, day: date, *, limit: int = 50) -> Sequence[PoolAnalytics]:
        query = (
            select(PoolAnalytics)
            .where(PoolAnalytics.date_bucket == day)
            .order_by(PoolAnalytics.active_requests.desc(), PoolAnalytics.location)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def _count_by_status(self, location: str) -> dict[PoolStatusEnum, int]:
        query = (
            select(RentalRequest.pool_status, func.count())
            .where(RentalRequest.city_token == location)
            .group_by(RentalRequest.pool_status)
        )
        result = await self.session.execute(query)
        return {status: count for status, count in result.all()}

    async def refresh(self, location: str, day: date | None = None) -> PoolAnalytics | None:
        """
        Recount the requests of a location and store them in the day's bucket.

        Pending changes of the session are flushed first so the counts
        include them. Requests without a city token are not tracked.
        """
        if not location:
            return None

        day = day or utcnow().date()
        await self.session.flush()

        counts = await self._count_by_status(location)
        values = {
            "total_requests": sum(counts.values()),
            "active_requests": counts.get(PoolStatusEnum.ACTIVE, 0),
            "matched_requests": counts.get(PoolStatusEnum.MATCHED, 0),
            "expired_requests": counts.get(PoolStatusEnum.EXPIRED, 0),
        }
        now = utcnow()

        insert_factory = UPSERT_DIALECTS.get(self.dialect_name)

        if insert_factory is not None:
            stmt = insert_factory(PoolAnalytics).values(
                id=uuid.uuid4(),
                location=location,
                date_bucket=day,
                created_at=now,
                updated_at=now,
                **values,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[PoolAnalytics.location, PoolAnalytics.date_bucket],
                set_={**values, "updated_at": now},
            )
            await self.session.execute(stmt)
        else:
            row = await self.get_for_location(location, day)
            if row is None:
                self.session.add(PoolAnalytics(location=location, date_bucket=day, **values))
            else:
                for field, value in values.items():
                    setattr(row, field, value)
            await self.session.flush()

        return await self.get_for_location(location, day)
