import uuid
from datetime import date, datetime
from typing import Sequence

from sqlalchemy import String, and_, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.models.match import Match
from rentmatch.models.rental_request import PoolStatusEnum, RentalRequest
from rentmatch.repositories.base import BaseRepository


class RentalRequestRepository(BaseRepository[RentalRequest]):
    def __init__(self, session: AsyncSession):
        super().__init__(RentalRequest, session)

    async def get_due_for_expiry_ids(
        self,
        now: datetime,
        *,
        limit: int = 500,
    ) -> list[uuid.UUID]:
        """
        Ids of ACTIVE requests whose expiry passed or whose move-in date is
        already behind us.
        """
        today: date = now.date()

        query = (
            select(RentalRequest.id)
            .where(
                and_(
                    RentalRequest.pool_status == PoolStatusEnum.ACTIVE,
                    or_(
                        and_(
                            RentalRequest.expires_at.isnot(None),
                            RentalRequest.expires_at <= now,
                        ),
                        RentalRequest.move_in_date < today,
                    ),
                )
            )
            .order_by(RentalRequest.expires_at, RentalRequest.id)
            .limit(limit)
        )

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_pool_status(
        self,
        id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> PoolStatusEnum | None:
        """
        Read the current pool status straight from the database.

        With ``for_update`` the request row stays locked until the transaction
        ends, so a concurrent status change waits for it.
        """
        query = select(RentalRequest.pool_status).where(RentalRequest.id == id)
        if for_update:
            query = query.with_for_update()

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_active_ids_matched_to_counterparty(
        self,
        counterparty_id: uuid.UUID,
        *,
        without_property: bool = False,
    ) -> list[uuid.UUID]:
        """
        ACTIVE requests holding a match with the counterparty.

        With ``without_property`` only matches whose property is gone count.
        """
        conditions = [
            Match.counterparty_id == counterparty_id,
            RentalRequest.pool_status == PoolStatusEnum.ACTIVE,
        ]
        if without_property:
            conditions.append(Match.property_id.is_(None))

        query = (
            select(RentalRequest.id)
            .join(Match, Match.rental_request_id == RentalRequest.id)
            .where(and_(*conditions))
            .distinct()
            .order_by(RentalRequest.id)
        )

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_active_for_city(
        self,
        city_token: str,
        *,
        limit: int = 1000,
    ) -> Sequence[RentalRequest]:
        """
        ACTIVE requests whose location could admit a property in ``city_token``.

        Mirrors the location clause of PropertyRepository.find_candidates
        from the request side.
        """
        if not city_token:
            return []

        token = literal(city_token, String)

        query = (
            select(RentalRequest)
            .where(
                and_(
                    RentalRequest.pool_status == PoolStatusEnum.ACTIVE,
                    RentalRequest.location_normalized != "",
                    or_(
                        RentalRequest.city_token == city_token,
                        RentalRequest.location_normalized.contains(city_token, autoescape=True),
                        token.contains(RentalRequest.location_normalized),
                    ),
                )
            )
            .order_by(RentalRequest.created_at, RentalRequest.id)
            .limit(limit)
        )

        result = await self.session.execute(query)
        return result.scalars().all()

    async def increment_view_count(self, id: uuid.UUID) -> None:
        request = await self.get(id)
        if request is None:
            return

        request.view_count = (request.view_count or 0) + 1
        await self.session.flush()

    async def count_active(self) -> int:
        query = select(func.count()).select_from(RentalRequest).where(
            RentalRequest.pool_status == PoolStatusEnum.ACTIVE
        )

        result = await self.session.execute(query)
        return result.scalar_one()
