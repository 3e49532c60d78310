from datetime import date
from decimal import Decimal
from typing import Sequence

from sqlalchemy import String, and_, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.models.property import Property, PropertyStatusEnum
from rentmatch.repositories.base import BaseRepository


class PropertyRepository(BaseRepository[Property]):
    def __init__(self, session: AsyncSession):
        super().__init__(Property, session)

    async def find_candidates(
        self,
        *,
        city_token: str,
        location_normalized: str,
        min_rent: Decimal,
        max_rent: Decimal | None,
        latest_available_from: date,
        limit: int = 200,
    ) -> Sequence[Property]:
        """
        Fetch listed properties inside the pre-filter bounds.

        Ordered by rent then id so repeated calls on the same data return the
        same rows.
        """
        location_norm = literal(location_normalized, String)

        conditions = [
            Property.status == PropertyStatusEnum.AVAILABLE,
            Property.availability.is_(True),
            Property.city_token != "",
            or_(
                Property.city_token == city_token,
                location_norm.contains(Property.city_token),
                Property.city_token.contains(location_normalized, autoescape=True),
            ),
            Property.monthly_rent >= min_rent,
            or_(
                Property.available_from.is_(None),
                Property.available_from <= latest_available_from,
            ),
        ]

        if max_rent is not None:
            conditions.append(Property.monthly_rent <= max_rent)

        query = (
            select(Property)
            .where(and_(*conditions))
            .order_by(Property.monthly_rent, Property.id)
            .limit(limit)
        )

        result = await self.session.execute(query)
        return result.scalars().all()

    async def count_listing_counterparties(self) -> int:
        """Count counterparties with at least one listed property."""
        query = select(func.count(func.distinct(Property.counterparty_id))).where(
            and_(
                Property.status == PropertyStatusEnum.AVAILABLE,
                Property.availability.is_(True),
            )
        )

        result = await self.session.execute(query)
        return result.scalar_one()
