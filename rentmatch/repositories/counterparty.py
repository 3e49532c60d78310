import uuid
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.models.counterparty import Counterparty, CounterpartyMember
from rentmatch.repositories.base import BaseRepository


class CounterpartyRepository(BaseRepository[Counterparty]):
    def __init__(self, session: AsyncSession):
        super().__init__(Counterparty, session)

    async def get_members(self, counterparty_id: uuid.UUID) -> Sequence[CounterpartyMember]:
        query = (
            select(CounterpartyMember)
            .where(CounterpartyMember.counterparty_id == counterparty_id)
            .order_by(CounterpartyMember.created_at, CounterpartyMember.id)
        )

        result = await self.session.execute(query)
        return result.scalars().all()

    async def add_member(self, counterparty_id: uuid.UUID, **fields) -> CounterpartyMember:
        member = CounterpartyMember(counterparty_id=counterparty_id, **fields)
        self.session.add(member)
        await self.session.flush()
        await self.session.refresh(member)
        return member
