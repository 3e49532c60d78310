from rentmatch.models.counterparty import Counterparty, CounterpartyMember, MemberRoleEnum
from rentmatch.models.match import Match, MatchStatusEnum
from rentmatch.models.pool_analytics import PoolAnalytics
from rentmatch.models.property import Property, PropertyStatusEnum
from rentmatch.models.rental_request import PoolStatusEnum, RentalRequest

__all__ = [
    "Counterparty",
    "CounterpartyMember",
    "MemberRoleEnum",
    "Property",
    "PropertyStatusEnum",
    "RentalRequest",
    "PoolStatusEnum",
    "Match",
    "MatchStatusEnum",
    "PoolAnalytics",
]
