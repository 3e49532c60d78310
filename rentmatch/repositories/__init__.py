from rentmatch.repositories.base import BaseRepository
from rentmatch.repositories.counterparty import CounterpartyRepository
from rentmatch.repositories.match import MatchRepository, UpsertResult
from rentmatch.repositories.pool_analytics import PoolAnalyticsRepository
from rentmatch.repositories.property import PropertyRepository
from rentmatch.repositories.rental_request import RentalRequestRepository

__all__ = [
    "BaseRepository",
    "CounterpartyRepository",
    "MatchRepository",
    "UpsertResult",
    "PoolAnalyticsRepository",
    "PropertyRepository",
    "RentalRequestRepository",
]
