from datetime import date, datetime
from uuid import UUID

from rentmatch.models.rental_request import PoolStatusEnum
from rentmatch.schemas.common import BaseSchema

class PoolEntryResponse(BaseSchema):

    rental_request_id: UUID
    pool_status: PoolStatusEnum
    expires_at: datetime | None = None
    active_matches: int

class PoolTransitionResponse(BaseSchema):

    rental_request_id: UUID
    pool_status: PoolStatusEnum
    matches_removed: int

class RecomputeQueuedResponse(BaseSchema):

    queued: int

class PoolLocationStats(BaseSchema):

    location: str
    date_bucket: date
    total_requests: int
    active_requests: int
    matched_requests: int
    expired_requests: int

class PoolStatsResponse(BaseSchema):

    active_requests: int
    listing_counterparties: int
    recent_matches: int
    locations: list[PoolLocationStats] = []
    timestamp: datetime
