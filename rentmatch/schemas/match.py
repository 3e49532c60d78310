from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from rentmatch.models.match import MatchStatusEnum
from rentmatch.schemas.common import BaseSchema

class RentalRequestSummary(BaseSchema):

    id: UUID
    title: str | None = None
    location: str
    budget_from: Decimal | None = None
    budget_to: Decimal | None = None
    budget: Decimal | None = None
    property_type: str | None = None
    bedrooms: int | None = None
    move_in_date: date
    expires_at: datetime | None = None
    view_count: int = 0

class MatchedPropertySummary(BaseSchema):

    id: UUID
    name: str | None = None
    city: str
    monthly_rent: Decimal
    property_type: str | None = None
    bedrooms: int | None = None
    available_from: date | None = None

class MatchResponse(BaseSchema):

    id: UUID
    rental_request_id: UUID
    counterparty_id: UUID
    property_id: UUID | None = None
    score: int = Field(..., ge=0, le=100, description="Match score (0-100)")
    reason: str
    status: MatchStatusEnum
    is_viewed: bool
    created_at: datetime
    updated_at: datetime

class MatchFeedItem(MatchResponse):
    """A match as shown in a landlord's feed."""

    rental_request: RentalRequestSummary | None = None
    matched_property: MatchedPropertySummary | None = None
