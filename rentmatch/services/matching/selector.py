import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from rentmatch.core.location import extract_city_token, normalize_location
from rentmatch.services.matching.scorer import (
    PropertyData,
    RequestData,
    resolve_budget_range,
)

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class PrefilterBounds:
    """
    Everything a property has to satisfy to be considered for a request.

    ``max_rent`` is None when the request has no upper budget bound.
    """

    city_token: str
    location_normalized: str
    min_rent: Decimal
    max_rent: Optional[Decimal]
    latest_available_from: date

@dataclass(frozen=True)
class Candidate:

    counterparty_id: uuid.UUID
    property: PropertyData


def build_prefilter_bounds(
    request: RequestData,
    tolerance: float = 0.20,
    grace_days: int = 30,
) -> Optional[PrefilterBounds]:
    """
    Derive pre-filter bounds from a rental request.

    Returns:
        PrefilterBounds, or None when the request is not usable (no city
        token, no valid budget or no move-in date)
    """
    city_token = extract_city_token(request.location)
    if city_token is None:
        return None

    budget_range = resolve_budget_range(request, tolerance)
    if budget_range is None:
        return None

    if request.move_in_date is None:
        return None

    return PrefilterBounds(
        city_token=city_token,
        location_normalized=normalize_location(request.location),
        min_rent=budget_range.lower_bound,
        max_rent=budget_range.upper_bound,
        latest_available_from=request.move_in_date + timedelta(days=grace_days),
    )


def location_admits(bounds: PrefilterBounds, property_city: Optional[str]) -> bool:
    """
    Location part of the pre-filter.

    Admits a property whose normalized city equals the request's city token,
    is contained in the request's full location, or contains it. The last two
    clauses cover every pair the scorer gives a non-zero location score.
    """
    city = normalize_location(property_city)
    if not city:
        return False

    return (
        city == bounds.city_token
        or city in bounds.location_normalized
        or bounds.location_normalized in city
    )


def passes_prefilter(
    request: RequestData,
    prop: PropertyData,
    tolerance: float = 0.20,
    grace_days: int = 30,
) -> bool:
    """
    Decide whether a property is worth scoring against a request.

    Rules:
    - Property is listed: status AVAILABLE and availability flag set
    - Location: see ``location_admits``
    - Budget: rent inside the budget range widened by the tolerance
      (inclusive), no upper limit when the request has none
    - Availability: no date, or at most ``grace_days`` after move-in

    The SQL query in CandidateSelector expresses the same rules.

    Args:
        request: Rental request data
        prop: Property data
        tolerance: Budget tolerance fraction
        grace_days: Days after move-in a property may still become available

    Returns:
        True when the pair should be scored
    """
    bounds = build_prefilter_bounds(request, tolerance, grace_days)
    if bounds is None:
        return False

    return property_within_bounds(bounds, prop)


def property_within_bounds(bounds: PrefilterBounds, prop: PropertyData) -> bool:

    if prop.status != "available" or not prop.availability:
        return False

    if not location_admits(bounds, prop.city):
        return False

    if prop.monthly_rent is None:
        return False
    rent = Decimal(str(prop.monthly_rent))
    if rent < bounds.min_rent:
        return False
    if bounds.max_rent is not None and rent > bounds.max_rent:
        return False

    if prop.available_from is not None and prop.available_from > bounds.latest_available_from:
        return False

    return True


def cap_per_counterparty(
    properties: Sequence[PropertyData],
    per_counterparty: int,
) -> list[Candidate]:
    """Keep at most ``per_counterparty`` properties of each counterparty, in order."""
    taken: dict[uuid.UUID, int] = {}
    candidates: list[Candidate] = []

    for prop in properties:
        count = taken.get(prop.counterparty_id, 0)
        if count >= per_counterparty:
            continue
        taken[prop.counterparty_id] = count + 1
        candidates.append(Candidate(counterparty_id=prop.counterparty_id, property=prop))

    return candidates

class CandidateSelector:
    """
    Selects a bounded set of candidate properties for a rental request.

    The heavy lifting is a single indexed query in PropertyRepository; this
    class turns a request into pre-filter bounds and applies the per
    counterparty cap. It never writes.
    """

    def __init__(
        self,
        property_repository: Any,
        budget_tolerance: float = 0.20,
        grace_days: int = 30,
        candidate_limit: int = 200,
        per_counterparty: int = 20,
    ):

        self.property_repository = property_repository
        self.budget_tolerance = budget_tolerance
        self.grace_days = grace_days
        self.candidate_limit = candidate_limit
        self.per_counterparty = per_counterparty

    @classmethod
    def from_settings(cls, property_repository: Any, settings: Any) -> "CandidateSelector":

        return cls(
            property_repository,
            budget_tolerance=settings.budget_tolerance,
            grace_days=settings.availability_grace_days,
            candidate_limit=settings.candidate_limit,
            per_counterparty=settings.properties_per_counterparty,
        )

    async def select_candidates(self, request: RequestData) -> list[Candidate]:
        """
        Select candidate properties for a rental request.

        Args:
            request: Rental request data

        Returns:
            Candidates ordered by rent then id; empty for unusable requests
        """
        bounds = build_prefilter_bounds(request, self.budget_tolerance, self.grace_days)
        if bounds is None:
            logger.info(f"Rental request {request.id} has unusable criteria, no candidates selected")
            return []

        properties = await self.property_repository.find_candidates(
            city_token=bounds.city_token,
            location_normalized=bounds.location_normalized,
            min_rent=bounds.min_rent,
            max_rent=bounds.max_rent,
            latest_available_from=bounds.latest_available_from,
            limit=self.candidate_limit,
        )

        candidates = cap_per_counterparty(
            [PropertyData.from_model(p) for p in properties],
            self.per_counterparty,
        )

        logger.debug(
            f"Selected {len(candidates)} candidates for rental request {request.id} "
            f"(city token '{bounds.city_token}')"
        )
        return candidates
