from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional
import uuid

from rentmatch.core.location import extract_city_token, normalize_location
from rentmatch.services.matching.trust import TrustAssessment, TrustTierEnum

TRUST_MULTIPLIERS: dict[TrustTierEnum, Decimal] = {
    TrustTierEnum.NEW: Decimal("0.85"),
    TrustTierEnum.RELIABLE: Decimal("0.93"),
    TrustTierEnum.TRUSTED: Decimal("1.0"),
    TrustTierEnum.EXCELLENT: Decimal("1.05"),
}

MAX_DECLARED_RATING = Decimal("5")

@dataclass(frozen=True)
class MatchWeights:

    location: int = 35
    budget: int = 25
    property_type: int = 15
    bedrooms: int = 15
    availability: int = 10

    def __post_init__(self) -> None:
        total = self.location + self.budget + self.property_type + self.bedrooms + self.availability
        if total != 100:
            raise ValueError(f"Match weights must sum to 100, got {total}")

@dataclass
class PropertyData:


    id: uuid.UUID
    counterparty_id: uuid.UUID
    city: str
    monthly_rent: Optional[Decimal]
    property_type: Optional[str]
    bedrooms: Optional[int]
    available_from: Optional[date]
    status: str = "available"
    availability: bool = True
    address: Optional[str] = None

    @classmethod
    def from_model(cls, prop: Any) -> "PropertyData":

        status = prop.status.value if hasattr(prop.status, "value") else prop.status
        return cls(
            id=prop.id,
            counterparty_id=prop.counterparty_id,
            city=prop.city,
            monthly_rent=prop.monthly_rent,
            property_type=prop.property_type,
            bedrooms=prop.bedrooms,
            available_from=prop.available_from,
            status=status,
            availability=prop.availability,
            address=prop.address,
        )

@dataclass
class RequestData:


    id: uuid.UUID
    location: Optional[str]
    budget_from: Optional[Decimal]
    budget_to: Optional[Decimal]
    budget: Optional[Decimal]
    property_type: Optional[str]
    bedrooms: Optional[int]
    move_in_date: Optional[date]

    @classmethod
    def from_model(cls, request: Any) -> "RequestData":

        return cls(
            id=request.id,
            location=request.location,
            budget_from=request.budget_from,
            budget_to=request.budget_to,
            budget=request.budget,
            property_type=request.property_type,
            bedrooms=request.bedrooms,
            move_in_date=request.move_in_date,
        )

@dataclass(frozen=True)
class BudgetRange:
    """
    Acceptable rent range of a request.

    ``lower``/``upper`` bound the fully acceptable range; ``tolerance`` widens
    it into the zone where the budget sub-score decays to zero. ``upper`` is
    None when the tenant gave only a lower bound.
    """

    lower: Decimal
    upper: Optional[Decimal]
    tolerance: Decimal

    @property
    def lower_bound(self) -> Decimal:
        return self.lower * (1 - self.tolerance)

    @property
    def upper_bound(self) -> Optional[Decimal]:
        if self.upper is None:
            return None
        return self.upper * (1 + self.tolerance)

    def contains(self, rent: Decimal) -> bool:
        return rent >= self.lower and (self.upper is None or rent <= self.upper)

    def within_tolerance(self, rent: Decimal) -> bool:
        upper_bound = self.upper_bound
        return rent >= self.lower_bound and (upper_bound is None or rent <= upper_bound)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def resolve_budget_range(request: RequestData, tolerance: float = 0.20) -> Optional[BudgetRange]:
    """
    Resolve the request's budget into a BudgetRange.

    An explicit range (either side may be missing) is widened by the
    tolerance when scoring. Without a range the single ``budget`` figure is
    expanded by the tolerance into the range itself, so the tolerance is never
    applied twice.

    Returns:
        BudgetRange, or None when the budget is missing or malformed
    """
    factor = Decimal(str(tolerance))
    budget_from = _to_decimal(request.budget_from)
    budget_to = _to_decimal(request.budget_to)

    if request.budget_from is not None and budget_from is None:
        return None
    if request.budget_to is not None and budget_to is None:
        return None

    if budget_from is not None or budget_to is not None:
        lower = budget_from if budget_from is not None else Decimal("0")
        if lower < 0:
            return None
        if budget_to is not None and (budget_to <= 0 or budget_to < lower):
            return None
        return BudgetRange(lower=lower, upper=budget_to, tolerance=factor)

    budget = _to_decimal(request.budget)
    if budget is None or budget <= 0:
        return None

    return BudgetRange(
        lower=budget * (1 - factor),
        upper=budget * (1 + factor),
        tolerance=Decimal("0"),
    )


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_request(request: RequestData, tolerance: float = 0.20) -> Optional[str]:
    """Return why a request cannot be matched, or None when it is usable."""
    if extract_city_token(request.location) is None:
        return "missing location"
    if resolve_budget_range(request, tolerance) is None:
        return "missing or malformed budget"
    if request.move_in_date is None:
        return "missing move-in date"
    if request.bedrooms is not None and request.bedrooms < 0:
        return "malformed bedrooms"
    return None

@dataclass
class ScoreBreakdown:

    location: int
    budget: int
    property_type: int
    bedrooms: int
    availability: int
    raw: Decimal
    multiplier: Decimal
    penalties: int

@dataclass
class ScoreResult:

    score: int
    reason: str
    breakdown: Optional[ScoreBreakdown] = None

class MatchScorer:


    MATCH_THRESHOLD = 50

    def __init__(
        self,
        weights: Optional[MatchWeights] = None,
        threshold: int = MATCH_THRESHOLD,
        budget_tolerance: float = 0.20,
        suspension_penalty: int = 15,
        misrepresentation_penalty: int = 8,
    ):

        self.weights = weights or MatchWeights()
        self.threshold = threshold
        self.budget_tolerance = budget_tolerance
        self.suspension_penalty = suspension_penalty
        self.misrepresentation_penalty = misrepresentation_penalty

    @classmethod
    def from_settings(cls, settings: Any) -> "MatchScorer":

        return cls(
            threshold=settings.match_threshold,
            budget_tolerance=settings.budget_tolerance,
            suspension_penalty=settings.suspension_penalty,
            misrepresentation_penalty=settings.misrepresentation_penalty,
        )

    def calculate_location_score(
        self,
        request_location: Optional[str],
        property_city: Optional[str],
    ) -> int:
        """
        Calculate location match score.

        Scoring:
        - 100: Normalized location equals the normalized city
        - 60: One contains the other ("Mokotów, Warszawa" vs "Warszawa")
        - 0: No overlap, or either side is empty

        Args:
            request_location: Free-text location of the rental request
            property_city: City of the property

        Returns:
            Score from 0 to 100
        """
        location = normalize_location(request_location)
        city = normalize_location(property_city)

        if not location or not city:
            return 0

        if location == city:
            return 100

        if city in location or location in city:
            return 60

        return 0

    def calculate_budget_score(
        self,
        monthly_rent: Optional[Decimal],
        budget_range: Optional[BudgetRange],
    ) -> int:
        """
        Calculate budget match score.

        Scoring:
        - 100: Rent within the acceptable range
        - Linear decay from 100 to 0 between the range edge and the
          tolerance boundary
        - 0: At or beyond the tolerance boundary

        The score never increases as rent moves further from the range.

        Args:
            monthly_rent: The property's monthly rent
            budget_range: Resolved budget of the request

        Returns:
            Score from 0 to 100
        """
        rent = _to_decimal(monthly_rent)
        if rent is None or rent < 0 or budget_range is None:
            return 0

        if budget_range.contains(rent):
            return 100

        if rent < budget_range.lower:
            boundary = budget_range.lower_bound
            if rent <= boundary:
                return 0
            return int(100 * (rent - boundary) / (budget_range.lower - boundary))

        boundary = budget_range.upper_bound
        if boundary is None or rent >= boundary:
            return 0
        return int(100 * (boundary - rent) / (boundary - budget_range.upper))

    def calculate_property_type_score(
        self,
        property_type: Optional[str],
        preferred_type: Optional[str],
    ) -> int:
        """Calculate property type match score."""
        preferred = (preferred_type or "").strip().casefold()
        if not preferred:
            return 100

        actual = (property_type or "").strip().casefold()
        if actual == preferred:
            return 100

        return 0

    def calculate_bedrooms_score(
        self,
        property_bedrooms: Optional[int],
        preferred_bedrooms: Optional[int],
    ) -> int:
        """
        Calculate bedrooms match score.

        Scoring:
        - 100: Exact match or no preference
        - 50: Off by exactly one
        - 0: Otherwise, or unknown bedrooms against a preference
        """
        if preferred_bedrooms is None:
            return 100

        if property_bedrooms is None:
            return 0

        deviation = abs(property_bedrooms - preferred_bedrooms)

        if deviation == 0:
            return 100
        elif deviation == 1:
            return 50
        else:
            return 0

    def calculate_availability_score(
        self,
        available_from: Optional[date],
        move_in_date: Optional[date],
    ) -> int:
        """
        Calculate availability score against the move-in date.

        Scoring:
        - 100: Available on or before move-in (or no date set)
        - 60: Available within 7 days after move-in
        - 30: Available within 30 days after move-in
        - 0: Later than that
        """
        if move_in_date is None:
            return 0

        if available_from is None:
            return 100

        days_late = (available_from - move_in_date).days

        if days_late <= 0:
            return 100
        elif days_late <= 7:
            return 60
        elif days_late <= 30:
            return 30
        else:
            return 0

    def calculate_trust_adjustment(
        self,
        trust: Optional[TrustAssessment],
    ) -> tuple[Decimal, int, list[str]]:
        """
        Map a trust assessment to (multiplier, flat penalty, reason labels).

        A missing assessment is neutral: multiplier 1.0 and no penalties.
        """
        if trust is None:
            return Decimal("1.0"), 0, ["trust unavailable"]

        multiplier = TRUST_MULTIPLIERS.get(trust.tier, Decimal("1.0"))
        penalties = 0
        labels = [f"trust {trust.tier.value}"]

        if trust.is_suspended:
            penalties += self.suspension_penalty
            labels.append("suspended member")

        if trust.review_count == 0 and trust.average_rating >= MAX_DECLARED_RATING:
            penalties += self.misrepresentation_penalty
            labels.append("unreviewed top rating")

        return multiplier, penalties, labels

    def score(
        self,
        request: RequestData,
        prop: PropertyData,
        trust: Optional[TrustAssessment] = None,
    ) -> ScoreResult:
        """
        Calculate the final match score and reason for one request/property pair.

        The raw score is the weighted sum of five sub-scores:
        - Location: 35
        - Budget: 25
        - Property type: 15
        - Bedrooms: 15
        - Availability: 10

        The raw score is then multiplied by the trust multiplier, flat
        penalties are subtracted and the result is rounded and clamped to
        0..100. Malformed requests score 0 instead of raising.

        Args:
            request: The rental request data
            prop: The property data
            trust: Trust assessment of the property's counterparty, None when
                the classifier could not provide one

        Returns:
            ScoreResult with integer score and deterministic reason
        """
        invalid = validate_request(request, self.budget_tolerance)
        if invalid is not None:
            return ScoreResult(score=0, reason=f"invalid request: {invalid}")

        budget_range = resolve_budget_range(request, self.budget_tolerance)

        location_score = self.calculate_location_score(request.location, prop.city)
        budget_score = self.calculate_budget_score(prop.monthly_rent, budget_range)
        type_score = self.calculate_property_type_score(prop.property_type, request.property_type)
        bedrooms_score = self.calculate_bedrooms_score(prop.bedrooms, request.bedrooms)
        availability_score = self.calculate_availability_score(
            prop.available_from, request.move_in_date
        )

        weighted = (
            location_score * self.weights.location +
            budget_score * self.weights.budget +
            type_score * self.weights.property_type +
            bedrooms_score * self.weights.bedrooms +
            availability_score * self.weights.availability
        )
        raw = min(Decimal(100), max(Decimal(0), Decimal(weighted) / 100))

        multiplier, penalties, trust_labels = self.calculate_trust_adjustment(trust)
        final = round_half_up(raw * multiplier - penalties)
        final = min(100, max(0, final))

        labels = [
            _location_label(location_score),
            _budget_label(budget_score),
            _type_label(type_score, request.property_type),
            _bedrooms_label(bedrooms_score, request.bedrooms),
            _availability_label(availability_score),
            *trust_labels,
        ]

        return ScoreResult(
            score=final,
            reason=", ".join(labels),
            breakdown=ScoreBreakdown(
                location=location_score,
                budget=budget_score,
                property_type=type_score,
                bedrooms=bedrooms_score,
                availability=availability_score,
                raw=raw,
                multiplier=multiplier,
                penalties=penalties,
            ),
        )

    def is_valid_match(self, score: int) -> bool:

        return score >= self.threshold


def _location_label(score: int) -> str:
    if score == 100:
        return "location exact"
    if score > 0:
        return "location partial"
    return "location mismatch"


def _budget_label(score: int) -> str:
    if score == 100:
        return "budget in range"
    if score > 0:
        return "budget near range"
    return "budget out of range"


def _type_label(score: int, preferred: Optional[str]) -> str:
    if not (preferred or "").strip():
        return "type any"
    return "type match" if score == 100 else "type mismatch"


def _bedrooms_label(score: int, preferred: Optional[int]) -> str:
    if preferred is None:
        return "bedrooms any"
    if score == 100:
        return "bedrooms exact"
    if score == 50:
        return "bedrooms off by one"
    return "bedrooms mismatch"


def _availability_label(score: int) -> str:
    if score == 100:
        return "available on time"
    if score == 60:
        return "available within a week"
    if score == 30:
        return "available within a month"
    return "available too late"
