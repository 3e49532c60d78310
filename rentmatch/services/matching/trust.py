import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

import httpx

from rentmatch.core.exceptions import TrustClassifierError

logger = logging.getLogger(__name__)

class TrustTierEnum(str, enum.Enum):

    NEW = "new"
    RELIABLE = "reliable"
    TRUSTED = "trusted"
    EXCELLENT = "excellent"

_TIER_ORDER = [
    TrustTierEnum.NEW,
    TrustTierEnum.RELIABLE,
    TrustTierEnum.TRUSTED,
    TrustTierEnum.EXCELLENT,
]

@dataclass(frozen=True)
class TrustThresholds:

    excellent_reviews: int = 25
    excellent_rating: Decimal = Decimal("4.8")
    trusted_reviews: int = 10
    trusted_rating: Decimal = Decimal("4.2")
    reliable_reviews: int = 3
    reliable_rating: Decimal = Decimal("3.5")

@dataclass
class TrustAssessment:

    tier: TrustTierEnum
    is_suspended: bool
    review_count: int
    average_rating: Decimal = Decimal("0")
    reasons: list[str] = field(default_factory=list)

@dataclass
class MemberProfile:
    """Trust-relevant slice of a counterparty member."""

    average_rating: Decimal
    review_count: int
    last_active_at: Optional[datetime]
    is_suspended: bool

    @classmethod
    def from_model(cls, member: Any) -> "MemberProfile":

        return cls(
            average_rating=Decimal(str(member.average_rating or 0)),
            review_count=member.review_count or 0,
            last_active_at=member.last_active_at,
            is_suspended=bool(member.is_suspended),
        )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def classify_trust(
    members: Sequence[MemberProfile],
    *,
    now: Optional[datetime] = None,
    inactivity_days: int = 180,
    thresholds: TrustThresholds = TrustThresholds(),
) -> TrustAssessment:
    """
    Classify a counterparty from its members' track record.

    Review counts are summed across members and ratings averaged weighted by
    review count. Without any reviews the highest self-declared rating is
    reported, which lets the scorer spot unreviewed profiles that claim a
    perfect rating.

    Tiers:
    - Excellent: >= 25 reviews, rating >= 4.8, nobody suspended
    - Trusted: >= 10 reviews, rating >= 4.2
    - Reliable: >= 3 reviews, rating >= 3.5
    - New: everything else, including no reviews at all

    A counterparty whose most recent member activity is older than
    ``inactivity_days`` drops one tier.

    Args:
        members: Member profiles of the counterparty
        now: Reference time (defaults to current UTC time)
        inactivity_days: Days without activity before the tier is lowered
        thresholds: Tier thresholds

    Returns:
        TrustAssessment for the counterparty
    """
    now = now or datetime.now(timezone.utc)

    review_count = sum(m.review_count for m in members)
    is_suspended = any(m.is_suspended for m in members)

    if review_count > 0:
        weighted = sum(m.average_rating * m.review_count for m in members)
        average_rating = (weighted / review_count).quantize(Decimal("0.01"))
    elif members:
        average_rating = max(m.average_rating for m in members)
    else:
        average_rating = Decimal("0")

    reasons: list[str] = []

    if review_count == 0:
        tier = TrustTierEnum.NEW
        reasons.append("No reviews yet")
    elif (
        review_count >= thresholds.excellent_reviews
        and average_rating >= thresholds.excellent_rating
        and not is_suspended
    ):
        tier = TrustTierEnum.EXCELLENT
        reasons.append(f"High review count ({review_count})")
    elif review_count >= thresholds.trusted_reviews and average_rating >= thresholds.trusted_rating:
        tier = TrustTierEnum.TRUSTED
        reasons.append(f"Good review count ({review_count})")
    elif review_count >= thresholds.reliable_reviews and average_rating >= thresholds.reliable_rating:
        tier = TrustTierEnum.RELIABLE
        reasons.append(f"Minimum review count met ({review_count})")
    else:
        tier = TrustTierEnum.NEW
        reasons.append(f"Below reliable thresholds ({review_count} reviews, {average_rating} rating)")

    activity = [_as_utc(m.last_active_at) for m in members if m.last_active_at is not None]
    if activity and tier != TrustTierEnum.NEW:
        last_active = max(activity)
        if now - last_active > timedelta(days=inactivity_days):
            tier = _TIER_ORDER[_TIER_ORDER.index(tier) - 1]
            reasons.append(f"Inactive since {last_active.date().isoformat()}")

    if is_suspended:
        reasons.append("Suspended member")

    return TrustAssessment(
        tier=tier,
        is_suspended=is_suspended,
        review_count=review_count,
        average_rating=average_rating,
        reasons=reasons,
    )


class TrustClassifier(Protocol):

    async def get_trust_tier(self, counterparty_id: uuid.UUID) -> TrustAssessment:
        ...


class DatabaseTrustClassifier:
    """Classifies counterparties from member profiles stored alongside them."""

    def __init__(self, counterparty_repository: Any, inactivity_days: int = 180):

        self.counterparty_repository = counterparty_repository
        self.inactivity_days = inactivity_days

    async def get_trust_tier(self, counterparty_id: uuid.UUID) -> TrustAssessment:

        members = await self.counterparty_repository.get_members(counterparty_id)
        return classify_trust(
            [MemberProfile.from_model(m) for m in members],
            inactivity_days=self.inactivity_days,
        )


class HttpTrustClassifier:
    """Client for a remote trust scoring service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def get_trust_tier(self, counterparty_id: uuid.UUID) -> TrustAssessment:

        url = f"{self.base_url}/counterparties/{counterparty_id}/trust"

        try:
            response = await self.client.get(url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TrustClassifierError(f"Trust service request failed: {e}") from e

        try:
            return TrustAssessment(
                tier=TrustTierEnum(str(data["tier"]).lower()),
                is_suspended=bool(data.get("is_suspended", False)),
                review_count=int(data.get("review_count", 0)),
                average_rating=Decimal(str(data.get("average_rating", 0))),
            )
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise TrustClassifierError(f"Malformed trust payload: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()


async def assess_trust_safely(
    classifier: Optional[TrustClassifier],
    counterparty_id: uuid.UUID,
) -> Optional[TrustAssessment]:
    """
    Fetch a trust assessment, degrading to None when the classifier fails.

    Scoring treats None as a neutral multiplier without penalties, so a
    broken trust dependency never fails a match computation.
    """
    if classifier is None:
        return None

    try:
        return await classifier.get_trust_tier(counterparty_id)
    except Exception as e:
        logger.warning(
            f"Trust classifier unavailable for counterparty {counterparty_id}, "
            f"scoring without trust adjustment: {e}"
        )
        return None
