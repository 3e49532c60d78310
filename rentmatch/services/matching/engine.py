import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from rentmatch.services.matching.scorer import (
    MatchScorer,
    PropertyData,
    RequestData,
    ScoreResult,
)
from rentmatch.services.matching.selector import Candidate
from rentmatch.services.matching.trust import TrustAssessment

logger = logging.getLogger(__name__)

@dataclass
class MatchResult:


    rental_request_id: uuid.UUID
    counterparty_id: uuid.UUID
    property_id: uuid.UUID
    score: int
    reason: str
    is_valid: bool


def _tie_break_key(prop: PropertyData, result: ScoreResult) -> tuple:
    # Higher score, then earliest availability, then cheaper, then id
    rent = prop.monthly_rent if prop.monthly_rent is not None else Decimal("Infinity")
    return (
        -result.score,
        prop.available_from or date.min,
        rent,
        str(prop.id),
    )

class MatchEngine:
    """
    Scores candidates for a rental request and keeps the best property of
    each counterparty.

    The engine is synchronous and side-effect free: trust assessments are
    fetched by the caller and passed in per counterparty.
    """

    def __init__(self, scorer: Optional[MatchScorer] = None):

        self.scorer = scorer or MatchScorer()

    def calculate_match(
        self,
        request: RequestData,
        prop: PropertyData,
        trust: Optional[TrustAssessment] = None,
    ) -> MatchResult:
        """
        Calculate match between a single request and property.

        Args:
            request: The rental request data
            prop: The property data
            trust: Trust assessment of the property's counterparty

        Returns:
            MatchResult with score, reason and validity
        """
        result = self.scorer.score(request, prop, trust)

        return MatchResult(
            rental_request_id=request.id,
            counterparty_id=prop.counterparty_id,
            property_id=prop.id,
            score=result.score,
            reason=result.reason,
            is_valid=self.scorer.is_valid_match(result.score),
        )

    def find_matches_for_request(
        self,
        request: RequestData,
        candidates: Sequence[Candidate],
        trust_by_counterparty: Optional[dict[uuid.UUID, Optional[TrustAssessment]]] = None,
    ) -> list[MatchResult]:
        """
        Score all candidates and pick the best property per counterparty.

        Ties between properties of one counterparty are broken by earliest
        availability, then lower rent, then property id, so the outcome does
        not depend on candidate order.

        Args:
            request: The rental request data
            candidates: Pre-filtered candidates
            trust_by_counterparty: Trust assessment per counterparty; missing
                or None entries score without trust adjustment

        Returns:
            One MatchResult per counterparty (valid or not), sorted by score
            descending then counterparty id
        """
        trust_map = trust_by_counterparty or {}
        best: dict[uuid.UUID, tuple[tuple, MatchResult]] = {}

        for candidate in candidates:
            prop = candidate.property
            trust = trust_map.get(candidate.counterparty_id)

            result = self.scorer.score(request, prop, trust)
            key = _tie_break_key(prop, result)

            current = best.get(candidate.counterparty_id)
            if current is not None and current[0] <= key:
                continue

            best[candidate.counterparty_id] = (
                key,
                MatchResult(
                    rental_request_id=request.id,
                    counterparty_id=candidate.counterparty_id,
                    property_id=prop.id,
                    score=result.score,
                    reason=result.reason,
                    is_valid=self.scorer.is_valid_match(result.score),
                ),
            )

        matches = [result for _, result in best.values()]
        matches.sort(key=lambda m: (-m.score, str(m.counterparty_id)))

        logger.debug(
            f"Scored {len(candidates)} candidates for rental request {request.id}: "
            f"{sum(1 for m in matches if m.is_valid)} of {len(matches)} counterparties above threshold"
        )
        return matches
