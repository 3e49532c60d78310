"""
Tests for the match engine: best property per counterparty.
"""

import random
import uuid
from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given, settings, strategies as st

from rentmatch.services.matching.engine import MatchEngine
from rentmatch.services.matching.scorer import PropertyData, RequestData
from rentmatch.services.matching.selector import Candidate
from rentmatch.services.matching.trust import TrustAssessment, TrustTierEnum


MOVE_IN = date(2025, 9, 1)


def request_data(**overrides) -> RequestData:
    fields = {
        "id": uuid.uuid4(),
        "location": "Mokotów, Warszawa",
        "budget_from": Decimal("2000"),
        "budget_to": Decimal("3000"),
        "budget": None,
        "property_type": "apartment",
        "bedrooms": 2,
        "move_in_date": MOVE_IN,
    }
    fields.update(overrides)
    return RequestData(**fields)


def candidate(counterparty_id: uuid.UUID, **overrides) -> Candidate:
    fields = {
        "id": uuid.uuid4(),
        "counterparty_id": counterparty_id,
        "city": "Warszawa",
        "monthly_rent": Decimal("2500"),
        "property_type": "apartment",
        "bedrooms": 2,
        "available_from": date(2025, 8, 15),
    }
    fields.update(overrides)
    return Candidate(counterparty_id=counterparty_id, property=PropertyData(**fields))


@st.composite
def candidate_strategy(draw: st.DrawFn, owners: list[uuid.UUID]) -> Candidate:
    offset = draw(st.one_of(st.none(), st.integers(min_value=-10, max_value=40)))
    return candidate(
        draw(st.sampled_from(owners)),
        id=uuid.UUID(int=draw(st.integers(min_value=1, max_value=2**64))),
        city=draw(st.sampled_from(["Warszawa", "Mokotów", "Kraków"])),
        monthly_rent=Decimal(draw(st.integers(min_value=1500, max_value=3800))),
        property_type=draw(st.sampled_from(["apartment", "house"])),
        bedrooms=draw(st.integers(min_value=0, max_value=4)),
        available_from=MOVE_IN + timedelta(days=offset) if offset is not None else None,
    )


OWNERS = [uuid.UUID(int=n) for n in (101, 202, 303)]


class TestMatchEngine:

    def test_calculate_match(self) -> None:
        owner = uuid.uuid4()
        request = request_data()
        pick = candidate(owner)

        result = MatchEngine().calculate_match(request, pick.property)

        assert result.rental_request_id == request.id
        assert result.counterparty_id == owner
        assert result.property_id == pick.property.id
        assert result.score == 86
        assert result.is_valid is True

    def test_best_property_per_counterparty(self) -> None:
        owner = uuid.uuid4()
        weak = candidate(owner, bedrooms=4)
        strong = candidate(owner)

        results = MatchEngine().find_matches_for_request(request_data(), [weak, strong])

        assert len(results) == 1
        assert results[0].property_id == strong.property.id

    def test_tie_prefers_earlier_availability_then_lower_rent(self) -> None:
        owner = uuid.uuid4()
        later = candidate(owner, available_from=date(2025, 8, 20), monthly_rent=Decimal("2100"))
        earlier = candidate(owner, available_from=date(2025, 8, 10), monthly_rent=Decimal("2900"))
        cheaper = candidate(owner, available_from=date(2025, 8, 10), monthly_rent=Decimal("2200"))

        results = MatchEngine().find_matches_for_request(request_data(), [later, earlier, cheaper])

        assert results[0].property_id == cheaper.property.id

    def test_below_threshold_results_are_kept_but_invalid(self) -> None:
        good_owner, poor_owner = uuid.uuid4(), uuid.uuid4()
        good = candidate(good_owner)
        poor = candidate(
            poor_owner,
            city="Kraków",
            property_type="house",
            bedrooms=5,
            available_from=MOVE_IN + timedelta(days=20),
        )

        results = MatchEngine().find_matches_for_request(request_data(), [poor, good])

        assert [r.counterparty_id for r in results] == [good_owner, poor_owner]
        assert results[0].is_valid is True
        assert results[1].is_valid is False

    def test_trust_is_applied_per_counterparty(self) -> None:
        trusted_owner, new_owner = uuid.uuid4(), uuid.uuid4()
        trust = {
            trusted_owner: TrustAssessment(tier=TrustTierEnum.TRUSTED, is_suspended=False, review_count=15),
            new_owner: TrustAssessment(tier=TrustTierEnum.NEW, is_suspended=False, review_count=1),
        }

        results = MatchEngine().find_matches_for_request(
            request_data(),
            [candidate(new_owner), candidate(trusted_owner)],
            trust,
        )

        scores = {r.counterparty_id: r.score for r in results}
        assert scores[trusted_owner] == 86
        assert scores[new_owner] == 73

    def test_no_candidates(self) -> None:
        assert MatchEngine().find_matches_for_request(request_data(), []) == []

    @settings(max_examples=100)
    @given(
        candidates=st.lists(candidate_strategy(OWNERS), min_size=1, max_size=12, unique_by=lambda c: c.property.id),
        seed=st.integers(min_value=0, max_value=10_000),
    )
    def test_outcome_does_not_depend_on_candidate_order(self, candidates: list[Candidate], seed: int) -> None:
        engine = MatchEngine()
        request = request_data()

        shuffled = list(candidates)
        random.Random(seed).shuffle(shuffled)

        first = engine.find_matches_for_request(request, candidates)
        second = engine.find_matches_for_request(request, shuffled)

        assert [(m.counterparty_id, m.property_id, m.score) for m in first] == [
            (m.counterparty_id, m.property_id, m.score) for m in second
        ]

    @settings(max_examples=100)
    @given(candidates=st.lists(candidate_strategy(OWNERS), min_size=1, max_size=12, unique_by=lambda c: c.property.id))
    def test_one_result_per_counterparty_with_max_score(self, candidates: list[Candidate]) -> None:
        engine = MatchEngine()
        request = request_data()

        results = engine.find_matches_for_request(request, candidates)

        assert len(results) == len({c.counterparty_id for c in candidates})
        for result in results:
            own = [c for c in candidates if c.counterparty_id == result.counterparty_id]
            best = max(engine.scorer.score(request, c.property).score for c in own)
            assert result.score == best
        assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)
