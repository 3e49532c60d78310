"""
Tests for counterparty trust classification.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from hypothesis import given, settings, strategies as st

from rentmatch.core.exceptions import TrustClassifierError
from rentmatch.repositories.counterparty import CounterpartyRepository
from rentmatch.services.matching.trust import (
    DatabaseTrustClassifier,
    HttpTrustClassifier,
    MemberProfile,
    TrustTierEnum,
    assess_trust_safely,
    classify_trust,
)


NOW = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)


def member(
    reviews: int,
    rating: str,
    *,
    suspended: bool = False,
    last_active_at: datetime | None = NOW,
) -> MemberProfile:
    return MemberProfile(
        average_rating=Decimal(rating),
        review_count=reviews,
        last_active_at=last_active_at,
        is_suspended=suspended,
    )


member_strategy = st.builds(
    member,
    reviews=st.integers(min_value=0, max_value=100),
    rating=st.sampled_from(["0", "2.5", "3.5", "4.2", "4.8", "5"]),
    suspended=st.booleans(),
    last_active_at=st.sampled_from([None, NOW, NOW - timedelta(days=400)]),
)


class TestClassifyTrust:

    @pytest.mark.parametrize(
        "reviews, rating, expected",
        [
            (25, "4.9", TrustTierEnum.EXCELLENT),
            (25, "4.7", TrustTierEnum.TRUSTED),
            (10, "4.2", TrustTierEnum.TRUSTED),
            (9, "5.0", TrustTierEnum.RELIABLE),
            (3, "3.5", TrustTierEnum.RELIABLE),
            (3, "3.4", TrustTierEnum.NEW),
            (2, "5.0", TrustTierEnum.NEW),
        ],
    )
    def test_tiers(self, reviews, rating, expected) -> None:
        assessment = classify_trust([member(reviews, rating)], now=NOW)
        assert assessment.tier == expected

    def test_no_reviews_is_new_and_reports_declared_rating(self) -> None:
        assessment = classify_trust([member(0, "5.0"), member(0, "3.0")], now=NOW)

        assert assessment.tier == TrustTierEnum.NEW
        assert assessment.review_count == 0
        assert assessment.average_rating == Decimal("5.0")

    def test_no_members(self) -> None:
        assessment = classify_trust([], now=NOW)

        assert assessment.tier == TrustTierEnum.NEW
        assert assessment.average_rating == Decimal("0")

    def test_rating_is_weighted_by_review_count(self) -> None:
        assessment = classify_trust([member(10, "5.0"), member(30, "4.0")], now=NOW)

        assert assessment.review_count == 40
        assert assessment.average_rating == Decimal("4.25")
        assert assessment.tier == TrustTierEnum.TRUSTED

    def test_suspended_member_blocks_excellent(self) -> None:
        assessment = classify_trust(
            [member(30, "4.9"), member(1, "4.9", suspended=True)],
            now=NOW,
        )

        assert assessment.tier == TrustTierEnum.TRUSTED
        assert assessment.is_suspended is True
        assert "Suspended member" in assessment.reasons

    def test_inactivity_drops_one_tier(self) -> None:
        stale = NOW - timedelta(days=181)
        assessment = classify_trust([member(12, "4.5", last_active_at=stale)], now=NOW)

        assert assessment.tier == TrustTierEnum.RELIABLE
        assert any(r.startswith("Inactive since") for r in assessment.reasons)

    def test_most_recent_member_activity_counts(self) -> None:
        stale = NOW - timedelta(days=400)
        assessment = classify_trust(
            [member(12, "4.5", last_active_at=stale), member(0, "0", last_active_at=NOW)],
            now=NOW,
        )

        assert assessment.tier == TrustTierEnum.TRUSTED

    def test_naive_activity_timestamps_are_utc(self) -> None:
        stale = (NOW - timedelta(days=200)).replace(tzinfo=None)
        assessment = classify_trust([member(12, "4.5", last_active_at=stale)], now=NOW)

        assert assessment.tier == TrustTierEnum.RELIABLE

    @settings(max_examples=100)
    @given(members=st.lists(member_strategy, max_size=4))
    def test_review_count_is_summed(self, members: list[MemberProfile]) -> None:
        assessment = classify_trust(members, now=NOW)

        assert assessment.review_count == sum(m.review_count for m in members)
        assert assessment.is_suspended == any(m.is_suspended for m in members)
        if assessment.review_count == 0:
            assert assessment.tier == TrustTierEnum.NEW


class TestDatabaseTrustClassifier:

    async def test_classifies_from_stored_members(self, db_session, make_counterparty) -> None:
        counterparty = await make_counterparty(review_count=30, average_rating=Decimal("4.90"))
        classifier = DatabaseTrustClassifier(CounterpartyRepository(db_session))

        assessment = await classifier.get_trust_tier(counterparty.id)

        assert assessment.tier == TrustTierEnum.EXCELLENT
        assert assessment.review_count == 30

    async def test_unknown_counterparty_is_new(self, db_session) -> None:
        classifier = DatabaseTrustClassifier(CounterpartyRepository(db_session))

        assessment = await classifier.get_trust_tier(uuid.uuid4())

        assert assessment.tier == TrustTierEnum.NEW


def _http_classifier(handler) -> HttpTrustClassifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTrustClassifier("http://trust.local/", client=client)


class TestHttpTrustClassifier:

    async def test_parses_assessment(self) -> None:
        counterparty_id = uuid.uuid4()
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={
                "tier": "Excellent",
                "is_suspended": False,
                "review_count": 41,
                "average_rating": 4.9,
            })

        classifier = _http_classifier(handler)
        assessment = await classifier.get_trust_tier(counterparty_id)
        await classifier.close()

        assert seen == [f"http://trust.local/counterparties/{counterparty_id}/trust"]
        assert assessment.tier == TrustTierEnum.EXCELLENT
        assert assessment.review_count == 41
        assert assessment.average_rating == Decimal("4.9")

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503, json={"detail": "down"}),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"tier": "platinum"}),
            httpx.Response(200, json={"is_suspended": True}),
        ],
    )
    async def test_failures_raise_classifier_error(self, response) -> None:
        classifier = _http_classifier(lambda request: response)

        with pytest.raises(TrustClassifierError):
            await classifier.get_trust_tier(uuid.uuid4())

    async def test_transport_error_raises_classifier_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        classifier = _http_classifier(handler)

        with pytest.raises(TrustClassifierError):
            await classifier.get_trust_tier(uuid.uuid4())


class TestAssessTrustSafely:

    async def test_returns_assessment(self, trust_classifier) -> None:
        assessment = await assess_trust_safely(trust_classifier, uuid.uuid4())
        assert assessment.tier == TrustTierEnum.TRUSTED

    async def test_failure_degrades_to_none(self, failing_trust_classifier) -> None:
        assert await assess_trust_safely(failing_trust_classifier, uuid.uuid4()) is None

    async def test_missing_classifier(self) -> None:
        assert await assess_trust_safely(None, uuid.uuid4()) is None
