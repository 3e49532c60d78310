import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.core.config import Settings, get_settings
from rentmatch.core.database import utcnow
from rentmatch.core.exceptions import MatchNotFoundError, RequestNotFoundError
from rentmatch.models.match import Match, MatchStatusEnum
from rentmatch.models.pool_analytics import PoolAnalytics
from rentmatch.models.rental_request import PoolStatusEnum
from rentmatch.repositories.counterparty import CounterpartyRepository
from rentmatch.repositories.match import MatchRepository, UpsertResult
from rentmatch.repositories.pool_analytics import PoolAnalyticsRepository
from rentmatch.repositories.property import PropertyRepository
from rentmatch.repositories.rental_request import RentalRequestRepository
from rentmatch.services.matching.engine import MatchEngine, MatchResult
from rentmatch.services.matching.scorer import MatchScorer, RequestData
from rentmatch.services.matching.selector import CandidateSelector
from rentmatch.services.matching.trust import (
    DatabaseTrustClassifier,
    TrustAssessment,
    TrustClassifier,
    assess_trust_safely,
)
from rentmatch.services.notification import (
    LoggingNotificationDispatcher,
    MatchNotification,
    NotificationDispatcher,
)
from rentmatch.services.pool import compute_pool_expiry

logger = logging.getLogger(__name__)


@dataclass
class RecomputeSummary:
    rental_request_id: uuid.UUID
    candidates: int = 0
    active_matches: int = 0
    below_threshold: int = 0
    downgraded: int = 0
    failed: int = 0
    notified: int = 0

    def to_dict(self) -> dict:
        return {
            "rental_request_id": str(self.rental_request_id),
            "candidates": self.candidates,
            "active_matches": self.active_matches,
            "below_threshold": self.below_threshold,
            "downgraded": self.downgraded,
            "failed": self.failed,
            "notified": self.notified,
        }


@dataclass
class PoolStats:
    active_requests: int
    listing_counterparties: int
    recent_matches: int
    locations: Sequence[PoolAnalytics] = ()
    timestamp: datetime = field(default_factory=utcnow)


class MatchService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Optional[Settings] = None,
        trust_classifier: Optional[TrustClassifier] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.match_repository = MatchRepository(session)
        self.rental_request_repository = RentalRequestRepository(session)
        self.property_repository = PropertyRepository(session)
        self.counterparty_repository = CounterpartyRepository(session)
        self.pool_analytics_repository = PoolAnalyticsRepository(session)
        self.selector = CandidateSelector.from_settings(self.property_repository, self.settings)
        self.match_engine = MatchEngine(MatchScorer.from_settings(self.settings))
        self.trust_classifier = trust_classifier or DatabaseTrustClassifier(
            self.counterparty_repository,
            inactivity_days=self.settings.trust_inactivity_days,
        )
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()

    async def add_to_pool(
        self,
        rental_request_id: uuid.UUID,
        *,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Put a rental request into the pool and match it right away.

        A request re-entering the pool gets a fresh expiry; an ACTIVE request
        keeps the one it has.

        Returns:
            Number of ACTIVE matches after the scan
        """
        now = now or utcnow()
        request = await self.rental_request_repository.get(rental_request_id)
        if request is None:
            raise RequestNotFoundError(rental_request_id)

        if request.pool_status != PoolStatusEnum.ACTIVE or request.expires_at is None:
            request.pool_status = PoolStatusEnum.ACTIVE
            request.expires_at = compute_pool_expiry(
                request.move_in_date,
                now,
                lead_days=self.settings.pool_expiry_lead_days,
                min_ttl_hours=self.settings.pool_min_ttl_hours,
            )
            await self.pool_analytics_repository.refresh(request.city_token, now.date())
            await self.session.commit()
            logger.info(f"Rental request {request.id} added to pool until {request.expires_at.isoformat()}")

        summary = await self.recompute_for_request(request.id)
        return summary.active_matches

    async def _assess_counterparties(
        self,
        counterparty_ids: Sequence[uuid.UUID],
    ) -> dict[uuid.UUID, Optional[TrustAssessment]]:
        trust: dict[uuid.UUID, Optional[TrustAssessment]] = {}
        for counterparty_id in counterparty_ids:
            if counterparty_id not in trust:
                trust[counterparty_id] = await assess_trust_safely(
                    self.trust_classifier,
                    counterparty_id,
                )
        return trust

    def _should_notify(self, upsert: UpsertResult, result: MatchResult) -> bool:
        match = upsert.match
        if match is None or match.status != MatchStatusEnum.ACTIVE:
            return False
        # A concurrent newer write won; leave notifying to it
        if match.score != result.score:
            return False
        if upsert.created or upsert.previous_status != MatchStatusEnum.ACTIVE:
            return True
        if upsert.previous_score is None:
            return True
        return match.score - upsert.previous_score >= self.settings.notification_score_delta

    async def _discard_inactive(
        self,
        summary: RecomputeSummary,
        pool_status: Optional[PoolStatusEnum],
    ) -> RecomputeSummary:
        deleted = await self.match_repository.delete_for_request(summary.rental_request_id)
        await self.session.commit()
        logger.info(
            f"Rental request {summary.rental_request_id} is "
            f"{pool_status.value if pool_status else 'gone'}, "
            f"removed {deleted} matches instead of re-scanning"
        )
        return summary

    async def recompute_for_request(self, rental_request_id: uuid.UUID) -> RecomputeSummary:
        """
        Re-run selection and scoring for one request and reconcile its matches.

        Every scored counterparty is upserted, as ACTIVE when it clears the
        threshold and BELOW_THRESHOLD otherwise. ACTIVE matches whose
        counterparty is no longer a candidate are downgraded. Notifications
        for new and improved matches are dispatched after the commit.

        The pool status is read again under a row lock before anything is
        written; a request that left the pool meanwhile only loses its
        matches. Each pair is written in its own savepoint, and a pair that
        fails is logged and skipped with its stored row left as it was.

        Args:
            rental_request_id: Request to re-scan

        Returns:
            RecomputeSummary

        Raises:
            RequestNotFoundError: Unknown request
        """
        request = await self.rental_request_repository.get(rental_request_id)
        if request is None:
            raise RequestNotFoundError(rental_request_id)

        summary = RecomputeSummary(rental_request_id=request.id)

        if request.pool_status != PoolStatusEnum.ACTIVE:
            return await self._discard_inactive(summary, request.pool_status)

        request_data = RequestData.from_model(request)
        candidates = await self.selector.select_candidates(request_data)
        summary.candidates = len(candidates)

        trust = await self._assess_counterparties([c.counterparty_id for c in candidates])
        results = self.match_engine.find_matches_for_request(request_data, candidates, trust)

        pool_status = await self.rental_request_repository.get_pool_status(
            request_data.id,
            for_update=True,
        )
        if pool_status != PoolStatusEnum.ACTIVE:
            return await self._discard_inactive(summary, pool_status)

        now = utcnow()
        kept: set[uuid.UUID] = set()
        notifications: list[MatchNotification] = []

        for result in results:
            status = MatchStatusEnum.ACTIVE if result.is_valid else MatchStatusEnum.BELOW_THRESHOLD

            try:
                async with self.session.begin_nested():
                    upsert = await self.match_repository.upsert_match(
                        rental_request_id=request_data.id,
                        counterparty_id=result.counterparty_id,
                        score=result.score,
                        reason=result.reason,
                        property_id=result.property_id,
                        status=status,
                        now=now,
                    )
            except SQLAlchemyError as e:
                summary.failed += 1
                kept.add(result.counterparty_id)
                logger.warning(
                    f"Skipping match of rental request {request_data.id} with counterparty "
                    f"{result.counterparty_id}: {e}"
                )
                continue

            if result.is_valid:
                kept.add(result.counterparty_id)
                summary.active_matches += 1
            else:
                summary.below_threshold += 1

            if self._should_notify(upsert, result):
                notifications.append(MatchNotification(
                    match_id=upsert.match.id,
                    rental_request_id=request_data.id,
                    counterparty_id=result.counterparty_id,
                    property_id=result.property_id,
                    score=upsert.match.score,
                    reason=upsert.match.reason,
                    previous_score=(
                        upsert.previous_score
                        if upsert.previous_status == MatchStatusEnum.ACTIVE
                        else None
                    ),
                ))

        summary.downgraded = await self.match_repository.downgrade_missing(request_data.id, kept)
        await self.session.commit()

        summary.notified = await self._dispatch(request_data.id, notifications)

        logger.info(
            f"Rental request {request_data.id}: {summary.candidates} candidates, "
            f"{summary.active_matches} active, {summary.below_threshold} below threshold, "
            f"{summary.downgraded} downgraded, {summary.failed} failed, "
            f"{summary.notified} notified"
        )
        return summary

    async def _dispatch(
        self,
        rental_request_id: uuid.UUID,
        notifications: list[MatchNotification],
    ) -> int:
        if not notifications:
            return 0

        pool_status = await self.rental_request_repository.get_pool_status(rental_request_id)
        if pool_status != PoolStatusEnum.ACTIVE:
            logger.info(
                f"Rental request {rental_request_id} left the pool, "
                f"dropping {len(notifications)} notifications"
            )
            return 0

        try:
            accepted = await self.dispatcher.dispatch(notifications)
        except Exception as e:
            logger.warning(f"Notification dispatch failed for {len(notifications)} matches: {e}")
            return 0

        if accepted:
            await self.match_repository.mark_notified(accepted)
            await self.session.commit()

        return len(accepted)

    async def get_matches_for_counterparty(
        self,
        counterparty_id: uuid.UUID,
        *,
        skip: int = 0,
        limit: int = 50,
    ) -> Sequence[Match]:

        return await self.match_repository.get_matches_for_counterparty(
            counterparty_id,
            skip=skip,
            limit=limit,
        )

    async def count_matches_for_counterparty(self, counterparty_id: uuid.UUID) -> int:

        return await self.match_repository.count_matches_for_counterparty(counterparty_id)

    async def mark_viewed(
        self,
        counterparty_id: uuid.UUID,
        match_id: uuid.UUID,
    ) -> Match:
        """
        Record that a counterparty opened a match.

        The first view also counts towards the request's view counter.

        Raises:
            MatchNotFoundError: Unknown match or a match of another counterparty
        """
        match = await self.match_repository.get(match_id)
        if match is None or match.counterparty_id != counterparty_id:
            raise MatchNotFoundError(match_id)

        match, first_view = await self.match_repository.mark_viewed(match_id)
        if first_view:
            await self.rental_request_repository.increment_view_count(match.rental_request_id)

        await self.session.commit()
        return match

    async def get_pool_stats(self, *, now: Optional[datetime] = None) -> PoolStats:
        """Global pool counters plus today's per-location analytics."""
        now = now or utcnow()

        return PoolStats(
            active_requests=await self.rental_request_repository.count_active(),
            listing_counterparties=await self.property_repository.count_listing_counterparties(),
            recent_matches=await self.match_repository.count_recent(
                hours=self.settings.recent_matches_hours
            ),
            locations=await self.pool_analytics_repository.get_for_day(now.date()),
            timestamp=now,
        )
