import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.core.config import Settings, get_settings
from rentmatch.core.database import utcnow
from rentmatch.core.exceptions import (
    PoolTransitionError,
    PropertyNotFoundError,
    RequestNotFoundError,
)
from rentmatch.models.rental_request import PoolStatusEnum, RentalRequest
from rentmatch.repositories.match import MatchRepository
from rentmatch.repositories.pool_analytics import PoolAnalyticsRepository
from rentmatch.repositories.property import PropertyRepository
from rentmatch.repositories.rental_request import RentalRequestRepository
from rentmatch.services.matching.scorer import PropertyData, RequestData
from rentmatch.services.matching.selector import passes_prefilter
from rentmatch.services.queue import RecomputeQueue

if TYPE_CHECKING:
    from rentmatch.services.match import MatchService, RecomputeSummary

logger = logging.getLogger(__name__)


def compute_pool_expiry(
    move_in_date: date,
    now: datetime,
    lead_days: int = 3,
    min_ttl_hours: int = 24,
) -> datetime:
    """
    Expiry of a request entering the pool.

    A request leaves the pool ``lead_days`` before its move-in date, but never
    sooner than ``min_ttl_hours`` from now.
    """
    before_move_in = datetime.combine(
        move_in_date - timedelta(days=lead_days),
        time.min,
        tzinfo=timezone.utc,
    )
    return max(before_move_in, now + timedelta(hours=min_ttl_hours))

@dataclass
class SweepResult:

    processed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"processed": self.processed, "failed": self.failed}

class PoolLifecycleManager:
    """
    Owns pool status transitions of rental requests.

    Every transition out of ACTIVE removes the request's matches in the same
    transaction. Change events either re-scan synchronously (request edits)
    or queue re-scans for the affected requests only.
    """

    def __init__(
        self,
        session: AsyncSession,
        match_service: "MatchService",
        recompute_queue: Optional[RecomputeQueue] = None,
        settings: Optional[Settings] = None,
    ):

        self.session = session
        self.match_service = match_service
        self.recompute_queue = recompute_queue
        self.settings = settings or get_settings()
        self.rental_request_repository = RentalRequestRepository(session)
        self.property_repository = PropertyRepository(session)
        self.match_repository = MatchRepository(session)
        self.pool_analytics_repository = PoolAnalyticsRepository(session)

    async def _get_request(self, rental_request_id: uuid.UUID) -> RentalRequest:
        request = await self.rental_request_repository.get(rental_request_id)
        if request is None:
            raise RequestNotFoundError(rental_request_id)
        return request

    async def activate(self, rental_request_id: uuid.UUID) -> int:
        """Put a request into the pool and match it. Returns the ACTIVE match count."""
        return await self.match_service.add_to_pool(rental_request_id)

    async def _leave_pool(
        self,
        rental_request_id: uuid.UUID,
        target: PoolStatusEnum,
    ) -> int:
        request = await self._get_request(rental_request_id)

        if request.pool_status == target:
            # Already there; make sure nothing lingers
            deleted = await self.match_repository.delete_for_request(request.id)
            await self.session.commit()
            return deleted

        if request.pool_status != PoolStatusEnum.ACTIVE:
            raise PoolTransitionError(
                request.id,
                request.pool_status.value,
                target.value,
            )

        request.pool_status = target
        deleted = await self.match_repository.delete_for_request(request.id)
        await self.pool_analytics_repository.refresh(request.city_token)
        await self.session.commit()

        logger.info(
            f"Rental request {request.id} left the pool as {target.value}, "
            f"{deleted} matches removed"
        )
        return deleted

    async def mark_matched(self, rental_request_id: uuid.UUID) -> int:
        """
        ACTIVE -> MATCHED after the tenant accepted an offer.

        Returns:
            Number of matches removed

        Raises:
            RequestNotFoundError: Unknown request
            PoolTransitionError: Request already EXPIRED
        """
        return await self._leave_pool(rental_request_id, PoolStatusEnum.MATCHED)

    async def expire(self, rental_request_id: uuid.UUID) -> int:
        """
        ACTIVE -> EXPIRED.

        Returns:
            Number of matches removed

        Raises:
            RequestNotFoundError: Unknown request
            PoolTransitionError: Request already MATCHED
        """
        return await self._leave_pool(rental_request_id, PoolStatusEnum.EXPIRED)

    async def sweep_expired(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Expire ACTIVE requests past their expiry or move-in date.

        Each request is expired in its own transaction, together with the
        refresh of its location analytics; a failure is logged and the sweep
        moves on. Interrupting the sweep leaves every request either
        untouched or fully expired.
        """
        now = now or utcnow()
        result = SweepResult()

        due_ids = await self.rental_request_repository.get_due_for_expiry_ids(
            now,
            limit=self.settings.sweep_batch_size,
        )

        for rental_request_id in due_ids:
            try:
                await self.expire(rental_request_id)
                result.processed += 1
            except Exception as e:
                await self.session.rollback()
                result.failed += 1
                logger.exception(f"Failed to expire rental request {rental_request_id}: {e}")

        if due_ids:
            logger.info(f"Expiry sweep: {result.processed} expired, {result.failed} failed")
        return result

    async def on_request_changed(self, rental_request_id: uuid.UUID) -> Optional["RecomputeSummary"]:
        """Re-scan an edited request right away."""
        request = await self._get_request(rental_request_id)

        if request.pool_status != PoolStatusEnum.ACTIVE:
            await self.match_repository.delete_for_request(request.id)
            await self.session.commit()
            return None

        return await self.match_service.recompute_for_request(request.id)

    async def _enqueue(self, rental_request_ids: list[uuid.UUID]) -> int:
        if self.recompute_queue is None:
            logger.warning(f"No recompute queue configured, dropping {len(rental_request_ids)} re-scans")
            return 0

        queued = 0
        for rental_request_id in rental_request_ids:
            if await self.recompute_queue.enqueue_recompute(rental_request_id):
                queued += 1
        return queued

    async def affected_by_property(
        self,
        property_id: uuid.UUID,
        counterparty_id: Optional[uuid.UUID] = None,
    ) -> list[uuid.UUID]:
        """
        ACTIVE requests a property change can affect.

        Those already holding a match with the property's counterparty, plus
        those whose pre-filter admits the property as it is now. A deleted
        property affects the requests of ``counterparty_id`` whose match lost
        its property.

        Raises:
            PropertyNotFoundError: Unknown property and no counterparty given
        """
        prop = await self.property_repository.get(property_id)
        if prop is None:
            if counterparty_id is None:
                raise PropertyNotFoundError(property_id)

            logger.info(f"Property {property_id} is gone, re-scanning matches of counterparty {counterparty_id}")
            return await self.rental_request_repository.get_active_ids_matched_to_counterparty(
                counterparty_id,
                without_property=True,
            )

        affected = set(
            await self.rental_request_repository.get_active_ids_matched_to_counterparty(
                prop.counterparty_id
            )
        )

        property_data = PropertyData.from_model(prop)
        requests = await self.rental_request_repository.find_active_for_city(prop.city_token)

        for request in requests:
            if request.id in affected:
                continue
            if passes_prefilter(
                RequestData.from_model(request),
                property_data,
                tolerance=self.settings.budget_tolerance,
                grace_days=self.settings.availability_grace_days,
            ):
                affected.add(request.id)

        return sorted(affected, key=str)

    async def on_property_changed(
        self,
        property_id: uuid.UUID,
        counterparty_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Queue re-scans for requests affected by a property change or deletion."""
        affected = await self.affected_by_property(property_id, counterparty_id)
        queued = await self._enqueue(affected)

        logger.info(f"Property {property_id} changed: {queued} of {len(affected)} re-scans queued")
        return queued

    async def on_trust_changed(self, counterparty_id: uuid.UUID) -> int:
        """Queue re-scans for requests holding a match with the counterparty."""
        affected = await self.rental_request_repository.get_active_ids_matched_to_counterparty(
            counterparty_id
        )
        queued = await self._enqueue(affected)

        logger.info(f"Trust of counterparty {counterparty_id} changed: {queued} re-scans queued")
        return queued

