from uuid import UUID

from fastapi import APIRouter, Query, Request

from rentmatch.api.deps import DBSession, MatchServiceDep, PoolManagerDep, limiter
from rentmatch.api.responses import create_success_response
from rentmatch.core.exceptions import RequestNotFoundError
from rentmatch.models.rental_request import PoolStatusEnum
from rentmatch.repositories.rental_request import RentalRequestRepository
from rentmatch.schemas.pool import (
    PoolEntryResponse,
    PoolLocationStats,
    PoolStatsResponse,
    PoolTransitionResponse,
    RecomputeQueuedResponse,
)

router = APIRouter(prefix="/pool", tags=["Pool"])

@router.post("/requests/{request_id}")
async def add_request_to_pool(
    request_id: UUID,
    db: DBSession,
    pool_manager: PoolManagerDep,
) -> dict:
    """Add (or re-add) a rental request to the pool and match it."""
    active_matches = await pool_manager.activate(request_id)

    rental_request = await RentalRequestRepository(db).get(request_id)
    if rental_request is None:
        raise RequestNotFoundError(request_id)

    response = PoolEntryResponse(
        rental_request_id=rental_request.id,
        pool_status=rental_request.pool_status,
        expires_at=rental_request.expires_at,
        active_matches=active_matches,
    )
    return create_success_response(data=response.model_dump(mode="json"))

@router.post("/requests/{request_id}/changed")
async def request_changed(
    request_id: UUID,
    pool_manager: PoolManagerDep,
) -> dict:
    """Re-scan an edited rental request."""
    summary = await pool_manager.on_request_changed(request_id)
    return create_success_response(data=summary.to_dict() if summary else None)

@router.post("/requests/{request_id}/accepted")
async def request_accepted(
    request_id: UUID,
    pool_manager: PoolManagerDep,
) -> dict:
    """The tenant accepted an offer: the request leaves the pool as MATCHED."""
    removed = await pool_manager.mark_matched(request_id)

    response = PoolTransitionResponse(
        rental_request_id=request_id,
        pool_status=PoolStatusEnum.MATCHED,
        matches_removed=removed,
    )
    return create_success_response(data=response.model_dump(mode="json"))

@router.post("/requests/{request_id}/expire")
async def expire_request(
    request_id: UUID,
    pool_manager: PoolManagerDep,
) -> dict:

    removed = await pool_manager.expire(request_id)

    response = PoolTransitionResponse(
        rental_request_id=request_id,
        pool_status=PoolStatusEnum.EXPIRED,
        matches_removed=removed,
    )
    return create_success_response(data=response.model_dump(mode="json"))

@router.post("/properties/{property_id}/changed")
async def property_changed(
    property_id: UUID,
    pool_manager: PoolManagerDep,
    counterparty_id: UUID | None = Query(None, description="Owner of a deleted property"),
) -> dict:
    """Queue re-scans for the requests a property change or deletion can affect."""
    queued = await pool_manager.on_property_changed(property_id, counterparty_id)
    return create_success_response(data=RecomputeQueuedResponse(queued=queued).model_dump())

@router.post("/counterparties/{counterparty_id}/trust-changed")
async def trust_changed(
    counterparty_id: UUID,
    pool_manager: PoolManagerDep,
) -> dict:

    queued = await pool_manager.on_trust_changed(counterparty_id)
    return create_success_response(data=RecomputeQueuedResponse(queued=queued).model_dump())

@router.get("/stats")
@limiter.limit("60/minute")
async def pool_stats(
    request: Request,
    match_service: MatchServiceDep,
) -> dict:

    stats = await match_service.get_pool_stats()

    response = PoolStatsResponse(
        active_requests=stats.active_requests,
        listing_counterparties=stats.listing_counterparties,
        recent_matches=stats.recent_matches,
        locations=[PoolLocationStats.model_validate(row) for row in stats.locations],
        timestamp=stats.timestamp,
    )
    return create_success_response(data=response.model_dump(mode="json"))
