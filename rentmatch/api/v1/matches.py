from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from rentmatch.api.deps import MatchServiceDep
from rentmatch.api.responses import create_success_response
from rentmatch.schemas.common import PaginationMeta, PaginationParams
from rentmatch.schemas.match import MatchFeedItem, MatchResponse

router = APIRouter(prefix="/counterparties", tags=["Matches"])

def get_pagination_params(
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
) -> PaginationParams:
    """Dependency for pagination parameters."""
    return PaginationParams(page=page, page_size=page_size)

@router.get("/{counterparty_id}/matches")
async def list_counterparty_matches(
    counterparty_id: UUID,
    match_service: MatchServiceDep,
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
) -> dict:
    """
    Landlord feed: ACTIVE matches of requests still in the pool, best first.
    """
    matches = await match_service.get_matches_for_counterparty(
        counterparty_id,
        skip=pagination.offset,
        limit=pagination.page_size,
    )
    total_items = await match_service.count_matches_for_counterparty(counterparty_id)

    items = [MatchFeedItem.model_validate(m).model_dump(mode="json") for m in matches]

    return create_success_response(
        data=items,
        pagination=PaginationMeta.build(pagination, total_items).model_dump(),
    )

@router.post("/{counterparty_id}/matches/{match_id}/viewed")
async def mark_match_viewed(
    counterparty_id: UUID,
    match_id: UUID,
    match_service: MatchServiceDep,
) -> dict:

    match = await match_service.mark_viewed(counterparty_id, match_id)
    return create_success_response(data=MatchResponse.model_validate(match).model_dump(mode="json"))
