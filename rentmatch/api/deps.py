from collections.abc import AsyncGenerator
from typing import Annotated, Optional

from fastapi import Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.core.config import Settings, get_settings
from rentmatch.core.database import async_session_factory
from rentmatch.services.match import MatchService
from rentmatch.services.matching.trust import TrustClassifier
from rentmatch.services.notification import (
    ArqNotificationDispatcher,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from rentmatch.services.pool import PoolLifecycleManager
from rentmatch.services.queue import ArqRecomputeQueue, RecomputeQueue

limiter = Limiter(key_func=get_remote_address)

async def get_db() -> AsyncGenerator[AsyncSession, None]:

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

DBSession = Annotated[AsyncSession, Depends(get_db)]

def get_app_settings() -> Settings:

    return get_settings()

def get_dispatcher(request: Request) -> NotificationDispatcher:

    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        return LoggingNotificationDispatcher()
    return ArqNotificationDispatcher(redis)

def get_recompute_queue(request: Request) -> Optional[RecomputeQueue]:

    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        return None
    return ArqRecomputeQueue(redis)

def get_trust_classifier(request: Request) -> Optional[TrustClassifier]:
    """Remote classifier when configured; None falls back to member profiles."""
    return getattr(request.app.state, "trust_classifier", None)

def get_match_service(
    db: DBSession,
    settings: Annotated[Settings, Depends(get_app_settings)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
    trust_classifier: Annotated[Optional[TrustClassifier], Depends(get_trust_classifier)],
) -> MatchService:

    return MatchService(
        db,
        settings=settings,
        trust_classifier=trust_classifier,
        dispatcher=dispatcher,
    )

MatchServiceDep = Annotated[MatchService, Depends(get_match_service)]

def get_pool_manager(
    db: DBSession,
    match_service: MatchServiceDep,
    settings: Annotated[Settings, Depends(get_app_settings)],
    recompute_queue: Annotated[Optional[RecomputeQueue], Depends(get_recompute_queue)],
) -> PoolLifecycleManager:

    return PoolLifecycleManager(
        db,
        match_service,
        recompute_queue=recompute_queue,
        settings=settings,
    )

PoolManagerDep = Annotated[PoolLifecycleManager, Depends(get_pool_manager)]
