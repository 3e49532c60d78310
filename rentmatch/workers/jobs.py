import logging
from typing import Any
from uuid import UUID

from arq import ArqRedis
from sqlalchemy.ext.asyncio import AsyncSession

from rentmatch.core.config import get_settings
from rentmatch.core.exceptions import PropertyNotFoundError, RequestNotFoundError
from rentmatch.services.match import MatchService
from rentmatch.services.notification import (
    ArqNotificationDispatcher,
    LoggingNotificationDispatcher,
    MatchNotification,
    WebhookNotificationSender,
)
from rentmatch.services.pool import PoolLifecycleManager
from rentmatch.services.queue import ArqRecomputeQueue

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _build_match_service(ctx: dict[str, Any], db: AsyncSession) -> MatchService:
    redis: ArqRedis = ctx.get("redis")
    dispatcher = ArqNotificationDispatcher(redis) if redis else LoggingNotificationDispatcher()

    return MatchService(
        db,
        trust_classifier=ctx.get("trust_classifier"),
        dispatcher=dispatcher,
    )


def _build_pool_manager(ctx: dict[str, Any], db: AsyncSession) -> PoolLifecycleManager:
    redis: ArqRedis = ctx.get("redis")
    queue = ArqRecomputeQueue(redis) if redis else None

    return PoolLifecycleManager(db, _build_match_service(ctx, db), recompute_queue=queue)


async def recompute_request(
    ctx: dict[str, Any],
    rental_request_id: str,
) -> dict[str, Any]:
    logger.info(f"Recomputing matches for rental request: {rental_request_id}")

    session_factory = ctx.get("session_factory")
    if not session_factory:
        logger.error("No session factory in context")
        return {"rental_request_id": rental_request_id, "error": "No DB session"}

    async with session_factory() as db:
        try:
            summary = await _build_match_service(ctx, db).recompute_for_request(UUID(rental_request_id))
            return summary.to_dict()

        except RequestNotFoundError as e:
            logger.warning(f"Skipping recompute: {e}")
            return {"rental_request_id": rental_request_id, "error": "Request not found"}

        except Exception as e:
            await db.rollback()
            logger.exception(f"Error recomputing rental request {rental_request_id}: {e}")
            return {"rental_request_id": rental_request_id, "error": str(e)}


async def recompute_for_property(
    ctx: dict[str, Any],
    property_id: str,
    counterparty_id: str | None = None,
) -> dict[str, Any]:
    logger.info(f"Property changed: {property_id}")

    session_factory = ctx.get("session_factory")
    if not session_factory:
        logger.error("No session factory in context")
        return {"property_id": property_id, "queued": 0, "error": "No DB session"}

    async with session_factory() as db:
        try:
            queued = await _build_pool_manager(ctx, db).on_property_changed(
                UUID(property_id),
                UUID(counterparty_id) if counterparty_id else None,
            )
            return {"property_id": property_id, "queued": queued}

        except PropertyNotFoundError as e:
            logger.warning(f"Skipping property change: {e}")
            return {"property_id": property_id, "queued": 0, "error": "Property not found"}

        except Exception as e:
            logger.exception(f"Error handling property change {property_id}: {e}")
            return {"property_id": property_id, "queued": 0, "error": str(e)}


async def recompute_for_counterparty(
    ctx: dict[str, Any],
    counterparty_id: str,
) -> dict[str, Any]:
    logger.info(f"Trust changed for counterparty: {counterparty_id}")

    session_factory = ctx.get("session_factory")
    if not session_factory:
        logger.error("No session factory in context")
        return {"counterparty_id": counterparty_id, "queued": 0, "error": "No DB session"}

    async with session_factory() as db:
        try:
            queued = await _build_pool_manager(ctx, db).on_trust_changed(UUID(counterparty_id))
            return {"counterparty_id": counterparty_id, "queued": queued}

        except Exception as e:
            logger.exception(f"Error handling trust change for {counterparty_id}: {e}")
            return {"counterparty_id": counterparty_id, "queued": 0, "error": str(e)}


async def sweep_expired_requests(ctx: dict[str, Any]) -> dict[str, Any]:
    logger.info("Sweeping expired rental requests")

    session_factory = ctx.get("session_factory")
    if not session_factory:
        logger.error("No session factory in context")
        return {"processed": 0, "failed": 0, "error": "No DB session"}

    async with session_factory() as db:
        try:
            result = await _build_pool_manager(ctx, db).sweep_expired()
            return result.to_dict()

        except Exception as e:
            logger.exception(f"Error sweeping expired requests: {e}")
            return {"processed": 0, "failed": 0, "error": str(e)}


async def send_match_notification(
    ctx: dict[str, Any],
    payload: dict[str, Any],
) -> dict[str, Any]:
    match_id = payload.get("match_id")
    logger.info(f"Sending match notification: match={match_id}")

    try:
        notification = MatchNotification.from_payload(payload)
    except (KeyError, ValueError, TypeError) as e:
        logger.error(f"Malformed notification payload for match {match_id}: {e}")
        return {"match_id": match_id, "sent": False, "error": "Malformed payload"}

    sender: WebhookNotificationSender = ctx.get("webhook_sender")
    if sender is None:
        logger.info(
            f"No notification webhook configured, match {notification.match_id} "
            f"(score {notification.score}) for counterparty {notification.counterparty_id} not delivered"
        )
        return {"match_id": match_id, "sent": False, "error": "No webhook configured"}

    sent = await sender.send(notification)
    return {"match_id": match_id, "sent": sent}


async def startup(ctx: dict[str, Any]) -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logger.info("Worker starting up...")

    from rentmatch.core.database import async_session_factory
    from rentmatch.services.matching.trust import HttpTrustClassifier

    ctx["session_factory"] = async_session_factory

    ctx["trust_classifier"] = None
    if settings.trust_service_url:
        ctx["trust_classifier"] = HttpTrustClassifier(
            settings.trust_service_url,
            timeout=settings.trust_service_timeout_seconds,
        )

    ctx["webhook_sender"] = None
    if settings.notification_webhook_url:
        ctx["webhook_sender"] = WebhookNotificationSender(
            settings.notification_webhook_url,
            timeout=settings.notification_webhook_timeout_seconds,
        )

    logger.info("Worker started")


async def shutdown(ctx: dict[str, Any]) -> None:
    logger.info("Worker shutting down...")

    if ctx.get("trust_classifier"):
        await ctx["trust_classifier"].close()

    if ctx.get("webhook_sender"):
        await ctx["webhook_sender"].close()

    logger.info("Worker stopped")
