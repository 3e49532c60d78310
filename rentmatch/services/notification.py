import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

import httpx
from arq import ArqRedis

logger = logging.getLogger(__name__)

SEND_MATCH_NOTIFICATION_JOB = "send_match_notification"

@dataclass
class MatchNotification:
    """A new or improved match handed to the outside world."""

    match_id: uuid.UUID
    rental_request_id: uuid.UUID
    counterparty_id: uuid.UUID
    property_id: Optional[uuid.UUID]
    score: int
    reason: str
    previous_score: Optional[int] = None

    @property
    def is_improvement(self) -> bool:
        return self.previous_score is not None

    def to_payload(self) -> dict[str, Any]:

        return {
            "match_id": str(self.match_id),
            "rental_request_id": str(self.rental_request_id),
            "counterparty_id": str(self.counterparty_id),
            "property_id": str(self.property_id) if self.property_id else None,
            "score": self.score,
            "reason": self.reason,
            "previous_score": self.previous_score,
            "is_improvement": self.is_improvement,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MatchNotification":

        property_id = payload.get("property_id")
        return cls(
            match_id=uuid.UUID(payload["match_id"]),
            rental_request_id=uuid.UUID(payload["rental_request_id"]),
            counterparty_id=uuid.UUID(payload["counterparty_id"]),
            property_id=uuid.UUID(property_id) if property_id else None,
            score=int(payload["score"]),
            reason=payload.get("reason", ""),
            previous_score=payload.get("previous_score"),
        )


class NotificationDispatcher(Protocol):

    async def dispatch(self, notifications: Sequence[MatchNotification]) -> list[uuid.UUID]:
        """Hand notifications over for delivery, returning the match ids accepted."""
        ...


class LoggingNotificationDispatcher:
    """Dispatcher for environments without a job queue: records to the log only."""

    async def dispatch(self, notifications: Sequence[MatchNotification]) -> list[uuid.UUID]:

        for notification in notifications:
            kind = "Improved" if notification.is_improvement else "New"
            logger.info(
                f"{kind} match {notification.match_id} for counterparty "
                f"{notification.counterparty_id}: score {notification.score}"
            )
        return [n.match_id for n in notifications]


class ArqNotificationDispatcher:
    """Queues one ``send_match_notification`` job per notification."""

    def __init__(self, redis: ArqRedis):

        self.redis = redis

    async def dispatch(self, notifications: Sequence[MatchNotification]) -> list[uuid.UUID]:

        accepted: list[uuid.UUID] = []

        for notification in notifications:
            try:
                await self.redis.enqueue_job(
                    SEND_MATCH_NOTIFICATION_JOB,
                    notification.to_payload(),
                    _job_id=f"notify:{notification.match_id}:{notification.score}",
                )
            except Exception as e:
                logger.warning(f"Could not queue notification for match {notification.match_id}: {e}")
                continue
            accepted.append(notification.match_id)

        return accepted


class WebhookNotificationSender:
    """Delivers a notification payload to an HTTP endpoint owned by the messaging service."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, notification: MatchNotification) -> bool:

        try:
            response = await self.client.post(self.url, json=notification.to_payload())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Webhook delivery failed for match {notification.match_id}: {e}")
            return False

        return True

    async def close(self) -> None:
        await self.client.aclose()
