import logging
import uuid
from typing import Protocol

from arq import ArqRedis

logger = logging.getLogger(__name__)

RECOMPUTE_REQUEST_JOB = "recompute_request"


def recompute_job_id(rental_request_id: uuid.UUID) -> str:
    return f"recompute:{rental_request_id}"


class RecomputeQueue(Protocol):

    async def enqueue_recompute(self, rental_request_id: uuid.UUID) -> bool:
        ...


class ArqRecomputeQueue:
    """
    Queues request re-scans on arq.

    Jobs are keyed by request id, so a burst of property events for the same
    request collapses into a single pending re-scan.
    """

    def __init__(self, redis: ArqRedis):

        self.redis = redis

    async def enqueue_recompute(self, rental_request_id: uuid.UUID) -> bool:

        job = await self.redis.enqueue_job(
            RECOMPUTE_REQUEST_JOB,
            str(rental_request_id),
            _job_id=recompute_job_id(rental_request_id),
        )
        if job is None:
            logger.debug(f"Recompute for rental request {rental_request_id} already queued")
            return False
        return True
