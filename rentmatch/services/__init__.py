from rentmatch.services.match import MatchService, PoolStats, RecomputeSummary
from rentmatch.services.notification import (
    ArqNotificationDispatcher,
    LoggingNotificationDispatcher,
    MatchNotification,
    NotificationDispatcher,
)
from rentmatch.services.pool import PoolLifecycleManager, SweepResult, compute_pool_expiry
from rentmatch.services.queue import ArqRecomputeQueue, RecomputeQueue

__all__ = [
    "MatchService",
    "PoolStats",
    "RecomputeSummary",
    "ArqNotificationDispatcher",
    "LoggingNotificationDispatcher",
    "MatchNotification",
    "NotificationDispatcher",
    "PoolLifecycleManager",
    "SweepResult",
    "compute_pool_expiry",
    "ArqRecomputeQueue",
    "RecomputeQueue",
]
