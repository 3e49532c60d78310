from arq import cron
from arq.connections import RedisSettings

from rentmatch.core.config import get_settings
from rentmatch.workers.jobs import (
    recompute_request,
    recompute_for_property,
    recompute_for_counterparty,
    sweep_expired_requests,
    send_match_notification,
    startup,
    shutdown,
)

settings = get_settings()


def get_redis_settings() -> RedisSettings:
    return RedisSettings.from_dsn(str(settings.redis_url))


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [
        recompute_request,
        recompute_for_property,
        recompute_for_counterparty,
        sweep_expired_requests,
        send_match_notification,
    ]

    cron_jobs = [
        cron(sweep_expired_requests, minute={0, 15, 30, 45}, run_at_startup=True),
    ]

    on_startup = startup
    on_shutdown = shutdown

    max_jobs = 10
    job_timeout = 300
    keep_result = 3600
    retry_jobs = True
    max_tries = 3
