"""ARQ worker for the reservation sweep."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


async def task_sweep_expired_reservations(ctx: dict):
    from services.orders_service.tasks import sweep_expired_reservations

    logger.info("Running: sweep_expired_reservations")
    await sweep_expired_reservations()


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [
        task_sweep_expired_reservations,
    ]

    cron_jobs = [
        cron(
            task_sweep_expired_reservations,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
            run_at_startup=True,
        ),
    ]
