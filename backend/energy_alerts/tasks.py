from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from energy_alerts.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)

TICK_LOCK_KEY = "energy_alerts:evaluate_alert_rules"


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_evaluate_alert_rules() -> Job:
    """Enqueue an out-of-schedule alert check."""
    return await enqueue_task("evaluate_alert_rules_task")


async def enqueue_check_unusual_activity(home_id: str) -> Job:
    """Enqueue an unusual-activity check for one home, e.g. after new readings."""
    return await enqueue_task("check_unusual_activity_task", home_id)
