import logging
from typing import Any
from uuid import UUID

from arq import cron
from redis.exceptions import RedisError

from energy_alerts.core.config import settings
from energy_alerts.core.database import SessionLocal, init_db
from energy_alerts.core.errors import NotFoundError
from energy_alerts.services.alert_evaluator import AlertEvaluatorService
from energy_alerts.services.anomaly_detection import AnomalyDetectionService
from energy_alerts.tasks import TICK_LOCK_KEY, redis_settings

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    logger.info("Alert worker started")


async def _acquire_tick_lock(ctx: dict[str, Any]) -> bool:
    """SET NX EX lock so only one worker evaluates rules per tick.

    The lock is left to expire rather than released, so a second worker
    whose cron fires a little later in the same hour skips as well. If Redis
    is unavailable the tick runs anyway; the per-window unique constraint on
    triggered alerts still prevents duplicates.
    """
    redis = ctx.get("redis")
    if redis is None:
        return True
    try:
        acquired = await redis.set(
            TICK_LOCK_KEY, "1", nx=True, ex=settings.ALERT_TICK_LOCK_TTL_SECONDS
        )
    except RedisError as exc:
        logger.warning("Could not acquire alert tick lock, running unlocked: %s", exc)
        return True
    return bool(acquired)


async def evaluate_alert_rules_task(ctx: dict[str, Any]) -> int:
    """Background task: evaluate every enabled alert rule.

    Runs hourly, on the hour.

    Returns:
        Number of newly triggered alerts.
    """
    if not await _acquire_tick_lock(ctx):
        logger.info("Alert check already claimed by another worker, skipping")
        return 0

    db = SessionLocal()
    try:
        result = AlertEvaluatorService(db).evaluate_all()
    finally:
        db.close()

    if not result.success:
        logger.error("Alert check failed: %s", result.error)
        return 0
    if result.triggered or result.errors:
        logger.info(
            "Alert check: %d triggered, %d errors out of %d rules",
            len(result.triggered),
            len(result.errors),
            result.total_checked,
        )
    return len(result.triggered)


async def check_unusual_activity_task(ctx: dict[str, Any], home_id: str) -> int:
    """Background task: compare a home's usage today with its recent average.

    Args:
        ctx: ARQ worker context.
        home_id: UUID string of the home to check.

    Returns:
        1 if unusual activity was detected, otherwise 0.
    """
    db = SessionLocal()
    try:
        service = AnomalyDetectionService(db)
        try:
            advisory = service.check_unusual_activity(UUID(home_id))
        except NotFoundError:
            logger.warning("Home %s not found for unusual activity check", home_id)
            return 0
        if advisory is None:
            return 0
        logger.info("Unusual activity for home %s: %s", home_id, advisory.message)
        return 1
    finally:
        db.close()


class WorkerSettings:
    functions = [
        evaluate_alert_rules_task,
        check_unusual_activity_task,
    ]
    cron_jobs = [
        cron(evaluate_alert_rules_task, minute={0}),  # hourly
    ]
    on_startup = startup
    redis_settings = redis_settings
