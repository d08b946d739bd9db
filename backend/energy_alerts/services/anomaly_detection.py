"""Unusual-activity check: today's usage versus the trailing daily average."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from energy_alerts.core.clock import Clock, system_clock
from energy_alerts.core.config import settings
from energy_alerts.core.errors import NotFoundError
from energy_alerts.models.alert_rule import HomeScope
from energy_alerts.repositories.scope_repository import HomeRepository
from energy_alerts.services.alert_periods import trailing_days_start, window_start
from energy_alerts.services.usage_aggregation import UsageAggregationService

logger = logging.getLogger(__name__)


@dataclass
class AnomalyAdvisory:
    home_id: UUID
    home_name: str
    today_consumption: Decimal
    average_daily_consumption: Decimal
    percentage_increase: Decimal
    checked_at: datetime
    message: str


class AnomalyDetectionService:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.home_repo = HomeRepository(db)
        self.usage_service = UsageAggregationService(db, clock=clock)

    def check_unusual_activity(
        self,
        home_id: UUID,
        threshold_percent: Decimal | int | None = None,
        lookback_days: int | None = None,
    ) -> AnomalyAdvisory | None:
        """Compare today's consumption with the average of previous days.

        Returns an advisory when today exceeds the average by at least
        ``threshold_percent``. Returns ``None`` when there is no history to
        compare against.

        Raises:
            NotFoundError: If the home does not exist.
        """
        home = self.home_repo.get_by_id(home_id)
        if not home:
            raise NotFoundError("Home", home_id)

        threshold = Decimal(
            str(settings.ANOMALY_THRESHOLD_PERCENT if threshold_percent is None else threshold_percent)
        )
        days = lookback_days or settings.ANOMALY_LOOKBACK_DAYS
        now = self.clock()
        scope = HomeScope(home_id=home_id)

        today_start = window_start("daily", now)
        today = self.usage_service.aggregate_between(scope, today_start, now)
        history = self.usage_service.aggregate_between(
            scope, trailing_days_start(now, days), today_start, include_end=False
        )

        if history.sample_count == 0:
            logger.debug("No usage history for home %s, skipping anomaly check", home_id)
            return None

        average = history.total_consumption / days
        if average <= 0:
            return None

        raw_increase = (today.total_consumption - average) / average * 100
        if raw_increase < threshold:
            return None

        increase = raw_increase.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        logger.info("Unusual activity for home %s: %s%% above average", home_id, increase)
        return AnomalyAdvisory(
            home_id=home_id,
            home_name=str(home.name),
            today_consumption=today.total_consumption,
            average_daily_consumption=average.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
            percentage_increase=increase,
            checked_at=now,
            message=(
                f"Unusual activity detected at {home.name}: today's usage of "
                f"{today.total_consumption:.2f} kWh is {increase:.1f}% higher than the "
                f"{days}-day average of {average:.2f} kWh."
            ),
        )
