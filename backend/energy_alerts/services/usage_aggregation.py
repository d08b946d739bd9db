from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from energy_alerts.core.clock import Clock, system_clock
from energy_alerts.models.alert_rule import AlertPeriod, Scope
from energy_alerts.repositories.usage_reading_repository import UsageReadingRepository
from energy_alerts.schemas.pricing import FlatPricing, TieredPricing, TimeOfUsePricing
from energy_alerts.services.alert_periods import window_start
from energy_alerts.services.pricing_models.factory import period_cost

CONSUMPTION_PRECISION = Decimal("0.0001")
COST_PRECISION = Decimal("0.01")


@dataclass
class UsageAggregate:
    """Totals for one scope over ``[window_start, window_end]``."""

    total_consumption: Decimal
    total_cost: Decimal
    sample_count: int
    window_start: datetime
    window_end: datetime


class UsageAggregationService:
    """Aggregates usage readings for a home or device over a period window.

    Cost comes from the home's pricing model when one is given, otherwise from
    the cost stored on each reading.
    """

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.reading_repo = UsageReadingRepository(db)

    def aggregate(
        self,
        scope: Scope,
        period: AlertPeriod | str,
        pricing_model: FlatPricing | TimeOfUsePricing | TieredPricing | None = None,
        now: datetime | None = None,
    ) -> UsageAggregate:
        now = now or self.clock()
        start = window_start(period, now)
        return self.aggregate_between(scope, start, now, pricing_model=pricing_model)

    def aggregate_between(
        self,
        scope: Scope,
        start: datetime,
        end: datetime,
        pricing_model: FlatPricing | TimeOfUsePricing | TieredPricing | None = None,
        include_end: bool = True,
    ) -> UsageAggregate:
        readings = self.reading_repo.get_in_window(scope, start, end, include_end=include_end)

        samples = [(Decimal(str(r.kwh)), r.timestamp) for r in readings]
        total_consumption = sum((kwh for kwh, _ in samples), Decimal(0))
        if pricing_model is not None:
            total_cost = period_cost(samples, pricing_model)
        else:
            total_cost = sum(
                (Decimal(str(r.cost)) for r in readings if r.cost is not None), Decimal(0)
            )

        return UsageAggregate(
            total_consumption=total_consumption.quantize(
                CONSUMPTION_PRECISION, rounding=ROUND_HALF_UP
            ),
            total_cost=total_cost.quantize(COST_PRECISION, rounding=ROUND_HALF_UP),
            sample_count=len(readings),
            window_start=start,
            window_end=end,
        )
