from collections.abc import Callable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any

from energy_alerts.schemas.pricing import (
    FlatPricing,
    TieredPricing,
    TimeOfUsePricing,
    pricing_model_adapter,
)
from energy_alerts.services.pricing_models import flat, tiered, time_of_use

# (consumption, timestamp) pairs for one scope and window
Samples = Sequence[tuple[Decimal, datetime]]

PeriodCalculatorFn = Callable[[Samples, Any], Decimal]


def _flat_period(samples: Samples, model: FlatPricing) -> Decimal:
    return sum((flat.calculate(kwh, model.rate) for kwh, _ in samples), Decimal(0))


def _time_of_use_period(samples: Samples, model: TimeOfUsePricing) -> Decimal:
    return sum(
        (time_of_use.calculate(kwh, ts, model) for kwh, ts in samples), Decimal(0)
    )


def _tiered_period(samples: Samples, model: TieredPricing) -> Decimal:
    total = sum((kwh for kwh, _ in samples), Decimal(0))
    return tiered.calculate(total, model.tiers)


_PERIOD_CALCULATORS: dict[str, PeriodCalculatorFn] = {
    "flat": _flat_period,
    "time_of_use": _time_of_use_period,
    "tiered": _tiered_period,
}


def get_period_calculator(kind: str) -> PeriodCalculatorFn | None:
    return _PERIOD_CALCULATORS.get(kind)


def parse_pricing_model(
    raw: dict[str, Any] | None,
) -> FlatPricing | TimeOfUsePricing | TieredPricing | None:
    """Validate a stored pricing model; ``None`` when the home has none."""
    if not raw:
        return None
    return pricing_model_adapter.validate_python(raw)


def period_cost(
    samples: Samples,
    model: FlatPricing | TimeOfUsePricing | TieredPricing,
) -> Decimal:
    """Cost of a window's readings under a pricing model.

    Flat and time-of-use models price each reading on its own; tiered models
    price the window's total consumption.
    """
    calculator = get_period_calculator(model.type)
    if calculator is None:
        raise ValueError(f"Unknown pricing model: {model.type}")
    return calculator(samples, model)
