"""Time-of-use pricing.

Bands by local hour: 00-06 off-peak, 06-10 mid-peak, 10-18 peak,
18-22 mid-peak, 22-24 off-peak. A weekend rate, when defined, overrides
every band on Saturday and Sunday. Unset bands fall back to ``base``.
"""

from datetime import datetime, tzinfo
from decimal import Decimal

from energy_alerts.core.config import settings
from energy_alerts.schemas.pricing import TimeOfUsePricing


def _band_rate(hour: int, table: TimeOfUsePricing) -> Decimal | None:
    if hour < 6 or hour >= 22:
        return table.off_peak
    if 10 <= hour < 18:
        return table.peak
    return table.mid_peak


def rate_for(timestamp: datetime, table: TimeOfUsePricing, tz: tzinfo | None = None) -> Decimal:
    """Select the single rate bucket that applies at ``timestamp``."""
    local = timestamp.astimezone(tz or settings.tzinfo) if timestamp.tzinfo else timestamp
    if local.weekday() >= 5 and table.weekend is not None:
        return table.weekend
    rate = _band_rate(local.hour, table)
    return rate if rate is not None else table.base


def calculate(
    consumption: Decimal,
    timestamp: datetime,
    table: TimeOfUsePricing,
    tz: tzinfo | None = None,
) -> Decimal:
    return consumption * rate_for(timestamp, table, tz)
