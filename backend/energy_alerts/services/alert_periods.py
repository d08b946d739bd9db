"""Period window calculation for alert rules."""

import calendar as cal
from datetime import UTC, datetime, timedelta, tzinfo

from energy_alerts.core.config import settings
from energy_alerts.models.alert_rule import AlertPeriod


def _add_months(dt: datetime, months: int) -> datetime:
    """Add months to a datetime, clamping to last day of month."""
    month = dt.month - 1 + months
    year = dt.year + month // 12
    month = month % 12 + 1
    max_day = cal.monthrange(year, month)[1]
    day = min(dt.day, max_day)
    return dt.replace(year=year, month=month, day=day)


def _midnight(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def window_start(period: AlertPeriod | str, now: datetime, tz: tzinfo | None = None) -> datetime:
    """Start of the evaluation window ending at ``now``.

    Day-aligned windows use midnight in ``tz`` (the configured local timezone
    by default). The result is returned in ``tz``.

    Raises:
        ValueError: If ``now`` is naive or the period is unknown.
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    local = now.astimezone(tz or settings.tzinfo)
    period = AlertPeriod(period)

    if period == AlertPeriod.HOURLY:
        return (now - timedelta(hours=1)).astimezone(local.tzinfo)
    if period == AlertPeriod.DAILY:
        return _midnight(local)
    if period == AlertPeriod.WEEKLY:
        return _midnight(local - timedelta(days=7))
    if period == AlertPeriod.MONTHLY:
        return _midnight(_add_months(local, -1))
    raise ValueError(f"Unknown period: {period}")


def window_key(start: datetime) -> datetime:
    """Dedup key for a window: its start in UTC floored to the hour.

    Two evaluations of the same rule that land in one dedup window always
    share a key, and a legitimate re-trigger in a later window of the same
    period never does. Keys are only unique together with the period.
    """
    return start.astimezone(UTC).replace(minute=0, second=0, microsecond=0)


def trailing_days_start(now: datetime, days: int, tz: tzinfo | None = None) -> datetime:
    """Local midnight ``days`` days before today."""
    return _midnight(now.astimezone(tz or settings.tzinfo) - timedelta(days=days))
