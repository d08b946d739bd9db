from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Query, Session

from energy_alerts.models.alert_rule import HomeScope, Scope
from energy_alerts.models.usage_reading import UsageReading


class UsageReadingRepository:
    """Read-only access to usage readings for a home or device scope."""

    def __init__(self, db: Session):
        self.db = db

    def _window_query(
        self,
        scope: Scope,
        start: datetime,
        end: datetime,
        include_end: bool,
    ) -> Query:  # type: ignore[type-arg]
        query = self.db.query(UsageReading)
        if isinstance(scope, HomeScope):
            query = query.filter(UsageReading.home_id == scope.home_id)
        else:
            query = query.filter(UsageReading.device_id == scope.device_id)
        query = query.filter(UsageReading.timestamp >= start)
        if include_end:
            return query.filter(UsageReading.timestamp <= end)
        return query.filter(UsageReading.timestamp < end)

    def get_in_window(
        self,
        scope: Scope,
        start: datetime,
        end: datetime,
        include_end: bool = True,
    ) -> list[UsageReading]:
        return (
            self._window_query(scope, start, end, include_end)
            .order_by(UsageReading.timestamp)
            .all()
        )
