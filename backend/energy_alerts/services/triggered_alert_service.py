"""Service for reading and acknowledging triggered alerts."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from energy_alerts.core.clock import Clock, system_clock
from energy_alerts.core.config import settings
from energy_alerts.core.errors import NotFoundError
from energy_alerts.models.triggered_alert import TriggeredAlert
from energy_alerts.repositories.triggered_alert_repository import TriggeredAlertRepository
from energy_alerts.schemas.triggered_alert import TriggeredAlertPage, TriggeredAlertResponse


class TriggeredAlertService:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = TriggeredAlertRepository(db)

    def list_triggered_events(
        self,
        owner_id: UUID,
        is_read: bool | None = None,
        is_resolved: bool | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> TriggeredAlertPage:
        """Owner's triggered alerts, newest first."""
        limit = settings.TRIGGERED_ALERTS_PAGE_SIZE if limit is None else limit
        items = self.repo.get_by_owner(
            owner_id, is_read=is_read, is_resolved=is_resolved, skip=skip, limit=limit
        )
        total = self.repo.count_by_owner(owner_id, is_read=is_read, is_resolved=is_resolved)
        return TriggeredAlertPage(
            items=[TriggeredAlertResponse.model_validate(item) for item in items],
            total=total,
            skip=skip,
            limit=limit,
        )

    def get(self, triggered_alert_id: UUID, owner_id: UUID | None = None) -> TriggeredAlert:
        triggered = self.repo.get_by_id(triggered_alert_id, owner_id=owner_id)
        if not triggered:
            raise NotFoundError("TriggeredAlert", triggered_alert_id)
        return triggered

    def mark_read(self, triggered_alert_id: UUID) -> TriggeredAlert:
        triggered = self.repo.mark_read(triggered_alert_id)
        if not triggered:
            raise NotFoundError("TriggeredAlert", triggered_alert_id)
        return triggered

    def mark_resolved(self, triggered_alert_id: UUID) -> TriggeredAlert:
        """Resolve an alert. Resolving twice keeps the first ``resolved_at``."""
        triggered = self.repo.mark_resolved(triggered_alert_id, self.clock())
        if not triggered:
            raise NotFoundError("TriggeredAlert", triggered_alert_id)
        return triggered

    def count_unread(self, owner_id: UUID) -> int:
        return self.repo.count_by_owner(owner_id, is_read=False)
