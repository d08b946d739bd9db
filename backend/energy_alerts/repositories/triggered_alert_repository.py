from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from energy_alerts.models.triggered_alert import TriggeredAlert


class TriggeredAlertRepository:
    def __init__(self, db: Session):
        self.db = db

    def exists_since(self, alert_rule_id: UUID, since: datetime) -> bool:
        """Whether the rule already fired at or after ``since``."""
        return (
            self.db.query(TriggeredAlert.id)
            .filter(
                TriggeredAlert.alert_rule_id == alert_rule_id,
                TriggeredAlert.triggered_at >= since,
            )
            .first()
            is not None
        )

    def add(
        self,
        *,
        alert_rule_id: UUID,
        owner_id: UUID,
        home_id: UUID | None,
        device_id: UUID | None,
        scope_name: str,
        message: str,
        current_value: Decimal,
        limit_value: Decimal,
        percentage_used: Decimal,
        severity: str,
        period: str,
        window_key: datetime,
        triggered_at: datetime,
    ) -> TriggeredAlert:
        """Stage a new triggered alert in the session; the caller commits."""
        triggered = TriggeredAlert(
            alert_rule_id=alert_rule_id,
            owner_id=owner_id,
            home_id=home_id,
            device_id=device_id,
            scope_name=scope_name,
            message=message,
            current_value=current_value,
            limit_value=limit_value,
            percentage_used=percentage_used,
            severity=severity,
            period=period,
            window_key=window_key,
            triggered_at=triggered_at,
        )
        self.db.add(triggered)
        return triggered

    def get_by_id(
        self, triggered_alert_id: UUID, owner_id: UUID | None = None
    ) -> TriggeredAlert | None:
        query = self.db.query(TriggeredAlert).filter(TriggeredAlert.id == triggered_alert_id)
        if owner_id is not None:
            query = query.filter(TriggeredAlert.owner_id == owner_id)
        return query.first()

    def _owner_query(
        self,
        owner_id: UUID,
        is_read: bool | None,
        is_resolved: bool | None,
    ) -> Query:  # type: ignore[type-arg]
        query = self.db.query(TriggeredAlert).filter(TriggeredAlert.owner_id == owner_id)
        if is_read is not None:
            query = query.filter(TriggeredAlert.is_read.is_(is_read))
        if is_resolved is not None:
            query = query.filter(TriggeredAlert.is_resolved.is_(is_resolved))
        return query

    def get_by_owner(
        self,
        owner_id: UUID,
        is_read: bool | None = None,
        is_resolved: bool | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[TriggeredAlert]:
        return (
            self._owner_query(owner_id, is_read, is_resolved)
            .order_by(TriggeredAlert.triggered_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_by_owner(
        self,
        owner_id: UUID,
        is_read: bool | None = None,
        is_resolved: bool | None = None,
    ) -> int:
        return (
            self._owner_query(owner_id, is_read, is_resolved)
            .with_entities(func.count(TriggeredAlert.id))
            .scalar()
            or 0
        )

    def count_by_rule(self, alert_rule_id: UUID) -> int:
        return (
            self.db.query(func.count(TriggeredAlert.id))
            .filter(TriggeredAlert.alert_rule_id == alert_rule_id)
            .scalar()
            or 0
        )

    def mark_read(self, triggered_alert_id: UUID) -> TriggeredAlert | None:
        triggered = self.get_by_id(triggered_alert_id)
        if not triggered:
            return None
        triggered.is_read = True  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(triggered)
        return triggered

    def mark_resolved(
        self, triggered_alert_id: UUID, resolved_at: datetime
    ) -> TriggeredAlert | None:
        triggered = self.get_by_id(triggered_alert_id)
        if not triggered:
            return None
        if not triggered.is_resolved:
            triggered.is_resolved = True  # type: ignore[assignment]
            triggered.resolved_at = resolved_at  # type: ignore[assignment]
            self.db.commit()
            self.db.refresh(triggered)
        return triggered
