from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from energy_alerts.models.alert_rule import AlertRule
from energy_alerts.schemas.alert_rule import AlertRuleCreate, AlertRuleUpdate


class AlertRuleRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, rule_id: UUID, owner_id: UUID | None = None) -> AlertRule | None:
        query = self.db.query(AlertRule).filter(AlertRule.id == rule_id)
        if owner_id is not None:
            query = query.filter(AlertRule.owner_id == owner_id)
        return query.first()

    def get_enabled(self) -> list[AlertRule]:
        return (
            self.db.query(AlertRule)
            .filter(AlertRule.is_enabled.is_(True), AlertRule.is_active.is_(True))
            .order_by(AlertRule.created_at)
            .all()
        )

    def create(self, data: AlertRuleCreate) -> AlertRule:
        rule = AlertRule(
            owner_id=data.owner_id,
            name=data.name,
            home_id=data.home_id,
            device_id=data.device_id,
            limit_type=data.limit_type.value,
            limit_value=data.limit_value,
            period=data.period.value,
            threshold=data.threshold,
            is_enabled=data.is_enabled,
            notification_channels=[c.value for c in data.notification_channels],
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def update(
        self, rule_id: UUID, data: AlertRuleUpdate, owner_id: UUID
    ) -> AlertRule | None:
        rule = self.get_by_id(rule_id, owner_id)
        if not rule or not rule.is_active:
            return None
        for key, value in data.model_dump(exclude_unset=True).items():
            if key == "period" and value is not None:
                value = value.value
            elif key == "notification_channels" and value is not None:
                value = [c.value for c in value]
            setattr(rule, key, value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def deactivate(self, rule_id: UUID, owner_id: UUID) -> bool:
        rule = self.get_by_id(rule_id, owner_id)
        if not rule or not rule.is_active:
            return False
        rule.is_active = False  # type: ignore[assignment]
        rule.is_enabled = False  # type: ignore[assignment]
        self.db.commit()
        return True

    def record_trigger(self, rule: AlertRule, triggered_at: datetime) -> None:
        """Stage last_triggered_at/trigger_count; the caller commits."""
        rule.last_triggered_at = triggered_at  # type: ignore[assignment]
        rule.trigger_count = int(rule.trigger_count or 0) + 1  # type: ignore[assignment]
