from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from energy_alerts.models.triggered_alert import AlertSeverity


class TriggeredAlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    alert_rule_id: UUID
    owner_id: UUID
    home_id: UUID | None = None
    device_id: UUID | None = None
    scope_name: str
    message: str
    current_value: Decimal
    limit_value: Decimal
    percentage_used: Decimal
    severity: AlertSeverity
    period: str
    is_read: bool
    is_resolved: bool
    resolved_at: datetime | None = None
    triggered_at: datetime


class TriggeredAlertPage(BaseModel):
    items: list[TriggeredAlertResponse]
    total: int
    skip: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)


class RuleTestResult(BaseModel):
    """What-if evaluation of a rule; nothing is persisted."""

    alert_rule_id: UUID
    would_trigger: bool
    already_triggered: bool = False
    current_value: Decimal | None = None
    limit_value: Decimal | None = None
    percentage_used: Decimal | None = None
    severity: AlertSeverity | None = None
    message: str | None = None
    window_start: datetime | None = None
