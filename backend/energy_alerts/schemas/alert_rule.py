from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from energy_alerts.core.config import settings
from energy_alerts.models.alert_rule import AlertPeriod, LimitType, NotificationChannel

# Scale of AlertRule.limit_value
LIMIT_PRECISION = Decimal("0.0001")


def _default_threshold() -> Decimal:
    return Decimal(settings.DEFAULT_TRIGGER_THRESHOLD)


def _storable_limit(value: Decimal | None) -> Decimal | None:
    """Round a limit to the stored scale, rejecting limits that round to zero."""
    if value is None:
        return None
    stored = value.quantize(LIMIT_PRECISION, rounding=ROUND_HALF_UP)
    if stored <= 0:
        msg = f"Limit must be at least {LIMIT_PRECISION}"
        raise ValueError(msg)
    return stored


class AlertRuleCreate(BaseModel):
    owner_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    home_id: UUID | None = None
    device_id: UUID | None = None
    limit_kwh: Decimal | None = Field(default=None, gt=0)
    limit_cost: Decimal | None = Field(default=None, gt=0)
    period: AlertPeriod = AlertPeriod.DAILY
    threshold: Decimal = Field(default_factory=_default_threshold, ge=0, le=100)
    is_enabled: bool = True
    notification_channels: list[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.IN_APP]
    )

    @field_validator("limit_kwh", "limit_cost")
    @classmethod
    def validate_storable_limit(cls, v: Decimal | None) -> Decimal | None:
        return _storable_limit(v)

    @model_validator(mode="after")
    def validate_single_scope(self) -> Self:
        """Validate exactly one of home_id/device_id is provided."""
        if (self.home_id is None) == (self.device_id is None):
            msg = "Alert rule must be associated with either a home or a device"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_single_limit(self) -> Self:
        """Validate exactly one of limit_kwh/limit_cost is provided."""
        if (self.limit_kwh is None) == (self.limit_cost is None):
            msg = "Alert rule requires exactly one of limit_kwh or limit_cost"
            raise ValueError(msg)
        return self

    @property
    def limit_type(self) -> LimitType:
        return LimitType.CONSUMPTION if self.limit_kwh is not None else LimitType.COST

    @property
    def limit_value(self) -> Decimal:
        if self.limit_kwh is not None:
            return self.limit_kwh
        if self.limit_cost is not None:
            return self.limit_cost
        raise ValueError("Alert rule requires exactly one of limit_kwh or limit_cost")


class AlertRuleUpdate(BaseModel):
    """Owner edits. Scope and limit kind are fixed at creation."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    limit_value: Decimal | None = Field(default=None, gt=0)
    period: AlertPeriod | None = None
    threshold: Decimal | None = Field(default=None, ge=0, le=100)
    is_enabled: bool | None = None
    notification_channels: list[NotificationChannel] | None = None

    @field_validator("limit_value")
    @classmethod
    def validate_storable_limit(cls, v: Decimal | None) -> Decimal | None:
        return _storable_limit(v)


class AlertRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    name: str
    home_id: UUID | None = None
    device_id: UUID | None = None
    limit_type: LimitType
    limit_value: Decimal
    period: AlertPeriod
    threshold: Decimal
    is_enabled: bool
    is_active: bool
    notification_channels: list[NotificationChannel]
    last_triggered_at: datetime | None = None
    trigger_count: int
    created_at: datetime
    updated_at: datetime
