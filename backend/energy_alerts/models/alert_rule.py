"""AlertRule model and its scope/limit variants."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.types import JSON

from energy_alerts.core.database import Base
from energy_alerts.core.errors import InvalidRuleError
from energy_alerts.models.shared import UTCDateTime, UUIDType, generate_uuid


class AlertPeriod(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class LimitType(str, Enum):
    CONSUMPTION = "consumption"  # kWh
    COST = "cost"  # currency units


class NotificationChannel(str, Enum):
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"
    IN_APP = "in_app"


@dataclass(frozen=True)
class HomeScope:
    home_id: UUID


@dataclass(frozen=True)
class DeviceScope:
    device_id: UUID


Scope = HomeScope | DeviceScope


@dataclass(frozen=True)
class ConsumptionLimit:
    value: Decimal
    unit: str = "kWh"


@dataclass(frozen=True)
class CostLimit:
    value: Decimal
    unit: str = "cost"


Limit = ConsumptionLimit | CostLimit


class AlertRule(Base):
    """A user-defined consumption or cost limit over a recurring period.

    Exactly one of ``home_id``/``device_id`` is set, and ``limit_value`` is
    strictly positive. Both are enforced by table constraints as well as by
    ``AlertRuleCreate`` validation. Removal deactivates the rule instead of
    deleting it so triggered alerts keep their reference.
    """

    __tablename__ = "alert_rules"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    owner_id = Column(UUIDType, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    home_id = Column(UUIDType, ForeignKey("homes.id", ondelete="CASCADE"), nullable=True)
    device_id = Column(UUIDType, ForeignKey("devices.id", ondelete="CASCADE"), nullable=True)
    limit_type = Column(String(20), nullable=False, default=LimitType.CONSUMPTION.value)
    limit_value = Column(Numeric(12, 4), nullable=False)
    period = Column(String(20), nullable=False, default=AlertPeriod.DAILY.value)
    threshold = Column(Numeric(5, 2), nullable=False, default=80)
    is_enabled = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notification_channels = Column(
        JSON, nullable=False, default=lambda: [NotificationChannel.IN_APP.value]
    )
    last_triggered_at = Column(UTCDateTime, nullable=True)
    trigger_count = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "(home_id IS NOT NULL AND device_id IS NULL)"
            " OR (home_id IS NULL AND device_id IS NOT NULL)",
            name="ck_alert_rules_single_scope",
        ),
        CheckConstraint("limit_value > 0", name="ck_alert_rules_positive_limit"),
        CheckConstraint(
            "threshold >= 0 AND threshold <= 100", name="ck_alert_rules_threshold_range"
        ),
        Index("ix_alert_rules_owner_enabled", "owner_id", "is_enabled"),
    )

    @property
    def scope(self) -> Scope:
        if self.home_id is not None and self.device_id is None:
            return HomeScope(home_id=UUID(str(self.home_id)))
        if self.device_id is not None and self.home_id is None:
            return DeviceScope(device_id=UUID(str(self.device_id)))
        raise InvalidRuleError(f"Alert rule {self.id} must have exactly one home or device scope")

    @property
    def limit(self) -> Limit:
        if self.limit_value is None:
            raise InvalidRuleError(f"Alert rule {self.id} has no limit")
        value = Decimal(str(self.limit_value))
        if value <= 0:
            raise InvalidRuleError(f"Alert rule {self.id} limit must be positive, got {value}")
        if self.limit_type == LimitType.CONSUMPTION.value:
            return ConsumptionLimit(value=value)
        if self.limit_type == LimitType.COST.value:
            return CostLimit(value=value)
        raise InvalidRuleError(f"Alert rule {self.id} has unknown limit type {self.limit_type!r}")
