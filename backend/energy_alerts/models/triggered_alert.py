from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)

from energy_alerts.core.database import Base
from energy_alerts.models.shared import UTCDateTime, UUIDType, generate_uuid, utc_now


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TriggeredAlert(Base):
    """Append-only record of a rule firing within one period window.

    ``window_key`` is the rule's dedup window start floored to the hour and
    ``period`` is the rule's period when it fired. The unique constraint on
    ``(alert_rule_id, period, window_key)`` rejects a second event for the
    same window when two evaluators race past the existence check. Within
    one period, successive windows of a rule never share a key.
    """

    __tablename__ = "triggered_alerts"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    alert_rule_id = Column(
        UUIDType,
        ForeignKey("alert_rules.id", ondelete="RESTRICT"),
        nullable=False,
    )
    owner_id = Column(UUIDType, nullable=False)
    home_id = Column(UUIDType, nullable=True)
    device_id = Column(UUIDType, nullable=True)
    scope_name = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    current_value = Column(Numeric(16, 4), nullable=False)
    limit_value = Column(Numeric(12, 4), nullable=False)
    # Wide enough for current_value over the smallest storable limit
    percentage_used = Column(Numeric(24, 2), nullable=False)
    severity = Column(String(20), nullable=False, default=AlertSeverity.MEDIUM.value)
    is_read = Column(Boolean, nullable=False, default=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(UTCDateTime, nullable=True)
    period = Column(String(20), nullable=False)
    window_key = Column(UTCDateTime, nullable=False)
    triggered_at = Column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint(
            "alert_rule_id",
            "period",
            "window_key",
            name="uq_triggered_alerts_rule_window",
        ),
        Index("ix_triggered_alerts_rule_triggered_at", "alert_rule_id", "triggered_at"),
        Index("ix_triggered_alerts_owner_read", "owner_id", "is_read", "triggered_at"),
    )
