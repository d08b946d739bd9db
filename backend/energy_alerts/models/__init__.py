from energy_alerts.models.alert_rule import (
    AlertPeriod,
    AlertRule,
    ConsumptionLimit,
    CostLimit,
    DeviceScope,
    HomeScope,
    Limit,
    LimitType,
    NotificationChannel,
    Scope,
)
from energy_alerts.models.device import Device
from energy_alerts.models.home import Home
from energy_alerts.models.triggered_alert import AlertSeverity, TriggeredAlert
from energy_alerts.models.usage_reading import UsageReading

__all__ = [
    "AlertPeriod",
    "AlertRule",
    "AlertSeverity",
    "ConsumptionLimit",
    "CostLimit",
    "Device",
    "DeviceScope",
    "Home",
    "HomeScope",
    "Limit",
    "LimitType",
    "NotificationChannel",
    "Scope",
    "TriggeredAlert",
    "UsageReading",
]
