from energy_alerts.repositories.alert_rule_repository import AlertRuleRepository
from energy_alerts.repositories.scope_repository import DeviceRepository, HomeRepository
from energy_alerts.repositories.triggered_alert_repository import TriggeredAlertRepository
from energy_alerts.repositories.usage_reading_repository import UsageReadingRepository

__all__ = [
    "AlertRuleRepository",
    "DeviceRepository",
    "HomeRepository",
    "TriggeredAlertRepository",
    "UsageReadingRepository",
]
