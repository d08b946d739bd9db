from energy_alerts.schemas.alert_rule import (
    AlertRuleCreate,
    AlertRuleResponse,
    AlertRuleUpdate,
)
from energy_alerts.schemas.pricing import (
    FlatPricing,
    PricingModel,
    PricingTier,
    TieredPricing,
    TimeOfUsePricing,
    pricing_model_adapter,
)
from energy_alerts.schemas.triggered_alert import (
    RuleTestResult,
    TriggeredAlertPage,
    TriggeredAlertResponse,
)

__all__ = [
    "AlertRuleCreate",
    "AlertRuleResponse",
    "AlertRuleUpdate",
    "FlatPricing",
    "PricingModel",
    "PricingTier",
    "RuleTestResult",
    "TieredPricing",
    "TimeOfUsePricing",
    "TriggeredAlertPage",
    "TriggeredAlertResponse",
    "pricing_model_adapter",
]
