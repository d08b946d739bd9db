"""Service for evaluating alert rules against aggregated usage."""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from energy_alerts.core.clock import Clock, system_clock
from energy_alerts.core.config import settings
from energy_alerts.core.errors import (
    AlertEngineError,
    BatchFailure,
    NotFoundError,
    TransientStoreError,
)
from energy_alerts.models.alert_rule import AlertRule, ConsumptionLimit, DeviceScope, Scope
from energy_alerts.models.triggered_alert import AlertSeverity, TriggeredAlert
from energy_alerts.repositories.alert_rule_repository import AlertRuleRepository
from energy_alerts.repositories.scope_repository import DeviceRepository, HomeRepository
from energy_alerts.repositories.triggered_alert_repository import TriggeredAlertRepository
from energy_alerts.schemas.pricing import FlatPricing, TieredPricing, TimeOfUsePricing
from energy_alerts.schemas.triggered_alert import RuleTestResult
from energy_alerts.services.alert_periods import window_key
from energy_alerts.services.pricing_models.factory import parse_pricing_model
from energy_alerts.services.usage_aggregation import UsageAggregationService

logger = logging.getLogger(__name__)

PERCENTAGE_PRECISION = Decimal("0.01")

# Lower bounds, checked highest first
_SEVERITY_BOUNDS: tuple[tuple[Decimal, AlertSeverity], ...] = (
    (Decimal(100), AlertSeverity.CRITICAL),
    (Decimal(90), AlertSeverity.HIGH),
    (Decimal(80), AlertSeverity.MEDIUM),
)


def classify_severity(percentage_used: Decimal) -> AlertSeverity:
    for bound, severity in _SEVERITY_BOUNDS:
        if percentage_used >= bound:
            return severity
    return AlertSeverity.LOW


def _format_amount(value: Decimal) -> str:
    return f"{value.normalize():f}"


class OutcomeStatus(str, Enum):
    TRIGGERED = "triggered"
    NOT_TRIGGERED = "not_triggered"
    DEDUPLICATED = "deduplicated"
    SKIPPED = "skipped"  # dedup check could not be confirmed
    ERROR = "error"


@dataclass
class RuleOutcome:
    alert_rule_id: UUID
    status: OutcomeStatus
    triggered_alert: TriggeredAlert | None = None
    error_type: str | None = None
    error: str | None = None


@dataclass
class BatchResult:
    timestamp: datetime
    total_checked: int = 0
    triggered: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    duration_ms: int = 0
    success: bool = True
    error: str | None = None


@dataclass
class ResolvedScope:
    scope: Scope
    name: str
    home_id: UUID | None
    device_id: UUID | None
    pricing_model: FlatPricing | TimeOfUsePricing | TieredPricing | None


@dataclass
class Breach:
    """Severity and message of a rule at or above its threshold."""

    severity: AlertSeverity
    message: str


@dataclass
class RuleEvaluation:
    """Computed fields for one rule at one instant, before any write."""

    scope: ResolvedScope
    window_start: datetime
    current_value: Decimal
    limit_value: Decimal
    unit: str
    percentage_used: Decimal
    breach: Breach | None = None

    @property
    def exceeds_threshold(self) -> bool:
        return self.breach is not None


class AlertEvaluatorService:
    """Evaluates alert rules and records at most one trigger per rule per window.

    Whether a rule may fire again depends only on the existence of a
    triggered alert inside the current window, never on the rule's
    ``last_triggered_at``/``trigger_count``. A crash between writing the
    event and updating the rule therefore cannot produce a duplicate.
    """

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.rule_repo = AlertRuleRepository(db)
        self.triggered_repo = TriggeredAlertRepository(db)
        self.home_repo = HomeRepository(db)
        self.device_repo = DeviceRepository(db)
        self.usage_service = UsageAggregationService(db, clock=clock)

    # ── Public operations ─────────────────────────────────────────────

    def evaluate_all(self) -> BatchResult:
        """Evaluate every enabled rule; one rule's failure never stops the rest."""
        started = time.monotonic()
        result = BatchResult(timestamp=self.clock())

        try:
            rules = self._list_enabled_rules()
        except BatchFailure as exc:
            result.success = False
            result.error = str(exc)
            result.duration_ms = int((time.monotonic() - started) * 1000)
            logger.error("Alert check aborted: %s", exc)
            return result

        result.total_checked = len(rules)
        logger.info("Checking %d alert rules", len(rules))

        # Read before any rollback expires the loaded rules
        names = [str(rule.name) for rule in rules]
        for rule, rule_name in zip(rules, names):
            outcome = self.evaluate_rule(rule)
            if outcome.status == OutcomeStatus.TRIGGERED and outcome.triggered_alert:
                result.triggered.append(
                    {
                        "alert_rule_id": outcome.alert_rule_id,
                        "alert_rule_name": rule_name,
                        "triggered_alert_id": outcome.triggered_alert.id,
                        "severity": outcome.triggered_alert.severity,
                    }
                )
            elif outcome.error is not None:
                result.errors.append(
                    {
                        "alert_rule_id": outcome.alert_rule_id,
                        "error_type": outcome.error_type,
                        "error": outcome.error,
                    }
                )

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Alert check completed in %dms. Checked: %d, Triggered: %d, Errors: %d",
            result.duration_ms,
            result.total_checked,
            len(result.triggered),
            len(result.errors),
        )
        return result

    def evaluate_rule(self, rule: AlertRule) -> RuleOutcome:
        """Evaluate one rule, converting failures into an error outcome.

        Transient store errors are retried for this rule only, up to
        ``ALERT_RULE_MAX_ATTEMPTS`` attempts.
        """
        rule_id = UUID(str(inspect(rule).identity[0]))
        attempts = max(1, settings.ALERT_RULE_MAX_ATTEMPTS)
        attempt = 1

        while True:
            try:
                with self._transient_store_errors():
                    return self._evaluate(rule)
            except TransientStoreError as exc:
                if attempt >= attempts:
                    logger.error(
                        "Alert rule %s failed after %d attempts: %s", rule_id, attempts, exc
                    )
                    return self._error_outcome(rule_id, exc)
                logger.warning(
                    "Transient store error on alert rule %s (attempt %d/%d): %s",
                    rule_id,
                    attempt,
                    attempts,
                    exc,
                )
                attempt += 1
            except AlertEngineError as exc:
                logger.warning("Skipping alert rule %s: %s", rule_id, exc)
                return self._error_outcome(rule_id, exc)
            except Exception as exc:
                self.db.rollback()
                logger.exception("Error checking alert rule %s", rule_id)
                return self._error_outcome(rule_id, exc)

    def evaluate_one(self, rule: AlertRule) -> TriggeredAlert | None:
        """Evaluate one rule and persist a triggered alert if it fires.

        Returns ``None`` when the rule is disabled, below threshold, or has
        already fired in the current window.

        Raises:
            NotFoundError: The rule's home or device does not exist.
            InvalidRuleError: The rule has no valid scope or limit.
            TransientStoreError: The store failed in a retryable way.
        """
        with self._transient_store_errors():
            return self._evaluate(rule).triggered_alert

    def test_evaluate(self, rule: AlertRule) -> RuleTestResult:
        """What-if evaluation that ignores ``is_enabled`` and writes nothing."""
        now = self.clock()
        with self._transient_store_errors():
            evaluation = self._compute(rule, now)
            already_triggered = False
            if evaluation.exceeds_threshold:
                already_triggered = self._already_triggered(
                    UUID(str(rule.id)), evaluation.window_start
                )

        breach = evaluation.breach
        return RuleTestResult(
            alert_rule_id=rule.id,
            would_trigger=breach is not None and not already_triggered,
            already_triggered=already_triggered,
            current_value=evaluation.current_value,
            limit_value=evaluation.limit_value,
            percentage_used=evaluation.percentage_used.quantize(
                PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
            ),
            severity=breach.severity if breach else None,
            message=breach.message if breach else None,
            window_start=evaluation.window_start,
        )

    # ── Evaluation steps ──────────────────────────────────────────────

    def _evaluate(self, rule: AlertRule) -> RuleOutcome:
        rule_id = UUID(str(rule.id))
        if not rule.is_enabled or rule.is_active is False:
            return RuleOutcome(rule_id, OutcomeStatus.NOT_TRIGGERED)

        now = self.clock()
        evaluation = self._compute(rule, now)
        breach = evaluation.breach
        if breach is None:
            return RuleOutcome(rule_id, OutcomeStatus.NOT_TRIGGERED)

        try:
            recent = self.triggered_repo.exists_since(rule_id, evaluation.window_start)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(
                "Dedup check failed for alert rule %s, treating as already triggered: %s",
                rule_id,
                exc,
            )
            return RuleOutcome(
                rule_id,
                OutcomeStatus.SKIPPED,
                error_type=TransientStoreError.__name__,
                error="dedup check could not be confirmed",
            )
        if recent:
            return RuleOutcome(rule_id, OutcomeStatus.DEDUPLICATED)

        triggered = self._persist(rule, evaluation, breach, now)
        if triggered is None:
            return RuleOutcome(rule_id, OutcomeStatus.DEDUPLICATED)
        return RuleOutcome(rule_id, OutcomeStatus.TRIGGERED, triggered_alert=triggered)

    def _compute(self, rule: AlertRule, now: datetime) -> RuleEvaluation:
        limit = rule.limit
        resolved = self._resolve_scope(rule)
        usage = self.usage_service.aggregate(
            resolved.scope, rule.period, pricing_model=resolved.pricing_model, now=now
        )

        if isinstance(limit, ConsumptionLimit):
            current_value = usage.total_consumption
        else:
            current_value = usage.total_cost

        percentage_used = current_value / limit.value * 100
        threshold = Decimal(str(rule.threshold))
        evaluation = RuleEvaluation(
            scope=resolved,
            window_start=usage.window_start,
            current_value=current_value,
            limit_value=limit.value,
            unit=limit.unit,
            percentage_used=percentage_used,
        )
        if percentage_used >= threshold:
            evaluation.breach = Breach(
                severity=classify_severity(percentage_used),
                message=self._compose_message(rule, evaluation),
            )
        return evaluation

    def _resolve_scope(self, rule: AlertRule) -> ResolvedScope:
        scope = rule.scope
        if isinstance(scope, DeviceScope):
            device = self.device_repo.get_by_id(scope.device_id)
            if not device:
                raise NotFoundError("Device", scope.device_id)
            home = self.home_repo.get_by_id(UUID(str(device.home_id)))
            return ResolvedScope(
                scope=scope,
                name=str(device.name),
                home_id=UUID(str(device.home_id)),
                device_id=scope.device_id,
                pricing_model=parse_pricing_model(home.pricing_model) if home else None,
            )

        home = self.home_repo.get_by_id(scope.home_id)
        if not home:
            raise NotFoundError("Home", scope.home_id)
        return ResolvedScope(
            scope=scope,
            name=str(home.name),
            home_id=scope.home_id,
            device_id=None,
            pricing_model=parse_pricing_model(home.pricing_model),
        )

    def _compose_message(self, rule: AlertRule, evaluation: RuleEvaluation) -> str:
        unit = evaluation.unit
        return (
            f"Alert: {rule.name} - {evaluation.scope.name} has used "
            f"{evaluation.current_value:.2f} {unit} "
            f"({evaluation.percentage_used:.1f}% of {_format_amount(evaluation.limit_value)} "
            f"{unit} limit) in the {rule.period} period."
        )

    def _already_triggered(self, rule_id: UUID, since: datetime) -> bool:
        """Existence check for the read-only path; fails closed."""
        try:
            return self.triggered_repo.exists_since(rule_id, since)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Dedup check failed for alert rule %s: %s", rule_id, exc)
            return True

    def _persist(
        self, rule: AlertRule, evaluation: RuleEvaluation, breach: Breach, now: datetime
    ) -> TriggeredAlert | None:
        """Write the triggered alert and the rule's trigger metadata in one commit."""
        triggered = self.triggered_repo.add(
            alert_rule_id=UUID(str(rule.id)),
            owner_id=UUID(str(rule.owner_id)),
            home_id=evaluation.scope.home_id,
            device_id=evaluation.scope.device_id,
            scope_name=evaluation.scope.name,
            message=breach.message,
            current_value=evaluation.current_value,
            limit_value=evaluation.limit_value,
            percentage_used=evaluation.percentage_used.quantize(
                PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
            ),
            severity=breach.severity.value,
            period=str(rule.period),
            window_key=window_key(evaluation.window_start),
            triggered_at=now,
        )
        self.rule_repo.record_trigger(rule, now)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Alert rule %s already triggered in window starting %s",
                rule.id,
                evaluation.window_start,
            )
            return None
        self.db.refresh(triggered)
        logger.info(
            "Alert rule %s triggered: %s (%s%%)",
            triggered.alert_rule_id,
            triggered.severity,
            triggered.percentage_used,
        )
        return triggered

    # ── Helpers ───────────────────────────────────────────────────────

    def _list_enabled_rules(self) -> list[AlertRule]:
        try:
            return self.rule_repo.get_enabled()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise BatchFailure(f"Failed to list enabled alert rules: {exc}") from exc

    @contextmanager
    def _transient_store_errors(self) -> Iterator[None]:
        try:
            yield
        except OperationalError as exc:
            self.db.rollback()
            raise TransientStoreError(str(exc.orig or exc)) from exc

    @staticmethod
    def _error_outcome(rule_id: UUID, exc: Exception) -> RuleOutcome:
        return RuleOutcome(
            rule_id,
            OutcomeStatus.ERROR,
            error_type=type(exc).__name__,
            error=str(exc),
        )
