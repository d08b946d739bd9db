"""Tests for AlertEvaluatorService."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch
from uuid import UUID

import pytest
from sqlalchemy.exc import OperationalError

from energy_alerts.core.errors import NotFoundError, TransientStoreError
from energy_alerts.models.alert_rule import AlertPeriod
from energy_alerts.models.device import Device
from energy_alerts.models.home import Home
from energy_alerts.models.triggered_alert import AlertSeverity, TriggeredAlert
from energy_alerts.repositories.alert_rule_repository import AlertRuleRepository
from energy_alerts.repositories.triggered_alert_repository import TriggeredAlertRepository
from energy_alerts.schemas.alert_rule import AlertRuleCreate, AlertRuleUpdate
from energy_alerts.services.alert_evaluator import (
    AlertEvaluatorService,
    OutcomeStatus,
    classify_severity,
)
from tests.conftest import DEFAULT_OWNER_ID, add_reading

TODAY = datetime(2024, 1, 17, tzinfo=UTC)


def _locked() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


def make_rule(db, home=None, device=None, **kwargs):
    fields = {
        "owner_id": DEFAULT_OWNER_ID,
        "name": "Daily cap",
        "home_id": home.id if home is not None else None,
        "device_id": device.id if device is not None else None,
    }
    if "limit_cost" not in kwargs:
        fields["limit_kwh"] = Decimal("50")
    fields.update(kwargs)
    return AlertRuleRepository(db).create(AlertRuleCreate(**fields))


def event_count(db, rule) -> int:
    return TriggeredAlertRepository(db).count_by_rule(rule.id)


@pytest.fixture
def service(db_session, clock):
    return AlertEvaluatorService(db_session, clock=clock)


class TestClassifySeverity:
    @pytest.mark.parametrize(
        "pct,expected",
        [
            ("0", AlertSeverity.LOW),
            ("79.99", AlertSeverity.LOW),
            ("80", AlertSeverity.MEDIUM),
            ("89.99", AlertSeverity.MEDIUM),
            ("90", AlertSeverity.HIGH),
            ("99.99", AlertSeverity.HIGH),
            ("100", AlertSeverity.CRITICAL),
            ("150", AlertSeverity.CRITICAL),
        ],
    )
    def test_boundaries(self, pct, expected):
        assert classify_severity(Decimal(pct)) == expected


class TestEvaluateOne:
    def test_end_to_end_daily_rule(self, db_session, service, home, device, clock):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "42", TODAY + timedelta(hours=8))

        triggered = service.evaluate_one(rule)

        assert triggered is not None
        assert triggered.severity == AlertSeverity.MEDIUM.value
        assert triggered.percentage_used == Decimal("84.00")
        assert triggered.current_value == Decimal("42")
        assert triggered.limit_value == Decimal("50")
        assert triggered.home_id == home.id
        assert triggered.device_id is None
        assert triggered.scope_name == "Main House"
        assert triggered.owner_id == DEFAULT_OWNER_ID
        assert triggered.triggered_at == clock.now
        assert triggered.message == (
            "Alert: Daily cap - Main House has used 42.00 kWh "
            "(84.0% of 50 kWh limit) in the daily period."
        )

        db_session.refresh(rule)
        assert rule.trigger_count == 1
        assert rule.last_triggered_at == clock.now

        assert service.evaluate_one(rule) is None
        assert event_count(db_session, rule) == 1

    @pytest.mark.parametrize(
        "kwh,expected",
        [
            ("79.9", None),
            ("80", AlertSeverity.MEDIUM),
            ("90", AlertSeverity.HIGH),
            ("100", AlertSeverity.CRITICAL),
            ("150", AlertSeverity.CRITICAL),
        ],
    )
    def test_severity_boundaries(self, db_session, service, home, device, kwh, expected):
        rule = make_rule(db_session, home=home, limit_kwh=Decimal("100"))
        add_reading(db_session, device, kwh, TODAY + timedelta(hours=1))

        triggered = service.evaluate_one(rule)

        if expected is None:
            assert triggered is None
        else:
            assert triggered is not None
            assert triggered.severity == expected.value

    def test_below_threshold_does_not_touch_rule(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "10", TODAY + timedelta(hours=1))

        assert service.evaluate_one(rule) is None
        db_session.refresh(rule)
        assert rule.trigger_count == 0
        assert rule.last_triggered_at is None

    def test_rising_usage_triggers_once(self, db_session, service, home, device, clock):
        rule = make_rule(db_session, home=home)

        add_reading(db_session, device, "35", TODAY + timedelta(hours=9))
        clock.now = TODAY + timedelta(hours=10)
        assert service.evaluate_one(rule) is None  # 70%

        add_reading(db_session, device, "12.5", TODAY + timedelta(hours=11))
        clock.now = TODAY + timedelta(hours=11, minutes=30)
        triggered = service.evaluate_one(rule)  # 95%
        assert triggered is not None
        assert triggered.severity == AlertSeverity.HIGH.value

        add_reading(db_session, device, "1", TODAY + timedelta(hours=12))
        clock.now = TODAY + timedelta(hours=12, minutes=30)
        assert service.evaluate_one(rule) is None  # 97%, same day

        assert event_count(db_session, rule) == 1

    def test_triggers_again_in_next_daily_window(self, db_session, service, home, device, clock):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "45", TODAY + timedelta(hours=8))
        assert service.evaluate_one(rule) is not None

        add_reading(db_session, device, "45", TODAY + timedelta(days=1, hours=8))
        clock.now = TODAY + timedelta(days=1, hours=9)
        assert service.evaluate_one(rule) is not None

        assert event_count(db_session, rule) == 2
        db_session.refresh(rule)
        assert rule.trigger_count == 2

    def test_hourly_window_rolls(self, db_session, service, home, device, clock):
        rule = make_rule(db_session, home=home, period=AlertPeriod.HOURLY, limit_kwh=Decimal("5"))
        add_reading(db_session, device, "5", TODAY + timedelta(hours=10, minutes=15))

        clock.now = TODAY + timedelta(hours=10, minutes=30)
        assert service.evaluate_one(rule) is not None

        # The previous event is still inside the rolling hour
        add_reading(db_session, device, "5", TODAY + timedelta(hours=11, minutes=10))
        clock.now = TODAY + timedelta(hours=11, minutes=20)
        assert service.evaluate_one(rule) is None

        # Window now starts after the first event
        clock.now = TODAY + timedelta(hours=11, minutes=31)
        assert service.evaluate_one(rule) is not None
        assert event_count(db_session, rule) == 2

    def test_period_change_triggers_in_new_window(self, db_session, service, home, device, clock):
        rule = make_rule(db_session, home=home, limit_kwh=Decimal("1"))
        add_reading(db_session, device, "2", TODAY + timedelta(minutes=15))
        clock.now = TODAY + timedelta(minutes=30)
        first = service.evaluate_one(rule)
        assert first is not None
        assert first.period == "daily"

        rule = AlertRuleRepository(db_session).update(
            rule.id, AlertRuleUpdate(period=AlertPeriod.HOURLY), DEFAULT_OWNER_ID
        )
        add_reading(db_session, device, "5", TODAY + timedelta(hours=1))
        # Hourly window 00:31-01:31 holds no event, but its key floors to midnight
        clock.now = TODAY + timedelta(hours=1, minutes=31)

        assert service.test_evaluate(rule).would_trigger is True
        outcome = service.evaluate_rule(rule)

        assert outcome.status == OutcomeStatus.TRIGGERED
        assert outcome.triggered_alert.period == "hourly"
        assert outcome.triggered_alert.window_key == first.window_key
        assert event_count(db_session, rule) == 2

    def test_tiny_limit_stores_full_percentage(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home, limit_kwh=Decimal("0.0001"))
        add_reading(db_session, device, "1000000", TODAY + timedelta(hours=1))

        triggered = service.evaluate_one(rule)

        assert triggered is not None
        assert triggered.severity == AlertSeverity.CRITICAL.value
        assert triggered.percentage_used == Decimal("1000000000000.00")
        column = TriggeredAlert.__table__.c.percentage_used.type
        assert column.precision - column.scale >= 19

    def test_disabled_rule_is_ignored(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home, is_enabled=False)
        add_reading(db_session, device, "50", TODAY + timedelta(hours=1))

        assert service.evaluate_one(rule) is None
        assert event_count(db_session, rule) == 0

    def test_cost_limit_uses_home_pricing(self, db_session, service, home, device):
        home.pricing_model = {"type": "flat", "rate": "0.25"}
        db_session.commit()
        rule = make_rule(db_session, home=home, name="Spend cap", limit_cost=Decimal("10"))
        add_reading(db_session, device, "36", TODAY + timedelta(hours=2), cost="1.00")

        triggered = service.evaluate_one(rule)

        assert triggered is not None
        assert triggered.current_value == Decimal("9.00")
        assert triggered.severity == AlertSeverity.HIGH.value
        assert "9.00 cost" in triggered.message
        assert "of 10 cost limit" in triggered.message

    def test_cost_limit_without_pricing_uses_stored_cost(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home, limit_cost=Decimal("10"))
        add_reading(db_session, device, "1", TODAY + timedelta(hours=2), cost="8.50")

        triggered = service.evaluate_one(rule)

        assert triggered is not None
        assert triggered.percentage_used == Decimal("85.00")

    def test_device_scope(self, db_session, service, home, device):
        other = Device(home_id=home.id, name="Oven")
        db_session.add(other)
        db_session.commit()
        rule = make_rule(db_session, device=device, name="Heat pump cap")
        add_reading(db_session, device, "20", TODAY + timedelta(hours=2))
        add_reading(db_session, other, "30", TODAY + timedelta(hours=2))

        assert service.evaluate_one(rule) is None  # 40% from the device alone

        add_reading(db_session, device, "25", TODAY + timedelta(hours=3))
        triggered = service.evaluate_one(rule)
        assert triggered is not None
        assert triggered.device_id == device.id
        assert triggered.home_id == home.id
        assert triggered.scope_name == "Heat Pump"

    def test_missing_scope_raises(self, db_session, service, home):
        rule = make_rule(db_session, home=home)
        with patch.object(service.home_repo, "get_by_id", return_value=None):
            with pytest.raises(NotFoundError, match="Home"):
                service.evaluate_one(rule)

    def test_operational_error_raises_transient(self, db_session, service, home):
        rule = make_rule(db_session, home=home)
        with patch.object(service.usage_service, "aggregate", side_effect=_locked()):
            with pytest.raises(TransientStoreError):
                service.evaluate_one(rule)


class TestDedupGuard:
    def test_fails_closed_when_check_errors(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "45", TODAY + timedelta(hours=1))

        with patch.object(service.triggered_repo, "exists_since", side_effect=_locked()):
            assert service.evaluate_one(rule) is None
            outcome = service.evaluate_rule(rule)

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.error is not None
        assert event_count(db_session, rule) == 0

    def test_unique_window_rejects_race(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "45", TODAY + timedelta(hours=1))
        assert service.evaluate_one(rule) is not None

        # A second evaluator that raced past the existence check
        with patch.object(service.triggered_repo, "exists_since", return_value=False):
            outcome = service.evaluate_rule(rule)

        assert outcome.status == OutcomeStatus.DEDUPLICATED
        assert event_count(db_session, rule) == 1
        db_session.refresh(rule)
        assert rule.trigger_count == 1

    def test_dedup_ignores_rule_trigger_metadata(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "45", TODAY + timedelta(hours=1))
        assert service.evaluate_one(rule) is not None

        # Rule metadata lost, e.g. a crash after the event was written
        rule.last_triggered_at = None
        rule.trigger_count = 0
        db_session.commit()

        assert service.evaluate_one(rule) is None
        assert event_count(db_session, rule) == 1


class TestTestEvaluate:
    def test_has_no_side_effects(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "42", TODAY + timedelta(hours=1))

        for _ in range(3):
            result = service.test_evaluate(rule)
            assert result.would_trigger is True
            assert result.already_triggered is False
            assert result.percentage_used == Decimal("84.00")
            assert result.severity == AlertSeverity.MEDIUM
            assert result.message is not None
            assert result.window_start == TODAY

        db_session.refresh(rule)
        assert rule.trigger_count == 0
        assert event_count(db_session, rule) == 0

    def test_reports_already_triggered(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "42", TODAY + timedelta(hours=1))
        service.evaluate_one(rule)

        result = service.test_evaluate(rule)

        assert result.would_trigger is False
        assert result.already_triggered is True

    def test_below_threshold(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "10", TODAY + timedelta(hours=1))

        result = service.test_evaluate(rule)

        assert result.would_trigger is False
        assert result.current_value == Decimal("10")
        assert result.percentage_used == Decimal("20.00")
        assert result.severity is None
        assert result.message is None

    def test_ignores_enabled_flag(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home, is_enabled=False)
        add_reading(db_session, device, "42", TODAY + timedelta(hours=1))

        assert service.test_evaluate(rule).would_trigger is True


class TestEvaluateAll:
    def test_isolates_rule_failures(self, db_session, service, home, device):
        cabin = Home(owner_id=DEFAULT_OWNER_ID, name="Cabin")
        db_session.add(cabin)
        db_session.commit()

        missing_scope = make_rule(db_session, home=cabin, name="Cabin cap")
        invalid = make_rule(db_session, home=home, name="Broken")
        invalid.limit_type = "bogus"
        db_session.commit()
        valid = make_rule(db_session, home=home, name="House cap")
        disabled = make_rule(db_session, home=home, name="Off", is_enabled=False)
        add_reading(db_session, device, "45", TODAY + timedelta(hours=1))

        cabin_id = cabin.id
        real_get = service.home_repo.get_by_id

        def get_home(home_id: UUID):
            return None if home_id == cabin_id else real_get(home_id)

        with patch.object(service.home_repo, "get_by_id", side_effect=get_home):
            result = service.evaluate_all()

        assert result.success is True
        assert result.total_checked == 3
        assert [t["alert_rule_id"] for t in result.triggered] == [valid.id]
        assert result.triggered[0]["alert_rule_name"] == "House cap"
        assert result.triggered[0]["severity"] == AlertSeverity.HIGH.value
        errors = {e["alert_rule_id"]: e["error_type"] for e in result.errors}
        assert errors == {
            missing_scope.id: "NotFoundError",
            invalid.id: "InvalidRuleError",
        }
        assert event_count(db_session, disabled) == 0
        assert result.duration_ms >= 0

    def test_repeated_ticks_are_idempotent(self, db_session, service, home, device, clock):
        make_rule(db_session, home=home)
        add_reading(db_session, device, "45", TODAY + timedelta(hours=1))

        first = service.evaluate_all()
        clock.advance(hours=1)
        second = service.evaluate_all()

        assert len(first.triggered) == 1
        assert second.triggered == []
        assert second.errors == []
        assert db_session.query(TriggeredAlert).count() == 1

    def test_retries_transient_errors(self, db_session, service, home, device):
        rule = make_rule(db_session, home=home)
        add_reading(db_session, device, "45", TODAY + timedelta(hours=1))

        real_aggregate = service.usage_service.aggregate
        calls = {"n": 0}

        def flaky(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise _locked()
            return real_aggregate(*args, **kwargs)

        with patch.object(service.usage_service, "aggregate", side_effect=flaky):
            result = service.evaluate_all()

        assert calls["n"] == 2
        assert [t["alert_rule_id"] for t in result.triggered] == [rule.id]
        assert result.errors == []

    def test_persistent_transient_error_is_recorded(self, db_session, service, home):
        rule = make_rule(db_session, home=home)

        with patch.object(service.usage_service, "aggregate", side_effect=_locked()) as agg:
            result = service.evaluate_all()

        assert agg.call_count == 2
        assert result.success is True
        assert result.errors[0]["alert_rule_id"] == rule.id
        assert result.errors[0]["error_type"] == "TransientStoreError"

    def test_unexpected_error_is_recorded(self, db_session, service, home, device):
        make_rule(db_session, home=home, name="Bad pricing")
        home.pricing_model = {"type": "dynamic"}
        db_session.commit()
        make_rule(db_session, home=home, name="Fine")

        result = service.evaluate_all()

        assert result.total_checked == 2
        assert len(result.errors) == 2
        assert {e["error_type"] for e in result.errors} == {"ValidationError"}

    def test_listing_failure_aborts_tick(self, service):
        with patch.object(service.rule_repo, "get_enabled", side_effect=_locked()):
            result = service.evaluate_all()

        assert result.success is False
        assert result.error is not None
        assert result.total_checked == 0
        assert result.triggered == []

    def test_empty_batch(self, service, clock):
        result = service.evaluate_all()
        assert result.success is True
        assert result.total_checked == 0
        assert result.timestamp == clock.now
