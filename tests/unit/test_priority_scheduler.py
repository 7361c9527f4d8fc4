"""
Unit tests for PriorityScheduler

Tests deterministic ordering and lead-time based delivery times.
"""
from datetime import timedelta

from agrisentinel.domain.enums import RiskType, Severity
from agrisentinel.services.priority_scheduler import PriorityScheduler
from factories import NOW, make_alert


class TestOrdering:
    """Test severity, time-to-event, probability and farm id ordering"""

    def test_severity_first(self, settings):
        high = make_alert(farm_id="a", severity=Severity.HIGH, event_hours=30)
        critical = make_alert(farm_id="b", severity=Severity.CRITICAL, event_hours=60)

        ordered = PriorityScheduler(settings).order([high, critical], NOW)

        assert ordered == [critical, high]

    def test_sooner_event_breaks_severity_tie(self, settings):
        later = make_alert(farm_id="a", event_hours=50)
        sooner = make_alert(farm_id="b", event_hours=30)

        ordered = PriorityScheduler(settings).order([later, sooner], NOW)

        assert ordered == [sooner, later]

    def test_probability_then_farm_id(self, settings):
        low_p = make_alert(farm_id="a", probability=0.6)
        high_p = make_alert(farm_id="z", probability=0.9)
        tie_b = make_alert(farm_id="b", probability=0.6)

        ordered = PriorityScheduler(settings).order([tie_b, low_p, high_p], NOW)

        assert [a.farm_id for a in ordered] == ["z", "a", "b"]

    def test_order_is_stable_across_input_permutations(self, settings):
        alerts = [
            make_alert(farm_id="c", severity=Severity.MEDIUM, event_hours=40),
            make_alert(farm_id="a", severity=Severity.HIGH, event_hours=30, risk_type=RiskType.FROST),
            make_alert(farm_id="a", severity=Severity.HIGH, event_hours=30),
        ]
        scheduler = PriorityScheduler(settings)

        assert scheduler.order(alerts, NOW) == scheduler.order(list(reversed(alerts)), NOW)


class TestDeliveryTimes:
    """Test lead-time rules"""

    def test_high_severity_delivered_12h_ahead(self, settings):
        alert = make_alert(severity=Severity.HIGH, event_hours=30)

        PriorityScheduler(settings).schedule([alert], NOW)

        assert alert.delivery_time == alert.event_time - timedelta(hours=12)
        assert alert.best_effort_immediate is False

    def test_medium_severity_delivered_24h_ahead(self, settings):
        alert = make_alert(severity=Severity.MEDIUM, event_hours=30)

        PriorityScheduler(settings).schedule([alert], NOW)

        assert alert.delivery_time == NOW + timedelta(hours=6)

    def test_medium_severity_not_scheduled_in_past(self, settings):
        alert = make_alert(severity=Severity.MEDIUM, event_hours=10)

        PriorityScheduler(settings).schedule([alert], NOW)

        assert alert.delivery_time == NOW
        assert alert.best_effort_immediate is False

    def test_late_high_severity_best_effort_immediate(self, settings):
        alert = make_alert(severity=Severity.HIGH, event_hours=6)

        PriorityScheduler(settings).schedule([alert], NOW)

        assert alert.delivery_time == NOW
        assert alert.best_effort_immediate is True

    def test_schedule_idempotent(self, settings):
        alerts = [
            make_alert(farm_id="a", severity=Severity.HIGH, event_hours=30),
            make_alert(farm_id="b", severity=Severity.MEDIUM, event_hours=40),
        ]
        scheduler = PriorityScheduler(settings)

        first = scheduler.schedule(alerts, NOW)
        times = [a.delivery_time for a in first]
        second = scheduler.schedule(alerts, NOW)

        assert [a.id for a in second] == [a.id for a in first]
        assert [a.delivery_time for a in second] == times
