"""
Unit tests for AlertOrchestrator

Tests the per-(farm, risk) state machine: create, refresh, cool-down
suppression, expiry, discard and concurrent processing.
"""
import asyncio
import pytest
from datetime import timedelta

from agrisentinel.domain.enums import AlertState, RiskType, Severity
from agrisentinel.domain.farm import ThresholdConfig
from agrisentinel.services.alert_orchestrator import AlertOrchestrator, compute_priority
from agrisentinel.services.risk_evaluator import RiskEvaluator
from factories import NOW, make_prediction


def _assessment(settings, now=NOW, probability=0.8, confidence=0.85, event_hours=30.0, farm_id="farm_1"):
    prediction = make_prediction(RiskType.DROUGHT, probability, confidence, event_hours, as_of=now)
    thresholds = ThresholdConfig(farm_id=farm_id, thresholds={RiskType.DROUGHT: Severity.MEDIUM})
    return RiskEvaluator(settings).evaluate(farm_id, [prediction], thresholds, now=now)


def _deliver(orchestrator, alert, now):
    alert.delivery_time = now
    orchestrator.mark_scheduled(alert, now)
    orchestrator.mark_delivered(alert.id, now)


class TestAlertCreation:
    """Test creation and in-place refresh"""

    @pytest.mark.asyncio
    async def test_creates_pending_alert(self, settings):
        orchestrator = AlertOrchestrator(settings)

        result = await orchestrator.process(_assessment(settings), [], cycle_id="cycle_1")

        [alert] = result.created
        assert alert.state == AlertState.PENDING
        assert alert.severity == Severity.HIGH
        assert alert.cycle_id == "cycle_1"
        assert alert.expiration_time == alert.event_time
        assert "HIGH drought risk" in alert.message
        assert orchestrator.get(alert.id) is alert

    @pytest.mark.asyncio
    async def test_no_alert_when_nothing_triggers(self, settings):
        orchestrator = AlertOrchestrator(settings)

        result = await orchestrator.process(_assessment(settings, event_hours=10.0), [])

        assert result.alerts == []

    @pytest.mark.asyncio
    async def test_refresh_keeps_alert_id(self, settings):
        """Test a second qualifying assessment updates the undelivered alert"""
        orchestrator = AlertOrchestrator(settings)
        first = await orchestrator.process(_assessment(settings), [])

        later = NOW + timedelta(hours=1)
        second = await orchestrator.process(
            _assessment(settings, now=later, probability=0.95, event_hours=29.0), []
        )

        assert second.created == []
        [refreshed] = second.refreshed
        assert refreshed.id == first.created[0].id
        assert refreshed.refresh_count == 1
        assert refreshed.probability == pytest.approx(0.95)
        assert len(orchestrator.list_alerts(farm_id="farm_1")) == 1

    @pytest.mark.asyncio
    async def test_uncertain_alert_message(self, settings):
        orchestrator = AlertOrchestrator(settings)

        result = await orchestrator.process(_assessment(settings, confidence=0.65), [])

        alert = result.created[0]
        assert alert.uncertain is True
        assert "Forecast confidence is limited" in alert.message

    @pytest.mark.asyncio
    async def test_unrelated_low_confidence_does_not_flag_alert(self, settings):
        """Test a low-confidence frost forecast leaves a confident drought alert unflagged"""
        orchestrator = AlertOrchestrator(settings)
        predictions = [
            make_prediction(RiskType.DROUGHT, 0.8, 0.95, 30.0, as_of=NOW),
            make_prediction(RiskType.FROST, 0.01, 0.3, 30.0, as_of=NOW),
        ]
        thresholds = ThresholdConfig(farm_id="farm_1", thresholds={RiskType.DROUGHT: Severity.MEDIUM})
        assessment = RiskEvaluator(settings).evaluate("farm_1", predictions, thresholds, now=NOW)

        [alert] = (await orchestrator.process(assessment, [])).created

        assert alert.risk_type == RiskType.DROUGHT
        assert alert.uncertain is False
        assert "confidence is limited" not in alert.message

    @pytest.mark.asyncio
    async def test_concurrent_processing_single_alert(self, settings):
        """Test two cycles racing on the same key end with one alert"""
        orchestrator = AlertOrchestrator(settings)

        results = await asyncio.gather(
            orchestrator.process(_assessment(settings), []),
            orchestrator.process(_assessment(settings), []),
        )

        created = [a for r in results for a in r.created]
        refreshed = [a for r in results for a in r.refreshed]
        assert len(created) == 1
        assert len(refreshed) == 1
        assert refreshed[0].id == created[0].id


class TestCooldown:
    """Test suppression after delivery"""

    @pytest.mark.asyncio
    async def test_suppressed_inside_cooldown(self, settings):
        orchestrator = AlertOrchestrator(settings)
        alert = (await orchestrator.process(_assessment(settings), [])).created[0]
        _deliver(orchestrator, alert, NOW)

        later = NOW + timedelta(hours=2)
        result = await orchestrator.process(_assessment(settings, now=later), [])

        assert result.alerts == []
        assert result.suppressed == [RiskType.DROUGHT]

    @pytest.mark.asyncio
    async def test_new_alert_after_cooldown(self, settings):
        orchestrator = AlertOrchestrator(settings)
        alert = (await orchestrator.process(_assessment(settings), [])).created[0]
        _deliver(orchestrator, alert, NOW)

        later = NOW + timedelta(hours=7)
        result = await orchestrator.process(_assessment(settings, now=later), [])

        [new_alert] = result.created
        assert new_alert.id != alert.id
        assert orchestrator.get(alert.id).state == AlertState.DELIVERED


class TestLifecycle:
    """Test expiry, discard and transition validation"""

    @pytest.mark.asyncio
    async def test_expire_stale(self, settings):
        orchestrator = AlertOrchestrator(settings)
        alert = (await orchestrator.process(_assessment(settings), [])).created[0]

        assert orchestrator.expire_stale(NOW + timedelta(hours=29)) == []
        expired = orchestrator.expire_stale(NOW + timedelta(hours=31))

        assert [a.id for a in expired] == [alert.id]
        assert alert.state == AlertState.EXPIRED


    @pytest.mark.asyncio
    async def test_evict_settled_after_cooldown(self, settings):
        orchestrator = AlertOrchestrator(settings)
        delivered = (await orchestrator.process(_assessment(settings), [])).created[0]
        _deliver(orchestrator, delivered, NOW)
        expired = (await orchestrator.process(_assessment(settings, farm_id="farm_2"), [])).created[0]

        assert orchestrator.evict_settled(NOW + timedelta(hours=5)) == []
        assert orchestrator.evict_settled(NOW + timedelta(hours=6)) == [delivered.id]

        orchestrator.expire_stale(NOW + timedelta(hours=31))
        assert orchestrator.evict_settled(NOW + timedelta(hours=36)) == []
        assert orchestrator.evict_settled(NOW + timedelta(hours=37)) == [expired.id]
        assert orchestrator.list_alerts() == []
        assert orchestrator._locks == {}
    @pytest.mark.asyncio
    async def test_discard_frees_key(self, settings):
        orchestrator = AlertOrchestrator(settings)
        alert = (await orchestrator.process(_assessment(settings), [])).created[0]

        orchestrator.discard([alert.id])

        assert orchestrator.get(alert.id) is None
        result = await orchestrator.process(_assessment(settings), [])
        assert len(result.created) == 1

    @pytest.mark.asyncio
    async def test_invalid_transition_rejected(self, settings):
        orchestrator = AlertOrchestrator(settings)
        alert = (await orchestrator.process(_assessment(settings), [])).created[0]

        with pytest.raises(ValueError, match="Invalid alert transition"):
            orchestrator.mark_delivered(alert.id, NOW)

    @pytest.mark.asyncio
    async def test_schedule_requires_delivery_time(self, settings):
        orchestrator = AlertOrchestrator(settings)
        alert = (await orchestrator.process(_assessment(settings), [])).created[0]

        with pytest.raises(ValueError):
            orchestrator.mark_scheduled(alert, NOW)

    @pytest.mark.asyncio
    async def test_due_alerts(self, settings):
        orchestrator = AlertOrchestrator(settings)
        alert = (await orchestrator.process(_assessment(settings), [])).created[0]
        alert.delivery_time = NOW + timedelta(hours=18)
        orchestrator.mark_scheduled(alert, NOW)

        assert orchestrator.due_alerts(NOW) == []
        assert orchestrator.due_alerts(NOW + timedelta(hours=18)) == [alert]


class TestPriority:
    def test_severity_dominates_urgency(self):
        assert compute_priority(Severity.HIGH, 1000.0) > compute_priority(Severity.MEDIUM, 0.0)

    def test_sooner_event_higher_priority(self):
        assert compute_priority(Severity.HIGH, 24.0) > compute_priority(Severity.HIGH, 48.0)
