"""
Unit tests for RiskEvaluator

Tests lead-time rule, uncertainty flag, farmer thresholds and overall severity.
"""
import pytest

from agrisentinel.config import PipelineSettings
from agrisentinel.domain.enums import RiskType, Severity
from agrisentinel.domain.farm import ThresholdConfig
from agrisentinel.services.risk_evaluator import RiskEvaluator, actionable_predictions
from factories import NOW, make_prediction


def _thresholds(**overrides):
    thresholds = {RiskType(name): severity for name, severity in overrides.items()}
    return ThresholdConfig(farm_id="farm_1", thresholds=thresholds)


class TestLeadTime:
    """Test the 24h actionable rule"""

    def test_23_hours_not_actionable(self, settings):
        prediction = make_prediction(RiskType.DROUGHT, 0.8, 0.85, event_hours=23)

        assessment = RiskEvaluator(settings).evaluate(
            "farm_1", [prediction], _thresholds(drought=Severity.MEDIUM), now=NOW
        )

        [assessed] = assessment.predictions
        assert assessed.qualifies is True
        assert assessed.actionable is False
        assert assessed.alertable is False
        assert assessment.overall_severity is None

    def test_24_hours_actionable(self, settings):
        prediction = make_prediction(RiskType.DROUGHT, 0.8, 0.85, event_hours=24)

        assessment = RiskEvaluator(settings).evaluate(
            "farm_1", [prediction], _thresholds(drought=Severity.MEDIUM), now=NOW
        )

        assert assessment.predictions[0].actionable is True
        assert assessment.overall_severity == Severity.HIGH

    def test_best_effort_for_high_severity_when_enabled(self):
        """Test short-notice High risks are promoted only with best effort enabled"""
        settings = PipelineSettings(allow_best_effort=True)
        prediction = make_prediction(RiskType.DROUGHT, 0.8, 0.85, event_hours=10)

        assessment = RiskEvaluator(settings).evaluate(
            "farm_1", [prediction], _thresholds(drought=Severity.MEDIUM), now=NOW
        )

        [assessed] = assessment.predictions
        assert assessed.best_effort is True
        assert assessed.alertable is True
        assert assessment.overall_severity == Severity.HIGH

    def test_no_best_effort_for_medium_severity(self):
        settings = PipelineSettings(allow_best_effort=True)
        prediction = make_prediction(RiskType.DROUGHT, 0.5, 0.85, event_hours=10)

        assessment = RiskEvaluator(settings).evaluate(
            "farm_1", [prediction], _thresholds(drought=Severity.MEDIUM), now=NOW
        )

        assert assessment.predictions[0].severity == Severity.MEDIUM
        assert assessment.predictions[0].best_effort is False
        assert assessment.overall_severity is None


class TestThresholdsAndConfidence:
    """Test farmer thresholds and the uncertainty flag"""

    def test_low_confidence_flags_uncertain_but_still_alerts(self, settings):
        prediction = make_prediction(RiskType.DROUGHT, 0.8, confidence=0.65, event_hours=30)

        assessment = RiskEvaluator(settings).evaluate(
            "farm_1", [prediction], _thresholds(drought=Severity.MEDIUM), now=NOW
        )

        assert assessment.predictions[0].uncertain is True
        assert assessment.predictions[0].alertable is True
        assert assessment.uncertain is True
        assert assessment.triggers_alert is True

    def test_threshold_above_severity_does_not_qualify(self, settings):
        prediction = make_prediction(RiskType.DROUGHT, 0.8, 0.85, event_hours=30)

        assessment = RiskEvaluator(settings).evaluate(
            "farm_1", [prediction], _thresholds(drought=Severity.CRITICAL), now=NOW
        )

        assert assessment.predictions[0].qualifies is False
        assert assessment.overall_severity is None

    def test_overall_is_max_alertable_severity(self, settings):
        predictions = [
            make_prediction(RiskType.DROUGHT, 0.8, 0.85, event_hours=30),   # high
            make_prediction(RiskType.FLOOD, 0.9, 0.85, event_hours=40),     # critical
            make_prediction(RiskType.PEST, 0.5, 0.85, event_hours=30),      # medium
        ]
        thresholds = _thresholds(drought=Severity.MEDIUM, flood=Severity.MEDIUM, pest=Severity.MEDIUM)

        assessment = RiskEvaluator(settings).evaluate("farm_1", predictions, thresholds, now=NOW)

        assert assessment.overall_severity == Severity.CRITICAL
        ordered = actionable_predictions(assessment)
        assert [p.risk_type for p in ordered] == [RiskType.FLOOD, RiskType.DROUGHT, RiskType.PEST]

    def test_default_severity_applies_to_unlisted_risks(self, settings):
        """Test risks without a per-risk threshold use the config default"""
        prediction = make_prediction(RiskType.PEST, 0.5, 0.85, event_hours=30)

        assessment = RiskEvaluator(settings).evaluate("farm_1", [prediction], _thresholds(), now=NOW)

        assert assessment.overall_severity == Severity.MEDIUM

    def test_threshold_version_recorded(self, settings):
        thresholds = ThresholdConfig(farm_id="farm_1", updated_at=NOW)

        assessment = RiskEvaluator(settings).evaluate("farm_1", [], thresholds, now=NOW)

        assert assessment.threshold_version == NOW
        assert assessment.overall_severity is None

    @pytest.mark.parametrize("quality,expected", [(1.4, 1.0), (-0.2, 0.0), (0.6, 0.6)])
    def test_quality_clamped(self, settings, quality, expected):
        assessment = RiskEvaluator(settings).evaluate(
            "farm_1", [], _thresholds(), data_quality_score=quality, now=NOW
        )

        assert assessment.data_quality_score == pytest.approx(expected)
