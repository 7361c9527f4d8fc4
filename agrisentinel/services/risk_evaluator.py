"""
Risk Evaluator

Maps ensemble predictions to severity levels, applies the lead-time rule and
the farmer's per-risk thresholds, and summarises the farm's risk for a cycle.
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from agrisentinel.config import PipelineSettings, get_settings
from agrisentinel.domain.entities import (
    AssessedPrediction,
    EnsemblePrediction,
    RiskAssessment,
    hours_between,
    utcnow,
)
from agrisentinel.domain.farm import ThresholdConfig
from agrisentinel.domain.severity import classify_severity

logger = logging.getLogger(__name__)


class RiskEvaluator:
    """
    Evaluates predictions against farmer thresholds.

    A prediction is:
    - actionable when its event is at least 24h away
    - uncertain when its confidence is below 0.70
    - qualifying when its severity meets the farmer's threshold for that risk
    Only qualifying, actionable predictions can become alerts (plus best-effort
    promotions when explicitly enabled).
    """

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or get_settings()

    def evaluate(
        self,
        farm_id: str,
        predictions: Sequence[EnsemblePrediction],
        thresholds: ThresholdConfig,
        data_quality_score: float = 1.0,
        now: Optional[datetime] = None
    ) -> RiskAssessment:
        """
        Evaluate one cycle's predictions for a farm.

        Args:
            farm_id: Farm being assessed
            predictions: Ensemble predictions, one per risk type
            thresholds: Threshold snapshot taken at cycle start
            data_quality_score: Quality of the snapshot the predictions came from
            now: Evaluation time (default: current UTC time)

        Returns:
            RiskAssessment; overall_severity is None when no alert should be triggered
        """
        now = now or utcnow()

        assessed = [self._assess(prediction, thresholds, now) for prediction in predictions]

        alertable = [p for p in assessed if p.alertable]
        overall_severity = max((p.severity for p in alertable), key=lambda s: s.rank, default=None)
        uncertain = any(p.uncertain for p in assessed)

        for p in assessed:
            if p.qualifies and not p.actionable and not p.best_effort:
                logger.info(
                    f"Farm {farm_id} {p.risk_type.value} at {p.severity.value} is only "
                    f"{p.hours_to_event:.1f}h away; retained for records, not alerted"
                )

        if overall_severity is None:
            logger.info(f"Farm {farm_id}: no prediction meets thresholds this cycle")
        else:
            logger.info(
                f"Farm {farm_id}: overall severity {overall_severity.value} "
                f"({len(alertable)} alertable risks, uncertain={uncertain})"
            )

        return RiskAssessment(
            farm_id=farm_id,
            assessed_at=now,
            predictions=assessed,
            overall_severity=overall_severity,
            data_quality_score=min(max(data_quality_score, 0.0), 1.0),
            uncertain=uncertain,
            threshold_version=thresholds.updated_at,
        )

    def _assess(
        self,
        prediction: EnsemblePrediction,
        thresholds: ThresholdConfig,
        now: datetime
    ) -> AssessedPrediction:
        severity = classify_severity(prediction.probability, prediction.risk_type)
        hours_to_event = hours_between(now, prediction.event_time)

        actionable = hours_to_event >= self.settings.actionable_lead_hours
        uncertain = prediction.confidence < self.settings.uncertainty_threshold
        qualifies = severity.at_least(thresholds.minimum_for(prediction.risk_type))

        best_effort = (
            self.settings.allow_best_effort
            and qualifies
            and not actionable
            and severity.is_high
            and hours_to_event > 0
        )

        return AssessedPrediction(
            prediction=prediction,
            severity=severity,
            hours_to_event=round(hours_to_event, 3),
            actionable=actionable,
            uncertain=uncertain,
            qualifies=qualifies,
            best_effort=best_effort,
        )


def actionable_predictions(assessment: RiskAssessment) -> List[AssessedPrediction]:
    """Predictions that may be promoted to alerts, most severe first"""
    return sorted(
        assessment.alertable,
        key=lambda p: (-p.severity.rank, p.hours_to_event, -p.prediction.probability)
    )
