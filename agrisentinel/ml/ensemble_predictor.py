"""
Ensemble Predictor

Runs every active model adapter for each requested risk type and combines the
responses into one confidence-weighted EnsemblePrediction per risk type:
- Adapter calls run in parallel on a bounded pool with a per-call timeout
- Probability: inverse-variance weighted mean, weight = accuracy x data quality
- Confidence: model agreement, response fraction and input quality
- Fallback: climatological baseline with capped confidence when too few models respond
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from agrisentinel.config import PipelineSettings, get_settings
from agrisentinel.domain.entities import (
    AdminNotification,
    EnsemblePrediction,
    FeatureSnapshot,
    ModelPrediction,
)
from agrisentinel.domain.enums import RiskType
from agrisentinel.domain.severity import classify_severity
from agrisentinel.exceptions import ModelUnavailableError
from agrisentinel.ml.baseline import BASELINE_MODEL_ID, ClimatologicalBaseline
from agrisentinel.ml.confidence_calculator import ConfidenceCalculator, get_confidence_calculator
from agrisentinel.ml.model_adapters import Predictor
from agrisentinel.services.events import MODEL_DEGRADATION, EventPort, LoggingEventPort

logger = logging.getLogger(__name__)


class EnsemblePredictor:
    """
    Combines heterogeneous prediction models into one scored output per risk type.

    Never raises for model failures: every requested risk type gets a prediction.
    """

    def __init__(
        self,
        models: Sequence[Predictor],
        accuracy_weights: Optional[Dict[str, float]] = None,
        settings: Optional[PipelineSettings] = None,
        events: Optional[EventPort] = None,
        baseline: Optional[ClimatologicalBaseline] = None,
        confidence_calculator: Optional[ConfidenceCalculator] = None
    ):
        self.models = list(models)
        self.accuracy_weights = dict(accuracy_weights or {})
        self.settings = settings or get_settings()
        self.events = events or LoggingEventPort()
        self.baseline = baseline or ClimatologicalBaseline()
        self.confidence_calculator = confidence_calculator or get_confidence_calculator()

    def models_for(self, risk_type: RiskType) -> List[Predictor]:
        return [model for model in self.models if risk_type in model.risk_types]

    async def predict(
        self,
        snapshot: FeatureSnapshot,
        risk_types: Sequence[RiskType]
    ) -> List[EnsemblePrediction]:
        """
        Predict every requested risk type for a snapshot.

        Args:
            snapshot: Feature snapshot for one farm and cycle
            risk_types: Risk types to predict

        Returns:
            One EnsemblePrediction per risk type, in request order
        """
        semaphore = asyncio.Semaphore(max(1, self.settings.model_worker_pool))

        calls: List[Tuple[RiskType, Predictor]] = []
        for risk_type in risk_types:
            for model in self.models_for(risk_type):
                calls.append((risk_type, model))

        results = await asyncio.gather(*[
            self._score_bounded(semaphore, model, snapshot, risk_type)
            for risk_type, model in calls
        ])

        responses: Dict[RiskType, List[ModelPrediction]] = {risk_type: [] for risk_type in risk_types}
        for (risk_type, _), result in zip(calls, results):
            if result is not None:
                responses[risk_type].append(result)

        predictions = []
        for risk_type in risk_types:
            expected = len(self.models_for(risk_type))
            predictions.append(self._combine(snapshot, risk_type, responses[risk_type], expected))

        return predictions

    async def _score_bounded(
        self,
        semaphore: asyncio.Semaphore,
        model: Predictor,
        snapshot: FeatureSnapshot,
        risk_type: RiskType
    ) -> Optional[ModelPrediction]:
        """Run one adapter; any failure is absorbed and reported as None"""
        async with semaphore:
            try:
                return await self._score_with_timeout(model, snapshot, risk_type)
            except ModelUnavailableError as e:
                logger.warning(f"{e} (farm {snapshot.farm_id}, {risk_type.value})")
                return None

    async def _score_with_timeout(
        self,
        model: Predictor,
        snapshot: FeatureSnapshot,
        risk_type: RiskType
    ) -> ModelPrediction:
        try:
            prediction = await asyncio.wait_for(
                model.score(snapshot, risk_type),
                timeout=self.settings.model_timeout_seconds
            )
        except asyncio.TimeoutError:
            raise ModelUnavailableError(
                model.model_id, f"timed out after {self.settings.model_timeout_seconds}s"
            )
        except ModelUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Model {model.model_id} raised: {e}", exc_info=True)
            raise ModelUnavailableError(model.model_id, str(e))

        if prediction.risk_type != risk_type:
            raise ModelUnavailableError(
                model.model_id, f"returned {prediction.risk_type.value} for {risk_type.value}"
            )
        return prediction

    def _minimum_responders(self, expected: int) -> int:
        # Risk types covered by fewer models than the configured minimum
        # can still be predicted when every one of them responds.
        return max(1, min(self.settings.min_responding_models, expected))

    def _combine(
        self,
        snapshot: FeatureSnapshot,
        risk_type: RiskType,
        responses: List[ModelPrediction],
        expected: int
    ) -> EnsemblePrediction:
        if expected == 0 or len(responses) < self._minimum_responders(expected):
            return self._fallback(snapshot, risk_type, responses, expected)

        probabilities = np.array([r.probability for r in responses], dtype=float)
        weights = np.array([self._weight(r.model_id, snapshot) for r in responses], dtype=float)
        if weights.sum() <= 0:
            weights = np.ones_like(probabilities)

        probability = float(np.clip(np.average(probabilities, weights=weights), 0.0, 1.0))

        confidence = self.confidence_calculator.calculate_confidence(
            probabilities.tolist(),
            expected,
            snapshot.data_quality_score,
            snapshot.source_count
        )

        event_time, window_start, window_end = self._event_window(snapshot, risk_type, responses, weights)

        logger.info(
            f"Ensemble {risk_type.value} for farm {snapshot.farm_id}: p={probability:.3f} "
            f"confidence={confidence['confidence_score']:.3f} ({len(responses)}/{expected} models)"
        )

        return EnsemblePrediction(
            risk_type=risk_type,
            probability=probability,
            severity=classify_severity(probability, risk_type),
            confidence=confidence["confidence_score"],
            contributing_models=sorted(r.model_id for r in responses),
            window_start=window_start,
            window_end=window_end,
            event_time=event_time,
            is_degraded=False,
            breakdown={
                **confidence["breakdown"],
                "responded": float(len(responses)),
                "expected": float(expected),
            },
        )

    def _weight(self, model_id: str, snapshot: FeatureSnapshot) -> float:
        accuracy = self.accuracy_weights.get(model_id, self.settings.default_model_accuracy)
        return accuracy * snapshot.data_quality_score

    def _event_window(
        self,
        snapshot: FeatureSnapshot,
        risk_type: RiskType,
        responses: List[ModelPrediction],
        weights: np.ndarray
    ) -> Tuple[datetime, datetime, datetime]:
        timed = [(r.event_time, w) for r, w in zip(responses, weights) if r.event_time is not None]
        if not timed:
            event_time = self.baseline.event_time(risk_type, snapshot.as_of)
            return event_time, event_time, event_time

        offsets = np.array([(t - snapshot.as_of).total_seconds() for t, _ in timed], dtype=float)
        offset_weights = np.array([w for _, w in timed], dtype=float)
        if offset_weights.sum() <= 0:
            offset_weights = np.ones_like(offsets)

        mean_offset = float(np.average(offsets, weights=offset_weights))
        event_time = snapshot.as_of + timedelta(seconds=mean_offset)
        times = [t for t, _ in timed]
        return event_time, min(times), max(times)

    def _fallback(
        self,
        snapshot: FeatureSnapshot,
        risk_type: RiskType,
        responses: List[ModelPrediction],
        expected: int
    ) -> EnsemblePrediction:
        """Deterministic climatological prior with capped confidence"""
        probability = float(np.clip(self.baseline.probability(risk_type, snapshot.as_of), 0.0, 1.0))
        event_time = self.baseline.event_time(risk_type, snapshot.as_of)

        ceiling = min(self.settings.degraded_confidence_ceiling, 0.5)
        input_quality = self.confidence_calculator.calculate_input_quality(
            snapshot.data_quality_score, snapshot.source_count
        )
        confidence = float(np.clip(ceiling * input_quality, 0.0, ceiling))

        logger.warning(
            f"Falling back to climatological baseline for {risk_type.value} on farm "
            f"{snapshot.farm_id}: {len(responses)}/{expected} models responded"
        )
        self.events.publish(AdminNotification(
            reason=MODEL_DEGRADATION,
            impact_estimate=f"{risk_type.value} confidence capped at {ceiling:.2f}",
            farm_id=snapshot.farm_id,
            details={
                "risk_type": risk_type.value,
                "responded": str(len(responses)),
                "expected": str(expected),
            },
        ))

        return EnsemblePrediction(
            risk_type=risk_type,
            probability=probability,
            severity=classify_severity(probability, risk_type),
            confidence=confidence,
            contributing_models=[BASELINE_MODEL_ID],
            window_start=event_time,
            window_end=event_time,
            event_time=event_time,
            is_degraded=True,
            breakdown={
                "responded": float(len(responses)),
                "expected": float(expected),
                "input_quality": round(input_quality, 4),
            },
        )
