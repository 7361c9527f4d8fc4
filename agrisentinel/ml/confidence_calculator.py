"""
Confidence Score Calculator

Calculates ensemble confidence (0-1) from:
- Model agreement (1 - normalized variance of model probabilities)
- Model response fraction (responded / expected)
- Input quality (snapshot data quality, penalised for single-source snapshots)
"""
import logging
from typing import Any, Dict, Sequence

import numpy as np

logger = logging.getLogger(__name__)

# Largest possible variance of values in [0, 1]
MAX_PROBABILITY_VARIANCE = 0.25

SINGLE_SOURCE_PENALTY = 0.85


class ConfidenceCalculator:
    """
    Calculates ensemble confidence scores.

    Formula: (60% agreement + 40% response_fraction) x (0.5 + 0.5 x input_quality)
    """

    def __init__(self):
        self.weights = {
            "agreement": 0.60,
            "response_fraction": 0.40,
        }

        # Confidence thresholds
        self.low_confidence_threshold = 0.70
        self.high_confidence_threshold = 0.80

    def calculate_confidence(
        self,
        probabilities: Sequence[float],
        expected_models: int,
        data_quality_score: float,
        source_count: int
    ) -> Dict[str, Any]:
        """
        Calculate confidence for one combined prediction.

        Args:
            probabilities: Probabilities of the models that responded
            expected_models: Number of models expected to respond
            data_quality_score: Snapshot quality (0-1)
            source_count: Number of independent sources in the snapshot

        Returns:
            Dictionary with confidence score, level and breakdown
        """
        agreement = self._calculate_agreement(probabilities)
        response_fraction = self._calculate_response_fraction(len(probabilities), expected_models)
        input_quality = self.calculate_input_quality(data_quality_score, source_count)

        model_support = (
            self.weights["agreement"] * agreement +
            self.weights["response_fraction"] * response_fraction
        )
        confidence_score = float(np.clip(model_support * (0.5 + 0.5 * input_quality), 0.0, 1.0))

        return {
            "confidence_score": round(confidence_score, 4),
            "confidence_level": self.get_confidence_tag(confidence_score),
            "breakdown": {
                "agreement": round(agreement, 4),
                "response_fraction": round(response_fraction, 4),
                "input_quality": round(input_quality, 4),
            },
            "is_uncertain": confidence_score < self.low_confidence_threshold,
        }

    def _calculate_agreement(self, probabilities: Sequence[float]) -> float:
        """
        Agreement among models.

        A single response (or none) has no dispersion and counts as full agreement;
        the response fraction carries the penalty for missing models.
        """
        if len(probabilities) < 2:
            return 1.0
        variance = float(np.var(np.asarray(probabilities, dtype=float)))
        return float(np.clip(1.0 - variance / MAX_PROBABILITY_VARIANCE, 0.0, 1.0))

    def _calculate_response_fraction(self, responded: int, expected: int) -> float:
        if expected <= 0:
            return 0.0
        return float(np.clip(responded / expected, 0.0, 1.0))

    def calculate_input_quality(self, data_quality_score: float, source_count: int) -> float:
        coverage = 1.0 if source_count >= 2 else SINGLE_SOURCE_PENALTY
        return float(np.clip(data_quality_score, 0.0, 1.0)) * coverage

    def get_confidence_tag(self, confidence_score: float) -> str:
        """
        Get human-readable confidence tag.

        Args:
            confidence_score: Confidence score (0-1)

        Returns:
            Tag string ("low", "medium", "high")
        """
        if confidence_score < self.low_confidence_threshold:
            return "low"
        elif confidence_score < self.high_confidence_threshold:
            return "medium"
        else:
            return "high"


# Singleton instance
_confidence_calculator_instance = None


def get_confidence_calculator() -> ConfidenceCalculator:
    """Get singleton ConfidenceCalculator instance"""
    global _confidence_calculator_instance
    if _confidence_calculator_instance is None:
        _confidence_calculator_instance = ConfidenceCalculator()
    return _confidence_calculator_instance
