"""
Prediction Model Adapters

Every model, whatever its technique, exposes the same capability:
score(snapshot, risk_type) -> ModelPrediction. Agronomic index models work
directly on snapshot features; SklearnClassifierModel wraps a trained
scikit-learn classifier loaded from disk.
"""
import asyncio
import logging
import math
import os
import pickle
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol, Sequence

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score, f1_score, precision_score, recall_score
from sklearn.model_selection import train_test_split

from agrisentinel.domain.entities import FeatureSnapshot, ModelPrediction
from agrisentinel.domain.enums import RiskType
from agrisentinel.exceptions import ModelUnavailableError

logger = logging.getLogger(__name__)


class Predictor(Protocol):
    """Uniform model capability consumed by the ensemble predictor"""
    model_id: str
    risk_types: Sequence[RiskType]

    async def score(self, snapshot: FeatureSnapshot, risk_type: RiskType) -> ModelPrediction: ...


def _sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def _clip(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return float(min(max(value, low), high))


def index_prediction(
    model: Predictor,
    required_features: Sequence[str],
    onset_hours: Dict[RiskType, float],
    probability: Callable[[Dict[str, float], RiskType], float],
    snapshot: FeatureSnapshot,
    risk_type: RiskType
) -> ModelPrediction:
    """
    Shared scoring for agronomic index models.

    raw_confidence is the fraction of required features present in the
    snapshot. Stronger signals are expected to materialise sooner.
    """
    if risk_type not in model.risk_types:
        raise ModelUnavailableError(model.model_id, f"does not score {risk_type.value}")

    present = [name for name in required_features if name in snapshot.features]
    if not present:
        raise ModelUnavailableError(model.model_id, "no usable features in snapshot")

    value = _clip(probability(snapshot.features, risk_type))
    base_hours = onset_hours.get(risk_type, 72.0)

    return ModelPrediction(
        model_id=model.model_id,
        risk_type=risk_type,
        probability=value,
        raw_confidence=_clip(len(present) / len(required_features)),
        event_time=snapshot.as_of + timedelta(hours=base_hours * (1.5 - 0.5 * value)),
    )


class DroughtIndexModel:
    """Soil-moisture and rainfall deficit index"""
    model_id = "drought_index"
    risk_types = (RiskType.DROUGHT,)
    required_features = ("soil_moisture_mean", "rainfall_mm_mean", "temperature_max_max")
    onset_hours = {RiskType.DROUGHT: 96.0}

    async def score(self, snapshot: FeatureSnapshot, risk_type: RiskType) -> ModelPrediction:
        return index_prediction(
            self, self.required_features, self.onset_hours, self._probability, snapshot, risk_type
        )

    def _probability(self, features, risk_type):
        dryness = _clip(1.0 - features.get("soil_moisture_mean", 35.0) / 35.0)
        rain_deficit = _clip(1.0 - features.get("rainfall_mm_mean", 4.0) / 4.0)
        heat = _clip((features.get("temperature_max_max", 30.0) - 30.0) / 10.0)
        return 0.5 * dryness + 0.3 * rain_deficit + 0.2 * heat


class HeatStressModel:
    """Maximum-temperature exceedance; also feeds the drought ensemble"""
    model_id = "heat_stress"
    risk_types = (RiskType.HEAT_STRESS, RiskType.DROUGHT)
    required_features = ("temperature_max_max", "temperature_max_trend", "humidity_mean")
    onset_hours = {RiskType.HEAT_STRESS: 48.0, RiskType.DROUGHT: 120.0}

    async def score(self, snapshot: FeatureSnapshot, risk_type: RiskType) -> ModelPrediction:
        return index_prediction(
            self, self.required_features, self.onset_hours, self._probability, snapshot, risk_type
        )

    def _probability(self, features, risk_type):
        t_max = features.get("temperature_max_max", 30.0)
        # Project 24h ahead along the observed trend
        projected = t_max + 24.0 * features.get("temperature_max_trend", 0.0)
        if risk_type == RiskType.DROUGHT:
            dry_air = _clip(1.0 - features.get("humidity_mean", 50.0) / 60.0)
            return 0.6 * _sigmoid((projected - 34.0) / 2.5) + 0.4 * dry_air
        return _sigmoid((projected - 36.0) / 2.0)


class FrostRiskModel:
    """Minimum-temperature projection"""
    model_id = "frost_risk"
    risk_types = (RiskType.FROST,)
    required_features = ("temperature_min_min", "temperature_min_trend")
    onset_hours = {RiskType.FROST: 36.0}

    async def score(self, snapshot: FeatureSnapshot, risk_type: RiskType) -> ModelPrediction:
        return index_prediction(
            self, self.required_features, self.onset_hours, self._probability, snapshot, risk_type
        )

    def _probability(self, features, risk_type):
        t_min = features.get("temperature_min_min", 10.0)
        projected = t_min + 24.0 * features.get("temperature_min_trend", 0.0)
        return _sigmoid((2.0 - projected) / 1.5)


class PestPressureModel:
    """Warm-humid degree-day proxy for pest and fungal disease pressure"""
    model_id = "pest_pressure"
    risk_types = (RiskType.PEST, RiskType.DISEASE)
    required_features = ("humidity_mean", "temperature_max_mean", "leaf_wetness_hours_mean")
    onset_hours = {RiskType.PEST: 120.0, RiskType.DISEASE: 96.0}

    async def score(self, snapshot: FeatureSnapshot, risk_type: RiskType) -> ModelPrediction:
        return index_prediction(
            self, self.required_features, self.onset_hours, self._probability, snapshot, risk_type
        )

    def _probability(self, features, risk_type):
        humidity = _clip((features.get("humidity_mean", 50.0) - 50.0) / 40.0)
        warmth = _clip(1.0 - abs(features.get("temperature_max_mean", 26.0) - 27.0) / 12.0)
        wetness = _clip(features.get("leaf_wetness_hours_mean", 0.0) / 12.0)
        if risk_type == RiskType.DISEASE:
            return 0.4 * humidity + 0.2 * warmth + 0.4 * wetness
        return 0.35 * humidity + 0.5 * warmth + 0.15 * wetness


class RainfallExcessModel:
    """Rainfall intensity and saturation for flood and waterborne disease risk"""
    model_id = "rainfall_excess"
    risk_types = (RiskType.FLOOD, RiskType.DISEASE)
    required_features = ("rainfall_mm_max", "rainfall_mm_trend", "soil_moisture_latest")
    onset_hours = {RiskType.FLOOD: 30.0, RiskType.DISEASE: 120.0}

    async def score(self, snapshot: FeatureSnapshot, risk_type: RiskType) -> ModelPrediction:
        return index_prediction(
            self, self.required_features, self.onset_hours, self._probability, snapshot, risk_type
        )

    def _probability(self, features, risk_type):
        intensity = _clip(features.get("rainfall_mm_max", 0.0) / 80.0)
        rising = _clip(features.get("rainfall_mm_trend", 0.0) * 2.0)
        saturation = _clip((features.get("soil_moisture_latest", 30.0) - 30.0) / 30.0)
        if risk_type == RiskType.DISEASE:
            return 0.3 * intensity + 0.7 * saturation
        return 0.5 * intensity + 0.2 * rising + 0.3 * saturation


class SklearnClassifierModel:
    """
    Trained scikit-learn classifier for a single risk type.

    The model file is a pickle of {'model', 'feature_columns', 'risk_type',
    'accuracy', 'trained_at'}.
    """

    def __init__(self, model_path: str, model_id: Optional[str] = None, onset_hours: float = 72.0):
        self.model_path = model_path
        self.model_id = model_id or os.path.splitext(os.path.basename(model_path))[0]
        self.onset_hours = onset_hours
        self.model = None
        self.feature_columns: List[str] = []
        self.risk_types: Sequence[RiskType] = ()
        self.accuracy: Optional[float] = None

    def load_model(self):
        """Load trained model from disk"""
        if os.path.exists(self.model_path):
            with open(self.model_path, 'rb') as f:
                model_data = pickle.load(f)
                self.model = model_data['model']
                self.feature_columns = list(model_data['feature_columns'])
                self.risk_types = (RiskType(model_data['risk_type']),)
                self.accuracy = model_data.get('accuracy')
            logger.info(f"Loaded model {self.model_id} from {self.model_path}")
        else:
            logger.warning(f"Model file not found: {self.model_path}")
            self.model = None

    def save_model(self):
        """Save trained model to disk"""
        directory = os.path.dirname(self.model_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        model_data = {
            'model': self.model,
            'feature_columns': self.feature_columns,
            'risk_type': self.risk_types[0].value,
            'accuracy': self.accuracy,
            'trained_at': datetime.now(timezone.utc).isoformat(),
        }

        with open(self.model_path, 'wb') as f:
            pickle.dump(model_data, f)

        logger.info(f"Saved model to {self.model_path}")

    def train_model(self, X: pd.DataFrame, y: pd.Series, risk_type: RiskType) -> Dict[str, float]:
        """
        Train a Random Forest on labelled feature snapshots.

        Args:
            X: Feature matrix (one row per historical snapshot)
            y: 1 when the risk materialised within the horizon, else 0
            risk_type: Risk type the classifier predicts

        Returns:
            Dictionary of held-out metrics; accuracy becomes the ensemble weight
        """
        X_train, X_test, y_train, y_test = train_test_split(
            X, y, test_size=0.2, random_state=42, stratify=y
        )

        self.model = RandomForestClassifier(
            n_estimators=100,
            max_depth=12,
            min_samples_split=5,
            random_state=42,
            n_jobs=-1
        )
        self.model.fit(X_train, y_train)
        self.feature_columns = list(X.columns)
        self.risk_types = (risk_type,)

        y_pred = self.model.predict(X_test)
        metrics = {
            'accuracy': accuracy_score(y_test, y_pred),
            'precision': precision_score(y_test, y_pred, zero_division=0),
            'recall': recall_score(y_test, y_pred, zero_division=0),
            'f1_score': f1_score(y_test, y_pred, zero_division=0),
            'train_samples': len(X_train),
            'test_samples': len(X_test)
        }
        self.accuracy = float(metrics['accuracy'])

        logger.info(
            f"Model {self.model_id} trained for {risk_type.value}: "
            f"Accuracy={metrics['accuracy']:.2%}, F1={metrics['f1_score']:.2%}"
        )
        return metrics

    async def score(self, snapshot: FeatureSnapshot, risk_type: RiskType) -> ModelPrediction:
        if self.model is None:
            raise ModelUnavailableError(self.model_id, "model not loaded")
        if risk_type not in self.risk_types:
            raise ModelUnavailableError(self.model_id, f"does not score {risk_type.value}")

        # predict_proba is CPU-bound; keep it off the event loop
        probability = await asyncio.to_thread(self._predict_proba, snapshot.features)
        present = sum(1 for col in self.feature_columns if col in snapshot.features)
        coverage = present / len(self.feature_columns) if self.feature_columns else 0.0

        return ModelPrediction(
            model_id=self.model_id,
            risk_type=risk_type,
            probability=_clip(probability),
            raw_confidence=_clip(coverage),
            event_time=snapshot.as_of + timedelta(hours=self.onset_hours),
        )

    def _predict_proba(self, features: Dict[str, float]) -> float:
        feature_df = pd.DataFrame([features])

        # Ensure all expected columns are present
        for col in self.feature_columns:
            if col not in feature_df.columns:
                feature_df[col] = 0.0  # Default value for missing features

        feature_df = feature_df[self.feature_columns]
        probabilities = self.model.predict_proba(feature_df)
        return float(np.asarray(probabilities)[0, 1])
