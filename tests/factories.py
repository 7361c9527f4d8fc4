"""Builders shared by the unit and integration tests"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from agrisentinel.domain.entities import (
    Alert,
    DeliveryAck,
    EnsemblePrediction,
    FeatureSnapshot,
    ModelPrediction,
    Observation,
)
from agrisentinel.domain.enums import Channel, RiskType, Severity
from agrisentinel.domain.severity import classify_severity

NOW = datetime(2026, 7, 15, 6, 0, tzinfo=timezone.utc)


def make_snapshot(
    farm_id: str = "farm_1",
    as_of: datetime = NOW,
    quality: float = 1.0,
    sources: Sequence[str] = ("soil_probe", "weather_station"),
    features: Optional[Dict[str, float]] = None
) -> FeatureSnapshot:
    return FeatureSnapshot(
        farm_id=farm_id,
        as_of=as_of,
        features=features or {"soil_moisture_mean": 12.0, "rainfall_mm_mean": 0.0},
        sources=list(sources),
        data_quality_score=quality,
    )


def make_prediction(
    risk_type: RiskType = RiskType.DROUGHT,
    probability: float = 0.8,
    confidence: float = 0.85,
    event_hours: float = 30.0,
    as_of: datetime = NOW,
    degraded: bool = False
) -> EnsemblePrediction:
    event_time = as_of + timedelta(hours=event_hours)
    return EnsemblePrediction(
        risk_type=risk_type,
        probability=probability,
        severity=classify_severity(probability, risk_type),
        confidence=confidence,
        contributing_models=["stub"],
        window_start=event_time,
        window_end=event_time,
        event_time=event_time,
        is_degraded=degraded,
    )


def make_alert(
    farm_id: str = "farm_1",
    risk_type: RiskType = RiskType.DROUGHT,
    severity: Severity = Severity.HIGH,
    probability: float = 0.7,
    event_hours: float = 30.0,
    now: datetime = NOW
) -> Alert:
    event_time = now + timedelta(hours=event_hours)
    return Alert(
        farm_id=farm_id,
        risk_type=risk_type,
        severity=severity,
        probability=probability,
        confidence=0.8,
        event_time=event_time,
        expiration_time=event_time,
        message=f"{severity.value} {risk_type.value}",
        created_at=now,
        updated_at=now,
    )


def make_observations(
    farm_id: str = "farm_1",
    now: datetime = NOW,
    hours: int = 6,
    sources: Sequence[str] = ("soil_probe", "weather_station"),
    quality: float = 0.9
) -> List[Observation]:
    observations = []
    for i in range(hours):
        observations.append(Observation(
            farm_id=farm_id,
            timestamp=now - timedelta(hours=hours - 1 - i),
            source_id=sources[i % len(sources)],
            measurements={
                "soil_moisture": 20.0 - i,
                "rainfall_mm": 0.0,
                "temperature_max": 34.0 + 0.5 * i,
                "temperature_min": 21.0,
                "humidity": 35.0,
            },
            quality_score=quality,
        ))
    return observations


class FakeModel:
    """Model adapter with a fixed answer, optional delay and optional failure"""

    def __init__(
        self,
        model_id: str,
        risk_types: Sequence[RiskType] = (RiskType.DROUGHT,),
        probability: float = 0.6,
        event_hours: float = 30.0,
        delay: float = 0.0,
        error: Optional[Exception] = None
    ):
        self.model_id = model_id
        self.risk_types = tuple(risk_types)
        self.probability = probability
        self.event_hours = event_hours
        self.delay = delay
        self.error = error
        self.calls = 0

    async def score(self, snapshot: FeatureSnapshot, risk_type: RiskType) -> ModelPrediction:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ModelPrediction(
            model_id=self.model_id,
            risk_type=risk_type,
            probability=self.probability,
            raw_confidence=1.0,
            event_time=snapshot.as_of + timedelta(hours=self.event_hours),
        )


class StubPredictor:
    """Ensemble stand-in returning fixed (probability, confidence, hours) per risk type"""

    def __init__(
        self,
        overrides: Optional[Dict[RiskType, Tuple[float, float, float]]] = None,
        default: Tuple[float, float, float] = (0.05, 0.9, 72.0)
    ):
        self.overrides = overrides or {}
        self.default = default

    async def predict(self, snapshot: FeatureSnapshot, risk_types: Sequence[RiskType]) -> List[EnsemblePrediction]:
        predictions = []
        for risk_type in risk_types:
            probability, confidence, hours = self.overrides.get(risk_type, self.default)
            predictions.append(make_prediction(risk_type, probability, confidence, hours, snapshot.as_of))
        return predictions


class RecordingTransport:
    """Transport that fails the first `failures[channel]` sends on each channel"""

    def __init__(self, failures: Optional[Dict[Channel, int]] = None, confirmed: bool = True):
        self.failures = dict(failures or {})
        self.confirmed = confirmed
        self.sent: List[Tuple[Channel, dict]] = []
        self.attempts: Dict[Channel, int] = {}

    async def send(self, channel: Channel, payload: dict) -> DeliveryAck:
        self.attempts[channel] = self.attempts.get(channel, 0) + 1
        if self.failures.get(channel, 0) > 0:
            self.failures[channel] -= 1
            raise ConnectionError(f"{channel.value} gateway unavailable")
        self.sent.append((channel, payload))
        return DeliveryAck(channel=channel, message_id=f"msg_{len(self.sent)}", confirmed=self.confirmed)
