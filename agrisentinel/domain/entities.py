"""
Pipeline Entities

Records passed between the decision pipeline stages. Inputs and derived
values are frozen; Alert and DeliveryTicket are mutable because their owners
move them through state transitions.
"""
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from agrisentinel.domain.enums import (
    AlertState,
    Channel,
    CycleStatus,
    DeliveryStatus,
    RiskType,
    Severity,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from start to end"""
    return (end - start).total_seconds() / 3600.0


class Observation(BaseModel):
    """One validated environmental reading"""
    model_config = ConfigDict(frozen=True)

    farm_id: str
    timestamp: AwareDatetime
    source_id: str
    measurements: Dict[str, float]
    quality_score: float = Field(..., ge=0, le=1)


class FeatureSnapshot(BaseModel):
    """Aggregated, model-ready features for one farm and one cycle"""
    model_config = ConfigDict(frozen=True)

    farm_id: str
    as_of: datetime
    features: Dict[str, float]
    sources: List[str] = Field(default_factory=list)
    data_quality_score: float = Field(1.0, ge=0, le=1)

    @property
    def source_count(self) -> int:
        return len(set(self.sources))


class ModelPrediction(BaseModel):
    """Raw output of a single model adapter"""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    risk_type: RiskType
    probability: float = Field(..., ge=0, le=1)
    raw_confidence: float = Field(..., ge=0, le=1)
    event_time: Optional[datetime] = None


class EnsemblePrediction(BaseModel):
    """Confidence-weighted combination of model outputs for one risk type"""
    model_config = ConfigDict(frozen=True)

    risk_type: RiskType
    probability: float = Field(..., ge=0, le=1)
    severity: Severity
    confidence: float = Field(..., ge=0, le=1)
    contributing_models: List[str] = Field(default_factory=list)
    window_start: datetime
    window_end: datetime
    event_time: datetime
    is_degraded: bool = False
    breakdown: Dict[str, float] = Field(default_factory=dict)


class AssessedPrediction(BaseModel):
    """An ensemble prediction after evaluation against farmer thresholds"""
    model_config = ConfigDict(frozen=True)

    prediction: EnsemblePrediction
    severity: Severity
    hours_to_event: float
    actionable: bool
    uncertain: bool
    qualifies: bool
    best_effort: bool = False

    @property
    def risk_type(self) -> RiskType:
        return self.prediction.risk_type

    @property
    def alertable(self) -> bool:
        return self.qualifies and (self.actionable or self.best_effort)


class RiskAssessment(BaseModel):
    """Farm-level summary of one cycle's predictions"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"ra_{uuid.uuid4().hex[:12]}")
    farm_id: str
    assessed_at: datetime
    predictions: List[AssessedPrediction]
    overall_severity: Optional[Severity] = None
    data_quality_score: float = Field(1.0, ge=0, le=1)
    uncertain: bool = False
    threshold_version: Optional[datetime] = None

    @property
    def alertable(self) -> List[AssessedPrediction]:
        return [p for p in self.predictions if p.alertable]

    @property
    def triggers_alert(self) -> bool:
        return self.overall_severity is not None


class Recommendation(BaseModel):
    """A ranked protective action"""
    model_config = ConfigDict(frozen=True)

    action: str
    description: str
    risk_type: RiskType
    urgency: str
    expected_effectiveness: float = Field(..., ge=0, le=1)
    cost: float = Field(..., ge=0)
    time_to_implement_hours: float = Field(..., ge=0)
    deadline: datetime
    feasibility: float = Field(..., ge=0, le=1)
    score: float = Field(..., ge=0)
    score_rank: int = Field(..., ge=1)
    emergency: bool = False


class Alert(BaseModel):
    """A farmer-facing notification unit, owned by the orchestrator until handed off"""
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: f"alert_{uuid.uuid4().hex[:12]}")
    farm_id: str
    risk_type: RiskType
    severity: Severity
    probability: float = Field(..., ge=0, le=1)
    confidence: float = Field(..., ge=0, le=1)
    priority: float = 0.0
    recommendations: List[Recommendation] = Field(default_factory=list)
    event_time: datetime
    delivery_time: Optional[datetime] = None
    expiration_time: datetime
    state: AlertState = AlertState.PENDING
    uncertain: bool = False
    best_effort: bool = False
    best_effort_immediate: bool = False
    message: str = ""
    cycle_id: Optional[str] = None
    refresh_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    scheduled_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    @property
    def key(self):
        return (self.farm_id, self.risk_type)

    def hours_to_event(self, now: datetime) -> float:
        return hours_between(now, self.event_time)


class DeliveryAck(BaseModel):
    """Transport acknowledgement for a single send"""
    model_config = ConfigDict(frozen=True)

    channel: Channel
    message_id: str
    confirmed: bool = True


class DeliveryTicket(BaseModel):
    """One delivery record per (alert, channel)"""
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: f"tkt_{uuid.uuid4().hex[:12]}")
    alert_id: str
    channel: Channel
    attempt_count: int = 0
    status: DeliveryStatus = DeliveryStatus.PENDING
    last_error: Optional[str] = None
    message_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def succeeded(self) -> bool:
        return self.status in (DeliveryStatus.SENT, DeliveryStatus.CONFIRMED)


class AdminNotification(BaseModel):
    """Operator-facing degradation/escalation event"""
    model_config = ConfigDict(frozen=True)

    reason: str
    impact_estimate: str
    farm_id: Optional[str] = None
    details: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class CycleResult(BaseModel):
    """Summary of one farm-assessment cycle"""
    cycle_id: str
    farm_id: str
    status: CycleStatus
    started_at: datetime
    duration_ms: float = 0.0
    assessment: Optional[RiskAssessment] = None
    alerts_created: List[str] = Field(default_factory=list)
    alerts_refreshed: List[str] = Field(default_factory=list)
    alerts_suppressed: List[str] = Field(default_factory=list)
    alerts_dispatched: List[str] = Field(default_factory=list)
    reason: Optional[str] = None
