"""Domain types for the AgriSentinel decision pipeline"""
from agrisentinel.domain.enums import (
    AlertState,
    Channel,
    CycleStatus,
    DeliveryStatus,
    GrowthStage,
    RiskType,
    Severity,
)
from agrisentinel.domain.entities import (
    AdminNotification,
    Alert,
    AssessedPrediction,
    CycleResult,
    DeliveryAck,
    DeliveryTicket,
    EnsemblePrediction,
    FeatureSnapshot,
    ModelPrediction,
    Observation,
    Recommendation,
    RiskAssessment,
)
from agrisentinel.domain.farm import (
    CropProfile,
    FarmContext,
    NotificationPreferences,
    ResourceConstraints,
    ThresholdConfig,
)

__all__ = [
    "AlertState",
    "Channel",
    "CycleStatus",
    "DeliveryStatus",
    "GrowthStage",
    "RiskType",
    "Severity",
    "AdminNotification",
    "Alert",
    "AssessedPrediction",
    "CycleResult",
    "DeliveryAck",
    "DeliveryTicket",
    "EnsemblePrediction",
    "FeatureSnapshot",
    "ModelPrediction",
    "Observation",
    "Recommendation",
    "RiskAssessment",
    "CropProfile",
    "FarmContext",
    "NotificationPreferences",
    "ResourceConstraints",
    "ThresholdConfig",
]
