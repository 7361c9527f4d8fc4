"""
Farmer Configuration

Immutable configuration supplied by the Farm/User service. A FarmContext is
snapshotted once at cycle start and used unchanged for the whole cycle.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agrisentinel.domain.enums import Channel, GrowthStage, RiskType, Severity

# Used when the farm has no threshold configuration at all
CONSERVATIVE_DEFAULT_SEVERITY = Severity.MEDIUM


class ThresholdConfig(BaseModel):
    """Per-farmer minimum severity to alert, per risk type"""
    model_config = ConfigDict(frozen=True)

    farm_id: str
    thresholds: Dict[RiskType, Severity] = Field(default_factory=dict)
    default_severity: Severity = CONSERVATIVE_DEFAULT_SEVERITY
    updated_at: Optional[datetime] = None

    def minimum_for(self, risk_type: RiskType) -> Severity:
        return self.thresholds.get(risk_type, self.default_severity)

    @classmethod
    def conservative_default(cls, farm_id: str) -> "ThresholdConfig":
        return cls(
            farm_id=farm_id,
            thresholds={risk_type: CONSERVATIVE_DEFAULT_SEVERITY for risk_type in RiskType},
        )


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(frozen=True)

    channels: List[Channel] = Field(default_factory=lambda: [Channel.SMS])
    language: str = "en"


class CropProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    crop_type: str = "wheat"
    growth_stage: GrowthStage = GrowthStage.VEGETATIVE
    area_hectares: float = Field(1.0, gt=0)


class ResourceConstraints(BaseModel):
    """What the farmer can spend on protective actions this cycle"""
    model_config = ConfigDict(frozen=True)

    budget: float = Field(500.0, ge=0)
    labor_hours: float = Field(16.0, ge=0)
    water_liters: float = Field(20000.0, ge=0)
    equipment: List[str] = Field(default_factory=list)


class FarmContext(BaseModel):
    """Stable per-cycle snapshot of everything the pipeline reads about a farm"""
    model_config = ConfigDict(frozen=True)

    farm_id: str
    thresholds: ThresholdConfig
    preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    crop: CropProfile = Field(default_factory=CropProfile)
    resources: ResourceConstraints = Field(default_factory=ResourceConstraints)
    thresholds_defaulted: bool = False
