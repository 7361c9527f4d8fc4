"""
Climatological baseline used as the degraded fallback when too few models
respond. Deterministic: the same (risk type, month) always yields the same prior.
"""
from datetime import datetime, timedelta
from typing import Dict, Tuple

from agrisentinel.domain.enums import RiskType

BASELINE_MODEL_ID = "climatological_baseline"

# Monthly prior probability, January..December
MONTHLY_PRIORS: Dict[RiskType, Tuple[float, ...]] = {
    RiskType.DROUGHT: (0.15, 0.20, 0.30, 0.40, 0.45, 0.30, 0.15, 0.12, 0.15, 0.20, 0.18, 0.15),
    RiskType.FROST: (0.35, 0.30, 0.15, 0.05, 0.01, 0.0, 0.0, 0.0, 0.01, 0.05, 0.15, 0.30),
    RiskType.HEAT_STRESS: (0.02, 0.05, 0.15, 0.30, 0.40, 0.35, 0.20, 0.18, 0.15, 0.08, 0.03, 0.02),
    RiskType.FLOOD: (0.03, 0.03, 0.04, 0.05, 0.08, 0.20, 0.35, 0.35, 0.25, 0.10, 0.05, 0.03),
    RiskType.PEST: (0.10, 0.10, 0.15, 0.20, 0.25, 0.30, 0.35, 0.35, 0.30, 0.25, 0.15, 0.10),
    RiskType.DISEASE: (0.08, 0.08, 0.10, 0.12, 0.15, 0.25, 0.35, 0.35, 0.30, 0.20, 0.10, 0.08),
}

# Typical onset horizon used when no model supplied an event time
DEFAULT_ONSET_HOURS: Dict[RiskType, float] = {
    RiskType.DROUGHT: 96.0,
    RiskType.FROST: 36.0,
    RiskType.HEAT_STRESS: 48.0,
    RiskType.FLOOD: 30.0,
    RiskType.PEST: 120.0,
    RiskType.DISEASE: 96.0,
}


class ClimatologicalBaseline:
    """Statistical prior that never fails"""
    model_id = BASELINE_MODEL_ID

    def probability(self, risk_type: RiskType, as_of: datetime) -> float:
        priors = MONTHLY_PRIORS.get(risk_type)
        if priors is None:
            return 0.1
        return priors[as_of.month - 1]

    def event_time(self, risk_type: RiskType, as_of: datetime) -> datetime:
        return as_of + timedelta(hours=DEFAULT_ONSET_HOURS.get(risk_type, 72.0))
