"""
Severity banding.

severity = band(probability x impact(risk_type)). Shared by the ensemble
predictor (preliminary label) and the risk evaluator (authoritative label).
"""
from agrisentinel.domain.enums import RiskType, Severity

RISK_IMPACT = {
    RiskType.DROUGHT: 0.8,
    RiskType.FROST: 0.9,
    RiskType.HEAT_STRESS: 0.7,
    RiskType.FLOOD: 1.0,
    RiskType.PEST: 0.6,
    RiskType.DISEASE: 0.65,
}

# Lower bound of each band, checked from the top down
SEVERITY_BANDS = [
    (0.80, Severity.CRITICAL),
    (0.50, Severity.HIGH),
    (0.25, Severity.MEDIUM),
]


def impact_for(risk_type: RiskType) -> float:
    return RISK_IMPACT.get(risk_type, 1.0)


def classify_severity(probability: float, risk_type: RiskType) -> Severity:
    """Map probability x impact onto the fixed severity bands"""
    score = probability * impact_for(risk_type)
    for lower_bound, severity in SEVERITY_BANDS:
        if score >= lower_bound:
            return severity
    return Severity.LOW
