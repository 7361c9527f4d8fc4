"""
Recommendation Synthesizer

Generates and ranks protective actions for each alertable risk.

Candidates come from a rule set keyed by (risk type, growth stage, crop type),
with "*" as a wildcard. Each candidate is scored as
    expected_effectiveness x feasibility(resources) / normalized_cost
and sorted by score (ties: quicker to implement first). Actions whose deadline
falls inside the emergency window are flagged and moved to the front.
"""
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from agrisentinel.config import PipelineSettings, get_settings
from agrisentinel.domain.entities import (
    AssessedPrediction,
    Recommendation,
    RiskAssessment,
    hours_between,
    utcnow,
)
from agrisentinel.domain.enums import GrowthStage, RiskType
from agrisentinel.domain.farm import CropProfile, ResourceConstraints

logger = logging.getLogger(__name__)

WILDCARD = "*"

# Cost normalisation floor for farms with little or no budget
REFERENCE_COST = 100.0

# Effectiveness multipliers: how much of the expected loss an action saves at
# each growth stage and for each crop's sensitivity
STAGE_SENSITIVITY = {
    GrowthStage.GERMINATION: 0.90,
    GrowthStage.VEGETATIVE: 1.00,
    GrowthStage.FLOWERING: 1.15,
    GrowthStage.GRAIN_FILL: 1.08,
    GrowthStage.MATURITY: 0.80,
}

CROP_SENSITIVITY = {
    "wheat": 1.00,
    "rice": 1.05,
    "maize": 0.95,
    "cotton": 0.90,
    "soybean": 1.02,
    "sugarcane": 0.92,
    "vegetables": 1.12,
}
# Crops outside the table get a stable factor in this range derived from the
# crop name, so crop type always shows in the score
UNKNOWN_CROP_SENSITIVITY_RANGE = (0.90, 1.10)


def crop_sensitivity(crop_type: str) -> float:
    crop = crop_type.strip().lower()
    if crop in CROP_SENSITIVITY:
        return CROP_SENSITIVITY[crop]
    low, high = UNKNOWN_CROP_SENSITIVITY_RANGE
    digest = int(hashlib.sha256(crop.encode("utf-8")).hexdigest()[:8], 16)
    return low + (high - low) * digest / 0xFFFFFFFF


def _rule(action, description, effectiveness, cost_per_ha, hours, labor_per_ha=0.0,
          water_per_ha=0.0, equipment=()) -> Dict[str, Any]:
    return {
        "action": action,
        "description": description,
        "effectiveness": effectiveness,
        "cost_per_ha": cost_per_ha,
        "time_to_implement_hours": hours,
        "labor_per_ha": labor_per_ha,
        "water_per_ha": water_per_ha,
        "equipment": tuple(equipment),
    }


RULES: Dict[tuple, List[Dict[str, Any]]] = {
    # Drought
    (RiskType.DROUGHT, WILDCARD, WILDCARD): [
        _rule("deficit_irrigation", "Apply deficit irrigation to the root zone",
              0.70, 40.0, 8.0, labor_per_ha=3.0, water_per_ha=8000.0, equipment=["pump"]),
        _rule("apply_mulch", "Spread straw mulch to cut soil evaporation",
              0.45, 25.0, 12.0, labor_per_ha=6.0),
        _rule("delay_fertilizer", "Postpone top-dressing until soil moisture recovers",
              0.25, 0.0, 1.0),
    ],
    (RiskType.DROUGHT, GrowthStage.FLOWERING.value, WILDCARD): [
        _rule("protective_irrigation", "Irrigate before flowering to protect pollination",
              0.75, 45.0, 6.0, labor_per_ha=3.0, water_per_ha=10000.0, equipment=["pump"]),
    ],
    (RiskType.DROUGHT, WILDCARD, "rice"): [
        _rule("maintain_standing_water", "Keep 3-5 cm of standing water in paddies",
              0.72, 30.0, 4.0, labor_per_ha=2.0, water_per_ha=15000.0),
    ],
    (RiskType.DROUGHT, WILDCARD, "maize"): [
        _rule("apply_antitranspirant", "Spray anti-transpirant on leaves",
              0.40, 35.0, 4.0, labor_per_ha=1.0, equipment=["sprayer"]),
    ],
    # Frost
    (RiskType.FROST, WILDCARD, WILDCARD): [
        _rule("overnight_sprinkling", "Run sprinklers through the coldest hours",
              0.70, 20.0, 2.0, labor_per_ha=1.0, water_per_ha=12000.0, equipment=["sprinkler"]),
        _rule("cover_crops", "Cover rows with frost cloth before sunset",
              0.60, 60.0, 6.0, labor_per_ha=8.0),
        _rule("pre_frost_irrigation", "Irrigate lightly the day before to store soil heat",
              0.45, 15.0, 3.0, labor_per_ha=1.0, water_per_ha=5000.0),
    ],
    (RiskType.FROST, GrowthStage.FLOWERING.value, WILDCARD): [
        _rule("run_frost_fans", "Run wind machines to mix warmer air into the canopy",
              0.75, 120.0, 2.0, labor_per_ha=0.5, equipment=["wind_machine"]),
    ],
    (RiskType.FROST, GrowthStage.GERMINATION.value, WILDCARD): [
        _rule("delay_sowing", "Hold remaining sowing until the cold spell passes",
              0.50, 0.0, 1.0),
    ],
    # Heat stress
    (RiskType.HEAT_STRESS, WILDCARD, WILDCARD): [
        _rule("evening_irrigation", "Irrigate in the evening to cool the canopy",
              0.60, 30.0, 4.0, labor_per_ha=2.0, water_per_ha=8000.0, equipment=["pump"]),
        _rule("kaolin_spray", "Apply kaolin clay film to reflect sunlight",
              0.45, 50.0, 5.0, labor_per_ha=1.5, equipment=["sprayer"]),
        _rule("shift_field_work", "Move field work to early morning",
              0.20, 0.0, 1.0),
    ],
    (RiskType.HEAT_STRESS, WILDCARD, "vegetables"): [
        _rule("shade_netting", "Install shade netting over beds",
              0.65, 90.0, 8.0, labor_per_ha=10.0),
    ],
    # Flood
    (RiskType.FLOOD, WILDCARD, WILDCARD): [
        _rule("clear_drainage", "Clear drainage channels and outlets",
              0.65, 20.0, 6.0, labor_per_ha=6.0),
        _rule("secure_inputs", "Move seed, fertilizer and equipment to high ground",
              0.30, 5.0, 2.0, labor_per_ha=2.0),
    ],
    (RiskType.FLOOD, GrowthStage.MATURITY.value, WILDCARD): [
        _rule("harvest_early", "Harvest mature fields before the water arrives",
              0.75, 80.0, 12.0, labor_per_ha=10.0, equipment=["harvester"]),
    ],
    (RiskType.FLOOD, WILDCARD, "rice"): [
        _rule("raise_bunds", "Raise and reinforce paddy bunds",
              0.60, 30.0, 8.0, labor_per_ha=8.0),
    ],
    # Pest
    (RiskType.PEST, WILDCARD, WILDCARD): [
        _rule("scout_fields", "Scout fields and count pests per plant",
              0.35, 5.0, 3.0, labor_per_ha=2.0),
        _rule("pheromone_traps", "Set pheromone traps along field edges",
              0.50, 25.0, 4.0, labor_per_ha=1.0),
        _rule("targeted_spray", "Spray recommended pesticide on hotspots only",
              0.70, 60.0, 4.0, labor_per_ha=1.5, equipment=["sprayer"]),
    ],
    (RiskType.PEST, WILDCARD, "cotton"): [
        _rule("release_biocontrol", "Release Trichogramma egg parasitoids",
              0.55, 30.0, 3.0, labor_per_ha=1.0),
    ],
    # Disease
    (RiskType.DISEASE, WILDCARD, WILDCARD): [
        _rule("preventive_fungicide", "Apply preventive fungicide before infection window",
              0.70, 55.0, 4.0, labor_per_ha=1.5, equipment=["sprayer"]),
        _rule("improve_airflow", "Thin canopy and remove weeds to improve airflow",
              0.30, 10.0, 6.0, labor_per_ha=4.0),
        _rule("remove_infected_plants", "Remove and destroy infected plants",
              0.40, 5.0, 6.0, labor_per_ha=5.0),
    ],
    (RiskType.DISEASE, WILDCARD, "rice"): [
        _rule("intermittent_drainage", "Drain paddies intermittently to break infection cycle",
              0.45, 5.0, 3.0, labor_per_ha=1.0),
    ],
}


class RecommendationSynthesizer:
    """Generates ranked protective actions for a risk assessment"""

    def __init__(self, settings: Optional[PipelineSettings] = None, rules: Optional[Dict] = None):
        self.settings = settings or get_settings()
        self.rules = rules if rules is not None else RULES

    def synthesize(
        self,
        risk_assessment: RiskAssessment,
        crop_profile: CropProfile,
        resource_constraints: ResourceConstraints,
        now: Optional[datetime] = None
    ) -> List[Recommendation]:
        """
        Recommendations for every alertable risk in an assessment.

        Args:
            risk_assessment: Output of the risk evaluator
            crop_profile: Farm crop type and growth stage
            resource_constraints: Budget, labor, water and equipment available
            now: Reference time (default: assessment time)

        Returns:
            Recommendations grouped by risk (most severe risk first), each group ranked
        """
        now = now or risk_assessment.assessed_at
        alertable = sorted(
            risk_assessment.alertable,
            key=lambda p: (-p.severity.rank, p.hours_to_event)
        )

        recommendations = []
        for prediction in alertable:
            recommendations.extend(
                self.synthesize_for(prediction, crop_profile, resource_constraints, now)
            )
        return recommendations

    def synthesize_for(
        self,
        prediction: AssessedPrediction,
        crop_profile: CropProfile,
        resource_constraints: ResourceConstraints,
        now: datetime
    ) -> List[Recommendation]:
        """Ranked recommendations for a single assessed risk"""
        event_time = prediction.prediction.event_time
        if event_time <= now:
            return []

        candidates = []
        for rule in self._matching_rules(prediction.risk_type, crop_profile):
            candidate = self._score_candidate(rule, prediction, crop_profile, resource_constraints, now)
            if candidate is not None:
                candidates.append(candidate)

        if not candidates:
            logger.warning(
                f"No feasible actions for {prediction.risk_type.value} "
                f"({crop_profile.crop_type}/{crop_profile.growth_stage.value})"
            )
            return []

        ranked = self._rank(candidates)
        return ranked[:self.settings.max_recommendations]

    def _matching_rules(self, risk_type: RiskType, crop_profile: CropProfile) -> List[Dict[str, Any]]:
        stage = crop_profile.growth_stage.value
        crop = crop_profile.crop_type.lower()
        keys = [
            (risk_type, WILDCARD, WILDCARD),
            (risk_type, stage, WILDCARD),
            (risk_type, WILDCARD, crop),
            (risk_type, stage, crop),
        ]

        matched = []
        seen = set()
        for key in keys:
            for rule in self.rules.get(key, []):
                if rule["action"] not in seen:
                    seen.add(rule["action"])
                    matched.append(rule)
        return matched

    def _score_candidate(
        self,
        rule: Dict[str, Any],
        prediction: AssessedPrediction,
        crop_profile: CropProfile,
        resources: ResourceConstraints,
        now: datetime
    ) -> Optional[Dict[str, Any]]:
        area = crop_profile.area_hectares
        cost = rule["cost_per_ha"] * area

        feasibility = self.feasibility(rule, area, cost, resources)
        if feasibility <= 0:
            return None

        effectiveness = min(rule["effectiveness"] * self._sensitivity(crop_profile), 1.0)
        normalized_cost = 1.0 + cost / max(resources.budget, REFERENCE_COST)
        score = effectiveness * feasibility / normalized_cost

        event_time = prediction.prediction.event_time
        deadline = event_time - timedelta(hours=rule["time_to_implement_hours"])
        # An action that can no longer finish in time must start now
        deadline = max(deadline, now)
        deadline = min(deadline, event_time)

        hours_left = hours_between(now, deadline)
        emergency = hours_left < self.settings.emergency_window_hours

        return {
            "rule": rule,
            "risk_type": prediction.risk_type,
            "effectiveness": round(effectiveness, 4),
            "feasibility": round(feasibility, 4),
            "cost": round(cost, 2),
            "score": round(score, 6),
            "deadline": deadline,
            "emergency": emergency,
            "urgency": self._urgency(hours_left, emergency),
        }

    def feasibility(
        self,
        rule: Dict[str, Any],
        area: float,
        cost: float,
        resources: ResourceConstraints
    ) -> float:
        """
        Fraction of the action the farmer can actually carry out (0-1).

        Missing equipment makes an action infeasible; shortfalls in budget,
        labor or water scale it down to the scarcest resource.
        """
        available_equipment = {item.lower() for item in resources.equipment}
        if any(item not in available_equipment for item in rule["equipment"]):
            return 0.0

        ratios = []
        if cost > 0:
            ratios.append(resources.budget / cost)
        labor_needed = rule["labor_per_ha"] * area
        if labor_needed > 0:
            ratios.append(resources.labor_hours / labor_needed)
        water_needed = rule["water_per_ha"] * area
        if water_needed > 0:
            ratios.append(resources.water_liters / water_needed)

        if not ratios:
            return 1.0
        return max(0.0, min(1.0, min(ratios)))

    def _sensitivity(self, crop_profile: CropProfile) -> float:
        stage_factor = STAGE_SENSITIVITY.get(crop_profile.growth_stage, 1.0)
        crop_factor = crop_sensitivity(crop_profile.crop_type)
        return stage_factor * crop_factor

    def _urgency(self, hours_left: float, emergency: bool) -> str:
        if emergency:
            return "immediate"
        if hours_left < 24:
            return "within_24h"
        if hours_left < 72:
            return "within_3_days"
        return "planned"

    def _rank(self, candidates: List[Dict[str, Any]]) -> List[Recommendation]:
        """
        Score order (ties: quicker first), then emergencies moved to the front.

        score_rank is the pure score-based position; emergency is independent.
        """
        by_score = sorted(
            candidates,
            key=lambda c: (-c["score"], c["rule"]["time_to_implement_hours"], c["rule"]["action"])
        )

        recommendations = []
        for rank, candidate in enumerate(by_score, start=1):
            rule = candidate["rule"]
            recommendations.append(Recommendation(
                action=rule["action"],
                description=rule["description"],
                risk_type=candidate["risk_type"],
                urgency=candidate["urgency"],
                expected_effectiveness=candidate["effectiveness"],
                cost=candidate["cost"],
                time_to_implement_hours=rule["time_to_implement_hours"],
                deadline=candidate["deadline"],
                feasibility=candidate["feasibility"],
                score=candidate["score"],
                score_rank=rank,
                emergency=candidate["emergency"],
            ))

        emergencies = [r for r in recommendations if r.emergency]
        others = [r for r in recommendations if not r.emergency]
        return emergencies + others


# Singleton instance
_synthesizer_instance = None


def get_recommendation_synthesizer() -> RecommendationSynthesizer:
    """Get singleton RecommendationSynthesizer instance"""
    global _synthesizer_instance
    if _synthesizer_instance is None:
        _synthesizer_instance = RecommendationSynthesizer()
    return _synthesizer_instance
