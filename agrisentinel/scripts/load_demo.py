"""
Demo Scenario Loader

Builds pre-configured demo farms with three days of synthetic sensor and
weather observations for consistent presentations.
Usage: python -m agrisentinel.scripts.load_demo --scenario drought_stress [--output observations.json]
"""
import argparse
import json
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import numpy as np

from agrisentinel.domain.entities import Observation, utcnow
from agrisentinel.domain.enums import Channel, GrowthStage, RiskType, Severity
from agrisentinel.domain.farm import (
    CropProfile,
    NotificationPreferences,
    ResourceConstraints,
    ThresholdConfig,
)
from agrisentinel.services.farm_directory import InMemoryFarmDirectory

HOURS = 72
SOURCES = ("soil_probe_1", "weather_station")


def _series(start: float, end: float, noise: float, rng: np.random.RandomState) -> np.ndarray:
    return np.linspace(start, end, HOURS) + rng.normal(0.0, noise, HOURS)


def _observations(farm_id: str, now: datetime, columns: Dict[str, np.ndarray]) -> List[Observation]:
    observations = []
    for i in range(HOURS):
        timestamp = now - timedelta(hours=HOURS - 1 - i)
        observations.append(Observation(
            farm_id=farm_id,
            timestamp=timestamp,
            source_id=SOURCES[i % len(SOURCES)],
            measurements={name: round(float(values[i]), 3) for name, values in columns.items()},
            quality_score=0.9,
        ))
    return observations


def drought_stress_scenario(directory: InMemoryFarmDirectory, now: datetime) -> str:
    """
    Wheat at flowering after a dry, hot spell.

    Scenario: soil moisture falls to ~8%, no rain, afternoon highs near 40°C.
    """
    farm_id = "demo_drought_farm"
    rng = np.random.RandomState(7)
    directory.register_farm(
        farm_id,
        thresholds=ThresholdConfig(farm_id=farm_id, thresholds={RiskType.DROUGHT: Severity.MEDIUM}),
        preferences=NotificationPreferences(channels=[Channel.SMS, Channel.PUSH]),
        crop=CropProfile(crop_type="wheat", growth_stage=GrowthStage.FLOWERING, area_hectares=2.0),
        resources=ResourceConstraints(budget=800, labor_hours=24, water_liters=60000, equipment=["drip_irrigation"]),
    )
    directory.add_observations(_observations(farm_id, now, {
        "soil_moisture": _series(18.0, 8.0, 0.5, rng),
        "rainfall_mm": np.zeros(HOURS),
        "temperature_max": _series(35.0, 40.0, 0.4, rng),
        "temperature_min": _series(22.0, 24.0, 0.3, rng),
        "humidity": _series(35.0, 25.0, 1.0, rng),
    }))
    return farm_id


def frost_night_scenario(directory: InMemoryFarmDirectory, now: datetime) -> str:
    """
    Vegetables at germination with a cold front moving in.

    Scenario: night minimums fall from 8°C to about 1°C.
    """
    farm_id = "demo_frost_farm"
    rng = np.random.RandomState(11)
    directory.register_farm(
        farm_id,
        thresholds=ThresholdConfig(farm_id=farm_id, thresholds={RiskType.FROST: Severity.LOW}),
        preferences=NotificationPreferences(channels=[Channel.PUSH, Channel.SMS]),
        crop=CropProfile(crop_type="vegetables", growth_stage=GrowthStage.GERMINATION, area_hectares=0.5),
    )
    directory.add_observations(_observations(farm_id, now, {
        "soil_moisture": _series(32.0, 30.0, 0.5, rng),
        "rainfall_mm": np.abs(rng.normal(0.5, 0.3, HOURS)),
        "temperature_max": _series(14.0, 9.0, 0.4, rng),
        "temperature_min": _series(8.0, 1.0, 0.3, rng),
        "humidity": _series(70.0, 80.0, 1.5, rng),
    }))
    return farm_id


def calm_scenario(directory: InMemoryFarmDirectory, now: datetime) -> str:
    """Maize in good conditions; no alert expected"""
    farm_id = "demo_calm_farm"
    rng = np.random.RandomState(3)
    directory.register_farm(
        farm_id,
        thresholds=ThresholdConfig(farm_id=farm_id, default_severity=Severity.HIGH),
        crop=CropProfile(crop_type="maize", growth_stage=GrowthStage.VEGETATIVE),
    )
    directory.add_observations(_observations(farm_id, now, {
        "soil_moisture": _series(30.0, 29.0, 0.5, rng),
        "rainfall_mm": np.abs(rng.normal(3.0, 1.0, HOURS)),
        "temperature_max": _series(27.0, 28.0, 0.4, rng),
        "temperature_min": _series(15.0, 16.0, 0.3, rng),
        "humidity": _series(50.0, 52.0, 1.0, rng),
    }))
    return farm_id


SCENARIOS: Dict[str, Callable[[InMemoryFarmDirectory, datetime], str]] = {
    "drought_stress": drought_stress_scenario,
    "frost_night": frost_night_scenario,
    "calm": calm_scenario,
}


def load_scenario(
    directory: InMemoryFarmDirectory,
    scenario_name: str,
    now: Optional[datetime] = None
) -> List[str]:
    """
    Load a demo scenario (or "all") into a farm directory.

    Returns:
        Farm ids that were loaded
    """
    now = now or utcnow()
    if scenario_name == "all":
        return [scenario(directory, now) for scenario in SCENARIOS.values()]
    if scenario_name not in SCENARIOS:
        raise ValueError(f"Unknown scenario '{scenario_name}'. Available: {', '.join(SCENARIOS)}")
    return [SCENARIOS[scenario_name](directory, now)]


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Generate demo scenario observations")
    parser.add_argument(
        "--scenario",
        "-s",
        choices=list(SCENARIOS) + ["all"],
        required=True,
        help="Scenario to load"
    )
    parser.add_argument("--output", "-o", default="observations.json", help="Observations JSON file")

    args = parser.parse_args()

    directory = InMemoryFarmDirectory()
    now = utcnow()
    farm_ids = load_scenario(directory, args.scenario, now)

    observations = []
    for farm_id in farm_ids:
        for obs in directory.observations_for(farm_id):
            observations.append(obs.model_dump(mode="json"))

    with open(args.output, "w") as f:
        json.dump({"observations": observations}, f, indent=2)

    print(f"✓ Wrote {len(observations)} observations for {', '.join(farm_ids)} to {args.output}")


if __name__ == "__main__":
    main()
