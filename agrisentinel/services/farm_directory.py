"""
Farm Directory

Read-side port onto the Farm/User service and the observation store: threshold
configuration, notification preferences, crop profile, resource constraints
and recent observations per farm.
"""
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError as SchemaError

from agrisentinel.domain.entities import Observation
from agrisentinel.domain.farm import (
    CropProfile,
    NotificationPreferences,
    ResourceConstraints,
    ThresholdConfig,
)
from agrisentinel.exceptions import ThresholdConfigMissing, ValidationError

logger = logging.getLogger(__name__)


class FarmDirectory(Protocol):
    async def farm_ids(self) -> List[str]: ...

    async def get_thresholds(self, farm_id: str) -> ThresholdConfig: ...

    async def get_preferences(self, farm_id: str) -> NotificationPreferences: ...

    async def get_crop_profile(self, farm_id: str) -> CropProfile: ...

    async def get_resources(self, farm_id: str) -> ResourceConstraints: ...

    async def get_observations(self, farm_id: str, as_of: datetime) -> List[Observation]: ...


class InMemoryFarmDirectory:
    """
    Dict-backed directory.

    Farms without an explicit entry still get default preferences, crop profile
    and resources; only thresholds are reported missing.
    """

    def __init__(self, lookback_hours: float = 72.0):
        self.lookback_hours = lookback_hours
        self._farms: Dict[str, Dict] = {}
        self._observations: Dict[str, List[Observation]] = {}

    def register_farm(
        self,
        farm_id: str,
        thresholds: Optional[ThresholdConfig] = None,
        preferences: Optional[NotificationPreferences] = None,
        crop: Optional[CropProfile] = None,
        resources: Optional[ResourceConstraints] = None
    ):
        self._farms[farm_id] = {
            "thresholds": thresholds,
            "preferences": preferences or NotificationPreferences(),
            "crop": crop or CropProfile(),
            "resources": resources or ResourceConstraints(),
        }
        self._observations.setdefault(farm_id, [])

    def add_observations(self, observations: List[Observation]):
        for obs in observations:
            if obs.farm_id not in self._farms:
                self.register_farm(obs.farm_id)
            self._observations[obs.farm_id].append(obs)

    def observations_for(self, farm_id: str) -> List[Observation]:
        return list(self._observations.get(farm_id, []))

    async def farm_ids(self) -> List[str]:
        return sorted(self._farms)

    async def get_thresholds(self, farm_id: str) -> ThresholdConfig:
        thresholds = self._farms.get(farm_id, {}).get("thresholds")
        if thresholds is None:
            raise ThresholdConfigMissing(farm_id)
        return thresholds

    async def get_preferences(self, farm_id: str) -> NotificationPreferences:
        return self._farms.get(farm_id, {}).get("preferences") or NotificationPreferences()

    async def get_crop_profile(self, farm_id: str) -> CropProfile:
        return self._farms.get(farm_id, {}).get("crop") or CropProfile()

    async def get_resources(self, farm_id: str) -> ResourceConstraints:
        return self._farms.get(farm_id, {}).get("resources") or ResourceConstraints()

    async def get_observations(self, farm_id: str, as_of: datetime) -> List[Observation]:
        window_start = as_of - timedelta(hours=self.lookback_hours)
        return sorted(
            (
                obs for obs in self._observations.get(farm_id, [])
                if window_start <= obs.timestamp <= as_of
            ),
            key=lambda obs: obs.timestamp
        )


def load_observations_file(path: str) -> List[Observation]:
    """
    Load observations from a JSON file.

    The file holds either a list of observations or {"observations": [...]}.
    """
    try:
        payload = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot read observations from {path}: {e}")

    if isinstance(payload, dict):
        payload = payload.get("observations", [])
    if not isinstance(payload, list):
        raise ValidationError(f"Observations file {path} must contain a list")

    try:
        observations = [Observation.model_validate(item) for item in payload]
    except SchemaError as e:
        raise ValidationError(f"Malformed observation in {path}: {e}")
    logger.info(f"Loaded {len(observations)} observations from {path}")
    return observations


# Singleton instance
_directory_instance = None


def get_farm_directory() -> InMemoryFarmDirectory:
    """Get singleton farm directory instance"""
    global _directory_instance
    if _directory_instance is None:
        _directory_instance = InMemoryFarmDirectory()
    return _directory_instance
