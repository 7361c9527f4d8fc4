"""
Feature Aggregation

Assembles a model-ready FeatureSnapshot for one farm from already-validated
observations. Generates per-measurement summary statistics, hourly trends and
seasonal features.
"""
import logging
from datetime import datetime
from typing import Dict, List

import numpy as np
import pandas as pd

from agrisentinel.domain.entities import FeatureSnapshot, Observation
from agrisentinel.exceptions import ValidationError

logger = logging.getLogger(__name__)


class FeatureAggregator:
    """
    Builds one immutable FeatureSnapshot per (farm, cycle).

    Features per measurement key:
    - mean, min, max over the observation window
    - latest reading
    - trend (least-squares slope per hour)
    """

    def __init__(self, min_quality: float = 0.2):
        self.min_quality = min_quality

    def aggregate(
        self,
        farm_id: str,
        observations: List[Observation],
        as_of: datetime
    ) -> FeatureSnapshot:
        """
        Aggregate observations into a feature snapshot.

        Args:
            farm_id: Farm the snapshot is built for
            observations: Validated observations for this farm
            as_of: Cycle reference time; no observation may be later

        Returns:
            FeatureSnapshot

        Raises:
            ValidationError: empty/foreign/future observations, or nothing usable
        """
        self._validate(farm_id, observations, as_of)

        usable = [obs for obs in observations if obs.quality_score >= self.min_quality]
        dropped = len(observations) - len(usable)
        if dropped:
            logger.info(f"Dropped {dropped} low-quality observations for farm {farm_id}")
        if not usable:
            raise ValidationError(f"No observations above quality {self.min_quality} for farm {farm_id}")

        frame = self._to_frame(usable)
        features = self._measurement_features(frame)
        features.update(self._seasonal_features(as_of))

        quality = float(np.mean([obs.quality_score for obs in usable]))
        sources = sorted({obs.source_id for obs in usable})

        logger.info(
            f"Built snapshot for farm {farm_id}: {len(features)} features, "
            f"{len(sources)} sources, quality {quality:.2f}"
        )

        return FeatureSnapshot(
            farm_id=farm_id,
            as_of=as_of,
            features=dict(sorted(features.items())),
            sources=sources,
            data_quality_score=round(quality, 4),
        )

    def _validate(self, farm_id: str, observations: List[Observation], as_of: datetime):
        if not observations:
            raise ValidationError(f"No observations for farm {farm_id}")

        for obs in observations:
            if obs.farm_id != farm_id:
                raise ValidationError(
                    f"Observation from {obs.source_id} belongs to farm {obs.farm_id}, not {farm_id}"
                )
            if obs.timestamp > as_of:
                raise ValidationError(
                    f"Observation from {obs.source_id} is in the future ({obs.timestamp.isoformat()})"
                )
            if not obs.measurements:
                raise ValidationError(f"Observation from {obs.source_id} has no measurements")

    def _to_frame(self, observations: List[Observation]) -> pd.DataFrame:
        """Long-format frame: one row per (timestamp, measurement)"""
        rows = []
        for obs in observations:
            for key, value in obs.measurements.items():
                rows.append({
                    "timestamp": obs.timestamp,
                    "measurement": key,
                    "value": float(value),
                })
        frame = pd.DataFrame(rows)
        return frame.sort_values("timestamp")

    def _measurement_features(self, frame: pd.DataFrame) -> Dict[str, float]:
        features = {}

        for key, group in frame.groupby("measurement", sort=True):
            values = group["value"].to_numpy(dtype=float)

            features[f"{key}_mean"] = float(np.mean(values))
            features[f"{key}_min"] = float(np.min(values))
            features[f"{key}_max"] = float(np.max(values))
            features[f"{key}_latest"] = float(values[-1])
            features[f"{key}_trend"] = self._hourly_trend(group)

        return features

    def _hourly_trend(self, group: pd.DataFrame) -> float:
        """Linear regression slope of value against hours elapsed"""
        timestamps = pd.to_datetime(group["timestamp"], utc=True)
        hours = (timestamps - timestamps.min()).dt.total_seconds().to_numpy() / 3600.0

        if len(np.unique(hours)) < 2:
            return 0.0

        slope, _ = np.polyfit(hours, group["value"].to_numpy(dtype=float), 1)
        return float(slope)

    def _seasonal_features(self, as_of: datetime) -> Dict[str, float]:
        month = as_of.month
        return {
            "month_of_year": float(month),
            "day_of_year": float(as_of.timetuple().tm_yday),
            # Northern-hemisphere monsoon months
            "is_monsoon_season": 1.0 if month in [6, 7, 8, 9] else 0.0,
            "is_winter_season": 1.0 if month in [12, 1, 2] else 0.0,
        }


# Singleton instance
_feature_aggregator_instance = None


def get_feature_aggregator() -> FeatureAggregator:
    """Get singleton FeatureAggregator instance"""
    global _feature_aggregator_instance
    if _feature_aggregator_instance is None:
        _feature_aggregator_instance = FeatureAggregator()
    return _feature_aggregator_instance
