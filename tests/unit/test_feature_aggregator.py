"""
Unit tests for FeatureAggregator

Tests per-measurement statistics, quality filtering and snapshot validation.
"""
import pytest
from datetime import timedelta

from agrisentinel.domain.entities import Observation
from agrisentinel.exceptions import ValidationError
from agrisentinel.services.feature_aggregator import FeatureAggregator
from factories import NOW, make_observations


def _obs(hours_ago, value, source="probe", quality=0.9, farm_id="farm_1"):
    return Observation(
        farm_id=farm_id,
        timestamp=NOW - timedelta(hours=hours_ago),
        source_id=source,
        measurements={"soil_moisture": value},
        quality_score=quality,
    )


class TestMeasurementFeatures:
    """Test statistics emitted per measurement key"""

    def test_statistics_for_linear_series(self):
        """Test mean/min/max/latest/trend of a series rising 1 unit per hour"""
        observations = [_obs(3, 10.0), _obs(2, 11.0), _obs(1, 12.0), _obs(0, 13.0)]

        snapshot = FeatureAggregator().aggregate("farm_1", observations, NOW)

        assert snapshot.features["soil_moisture_mean"] == pytest.approx(11.5)
        assert snapshot.features["soil_moisture_min"] == pytest.approx(10.0)
        assert snapshot.features["soil_moisture_max"] == pytest.approx(13.0)
        assert snapshot.features["soil_moisture_latest"] == pytest.approx(13.0)
        assert snapshot.features["soil_moisture_trend"] == pytest.approx(1.0)

    def test_latest_uses_timestamp_order(self):
        """Test latest value comes from the newest observation regardless of input order"""
        observations = [_obs(0, 13.0), _obs(3, 10.0), _obs(1, 12.0)]

        snapshot = FeatureAggregator().aggregate("farm_1", observations, NOW)

        assert snapshot.features["soil_moisture_latest"] == pytest.approx(13.0)

    def test_single_observation_has_flat_trend(self):
        """Test one reading gives zero trend"""
        snapshot = FeatureAggregator().aggregate("farm_1", [_obs(0, 20.0)], NOW)

        assert snapshot.features["soil_moisture_trend"] == 0.0

    def test_feature_keys_sorted_and_seasonal(self):
        """Test feature map is ordered by key and includes seasonal features"""
        snapshot = FeatureAggregator().aggregate("farm_1", make_observations(), NOW)

        keys = list(snapshot.features.keys())
        assert keys == sorted(keys)
        assert snapshot.features["month_of_year"] == 7.0
        assert snapshot.features["is_monsoon_season"] == 1.0
        assert snapshot.features["is_winter_season"] == 0.0


class TestQualityAndSources:
    """Test data quality score and source tracking"""

    def test_low_quality_observations_dropped(self):
        """Test readings below 0.2 quality do not contribute"""
        observations = [_obs(1, 10.0, quality=0.8), _obs(0, 99.0, quality=0.1)]

        snapshot = FeatureAggregator().aggregate("farm_1", observations, NOW)

        assert snapshot.features["soil_moisture_max"] == pytest.approx(10.0)
        assert snapshot.data_quality_score == pytest.approx(0.8)

    def test_quality_is_mean_of_usable(self):
        """Test quality score averages the surviving observations"""
        observations = [_obs(1, 10.0, quality=0.6), _obs(0, 11.0, quality=1.0)]

        snapshot = FeatureAggregator().aggregate("farm_1", observations, NOW)

        assert snapshot.data_quality_score == pytest.approx(0.8)

    def test_distinct_sources_recorded(self):
        """Test sources lists each source once"""
        snapshot = FeatureAggregator().aggregate("farm_1", make_observations(hours=6), NOW)

        assert snapshot.sources == ["soil_probe", "weather_station"]
        assert snapshot.source_count == 2


class TestValidation:
    """Test malformed input is rejected"""

    def test_empty_observations_rejected(self):
        with pytest.raises(ValidationError):
            FeatureAggregator().aggregate("farm_1", [], NOW)

    def test_foreign_farm_rejected(self):
        with pytest.raises(ValidationError, match="belongs to farm"):
            FeatureAggregator().aggregate("farm_1", [_obs(0, 10.0, farm_id="farm_2")], NOW)

    def test_future_observation_rejected(self):
        with pytest.raises(ValidationError, match="future"):
            FeatureAggregator().aggregate("farm_1", [_obs(-1, 10.0)], NOW)

    def test_nothing_usable_rejected(self):
        """Test all-low-quality input is rejected rather than producing an empty snapshot"""
        with pytest.raises(ValidationError):
            FeatureAggregator().aggregate("farm_1", [_obs(0, 10.0, quality=0.05)], NOW)
