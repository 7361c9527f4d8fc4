"""
Unit tests for the in-memory farm directory and observation file loading
"""
import json
import pytest
from datetime import timedelta

from pydantic import ValidationError as SchemaError

from agrisentinel.domain.entities import Observation
from agrisentinel.domain.enums import Channel
from agrisentinel.exceptions import ThresholdConfigMissing, ValidationError
from agrisentinel.services.farm_directory import InMemoryFarmDirectory, load_observations_file
from factories import NOW, make_observations


class TestInMemoryFarmDirectory:
    @pytest.mark.asyncio
    async def test_observation_window(self):
        directory = InMemoryFarmDirectory(lookback_hours=3)
        directory.add_observations(make_observations(hours=6))

        observations = await directory.get_observations("farm_1", NOW)

        assert len(observations) == 4
        assert all(NOW - timedelta(hours=3) <= o.timestamp <= NOW for o in observations)
        assert observations == sorted(observations, key=lambda o: o.timestamp)

    @pytest.mark.asyncio
    async def test_auto_registered_farm_has_defaults(self):
        directory = InMemoryFarmDirectory()
        directory.add_observations(make_observations(farm_id="farm_new"))

        assert await directory.farm_ids() == ["farm_new"]
        preferences = await directory.get_preferences("farm_new")
        assert preferences.channels == [Channel.SMS]
        with pytest.raises(ThresholdConfigMissing):
            await directory.get_thresholds("farm_new")


class TestLoadObservationsFile:
    def test_loads_wrapped_list(self, tmp_path):
        path = tmp_path / "observations.json"
        payload = [o.model_dump(mode="json") for o in make_observations(hours=2)]
        path.write_text(json.dumps({"observations": payload}))

        observations = load_observations_file(str(path))

        assert len(observations) == 2
        assert observations[0].farm_id == "farm_1"

    def test_malformed_observation(self, tmp_path):
        path = tmp_path / "observations.json"
        path.write_text(json.dumps([{"farm_id": "farm_1", "quality_score": 3}]))

        with pytest.raises(ValidationError, match="Malformed"):
            load_observations_file(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="Cannot read"):
            load_observations_file(str(tmp_path / "nope.json"))

    def test_naive_timestamp_rejected(self, tmp_path):
        """Test readings without a UTC offset are refused at load time"""
        path = tmp_path / "observations.json"
        payload = [o.model_dump(mode="json") for o in make_observations(hours=2)]
        for item in payload:
            item["timestamp"] = item["timestamp"].replace("Z", "").replace("+00:00", "")
        path.write_text(json.dumps(payload))

        with pytest.raises(ValidationError, match="Malformed"):
            load_observations_file(str(path))


class TestObservation:
    def test_requires_timezone(self):
        with pytest.raises(SchemaError):
            Observation(
                farm_id="farm_1",
                timestamp=NOW.replace(tzinfo=None),
                source_id="station_1",
                measurements={"temperature_c": 30.0},
                quality_score=0.9,
            )
