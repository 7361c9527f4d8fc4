"""Shared pytest fixtures"""
import pytest

from agrisentinel.config import PipelineSettings
from agrisentinel.services.events import InMemoryEventPort


@pytest.fixture
def settings():
    """Default tunables with short timeouts and no backoff delay"""
    return PipelineSettings(
        model_timeout_seconds=0.05,
        delivery_attempt_timeout_seconds=0.05,
        delivery_backoff_base_seconds=0.0,
        delivery_backoff_max_seconds=0.0,
        config_lookup_timeout_seconds=0.5,
    )


@pytest.fixture
def events():
    return InMemoryEventPort()
