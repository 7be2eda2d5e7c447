"""Pytest fixtures for the rendering service tests."""

import os

import pytest

# Keep tests independent of a developer .env and of the bundled browser
os.environ.setdefault("STATS_INTERVAL_SECONDS", "0")
os.environ.setdefault("CRAWLY_BEARER_TOKEN", "")

from crawly.config import Settings  # noqa: E402
from crawly.services.metrics import MetricsCollector  # noqa: E402

from fakes import FakeEngine, FakeSession, RecordingExecutor, example_site  # noqa: E402


@pytest.fixture
def test_settings():
    """Settings with short grace so timeout tests stay fast."""
    return Settings(stage_timeout_grace_ms=100, stats_interval_seconds=0)


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def site():
    return example_site()


@pytest.fixture
def fake_engine(site):
    return FakeEngine(site)


@pytest.fixture
def fake_session(site):
    return FakeSession(1, site)


@pytest.fixture
def recording_executor():
    return RecordingExecutor()
