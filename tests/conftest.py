"""
Pytest configuration for the amenity heatmap tests.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

# Register asyncio marker
pytest.importorskip("pytest_asyncio")

# Import project modules after configuring pytest
from amenity_heatmap.config import (  # noqa: E402
    APIConfig,
    GridConfig,
    HeatmapConfig,
    ScoringConfig,
    SystemConfig,
)
from amenity_heatmap.data.models import GeoPoint, ProviderPlace  # noqa: E402
from amenity_heatmap.data.repository import InMemoryRepository  # noqa: E402
from amenity_heatmap.utils import LogLevel, setup_logging  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    setup_logging(LogLevel.DEBUG)


class FakeClock:
    """Controllable clock for cache expiry tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 6, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def grid_config():
    return GridConfig()


@pytest.fixture
def scoring_config():
    return ScoringConfig()


@pytest.fixture
def memory_repo():
    return InMemoryRepository()


@pytest.fixture
def make_place():
    """Factory for provider places."""

    def _make(external_id: str, lat: float = 35.6812, lng: float = 139.7671):
        return ProviderPlace(
            external_id=external_id,
            display_name=f"Place {external_id}",
            location=GeoPoint(lat=lat, lng=lng),
            address="1-1 Marunouchi",
            types=["restaurant"],
        )

    return _make


@pytest.fixture
def mock_provider():
    """Amenity provider returning no places unless configured."""
    provider = AsyncMock()
    provider.search_nearby = AsyncMock(return_value=[])
    return provider


@pytest.fixture
def test_config():
    """Test application configuration."""
    return HeatmapConfig(
        api=APIConfig(
            places_api_key="test-key",
            aws_region="ap-northeast-1",
            dynamodb_table_name="amenity-heatmap-test",
        ),
        system=SystemConfig(log_level=LogLevel.DEBUG, environment="test"),
        grid=GridConfig(),
        scoring=ScoringConfig(),
    )
