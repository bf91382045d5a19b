"""Tests for the fetch coordinator."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from amenity_heatmap.config import APIConfig, GridConfig
from amenity_heatmap.services.fetch_coordinator import FetchCoordinator
from amenity_heatmap.services.geohash_indexer import GeohashIndexer
from amenity_heatmap.services.grid_cache import GridCache
from amenity_heatmap.services.places_client import GooglePlacesProvider
from amenity_heatmap.utils.error_handling import ProviderError, ValidationError
from amenity_heatmap.utils.rate_limiting import create_rate_limit_manager

LAT, LNG = 35.6812, 139.7671


@pytest.fixture
def cache(memory_repo, clock):
    config = GridConfig()
    return GridCache(memory_repo, GeohashIndexer(config), config, clock=clock)


@pytest.fixture
def coordinator(cache, mock_provider):
    return FetchCoordinator(cache, mock_provider)


@pytest.mark.asyncio
async def test_cold_fetch_calls_provider_once(coordinator, mock_provider, make_place):
    mock_provider.search_nearby.return_value = [make_place("p1"), make_place("p2")]

    result = await coordinator.fetch(LAT, LNG, 1000, "restaurant")

    mock_provider.search_nearby.assert_awaited_once()
    center, radius, commodity_type = mock_provider.search_nearby.call_args.args
    assert (center.lat, center.lng) == (LAT, LNG)
    assert radius == 1000
    assert commodity_type == "restaurant"
    assert result.count == 2
    assert result.cells_used == 9
    assert len(result.new_cell_ids) == 9
    assert result.cached_cell_ids == []
    assert result.source == "API"


@pytest.mark.asyncio
async def test_results_stored_under_every_uncached_cell(
    coordinator, cache, memory_repo, make_place
):
    coordinator.provider.search_nearby.return_value = [make_place("p1")]

    result = await coordinator.fetch(LAT, LNG, 1000, "restaurant")

    assert cache.valid_cells(result.new_cell_ids, "restaurant") == set(
        result.new_cell_ids
    )
    # one record, owned by the first cell that stored it
    assert len(memory_repo.places) == 1
    assert memory_repo.places["p1"].cell_id == result.new_cell_ids[0]


@pytest.mark.asyncio
async def test_warm_fetch_uses_cache(coordinator, mock_provider, make_place):
    mock_provider.search_nearby.return_value = [make_place("p1")]
    await coordinator.fetch(LAT, LNG, 1000, "restaurant")

    mock_provider.search_nearby.reset_mock()
    result = await coordinator.fetch(LAT, LNG, 1000, "restaurant")

    mock_provider.search_nearby.assert_not_awaited()
    assert [p.external_id for p in result.places] == ["p1"]
    assert len(result.cached_cell_ids) == 9
    assert result.new_cell_ids == []
    assert result.source == "CACHE"


@pytest.mark.asyncio
async def test_other_type_is_not_served_from_cache(coordinator, mock_provider):
    await coordinator.fetch(LAT, LNG, 1000, "restaurant")
    await coordinator.fetch(LAT, LNG, 1000, "pharmacy")
    assert mock_provider.search_nearby.await_count == 2


@pytest.mark.asyncio
async def test_expired_cells_are_refetched(coordinator, mock_provider, clock):
    await coordinator.fetch(LAT, LNG, 1000, "restaurant")
    clock.now += timedelta(days=8)
    await coordinator.fetch(LAT, LNG, 1000, "restaurant")
    assert mock_provider.search_nearby.await_count == 2


@pytest.mark.asyncio
async def test_partial_cache_merges_and_dedupes(
    coordinator, cache, mock_provider, make_place
):
    center = cache.indexer.encode(LAT, LNG)
    center_point = cache.indexer.decode(center)
    cache.store(
        center,
        [make_place("p1"), make_place("p2")],
        "restaurant",
        center_point.lat,
        center_point.lng,
    )
    mock_provider.search_nearby.return_value = [make_place("p2"), make_place("p3")]

    result = await coordinator.fetch(LAT, LNG, 1000, "restaurant")

    assert result.cached_cell_ids == [center]
    assert len(result.new_cell_ids) == 8
    assert center not in result.new_cell_ids
    assert sorted(p.external_id for p in result.places) == ["p1", "p2", "p3"]


@pytest.mark.asyncio
async def test_broad_radius_uses_second_ring(coordinator, mock_provider):
    result = await coordinator.fetch(LAT, LNG, 20000, "restaurant")
    assert result.cells_used == 25
    assert len(result.new_cell_ids) == 25
    mock_provider.search_nearby.assert_awaited_once()


@pytest.mark.asyncio
async def test_repeated_broad_query_refills_second_ring(coordinator, mock_provider):
    await coordinator.fetch(LAT, LNG, 20000, "restaurant")
    result = await coordinator.fetch(LAT, LNG, 20000, "restaurant")

    assert mock_provider.search_nearby.await_count == 2
    assert len(result.cached_cell_ids) == 9
    assert len(result.new_cell_ids) == 16
    assert result.cell_id in result.cached_cell_ids


@pytest.mark.asyncio
async def test_provider_error_degrades_to_empty(coordinator, cache, mock_provider):
    mock_provider.search_nearby.side_effect = ProviderError(
        "quota exceeded", "google_places", status_code=429
    )

    result = await coordinator.fetch(LAT, LNG, 1000, "restaurant")

    assert result.count == 0
    assert result.new_cell_ids == []
    assert "quota exceeded" in result.provider_error
    # nothing stored, so the next request retries
    assert cache.valid_cells_around(result.cell_id) == set()


@pytest.mark.asyncio
async def test_invalid_input_raises(coordinator):
    with pytest.raises(ValidationError):
        await coordinator.fetch("north", LNG, 1000, "restaurant")
    with pytest.raises(ValidationError):
        await coordinator.fetch(LAT, LNG, 0, "restaurant")
    with pytest.raises(ValidationError):
        await coordinator.fetch(95, LNG, 1000, "restaurant")


@pytest.mark.asyncio
async def test_query_one_call_per_type(coordinator, mock_provider, make_place):
    def places_for(center, radius, commodity_type):
        return {
            "restaurant": [make_place("r1"), make_place("shared")],
            "supermarket": [make_place("g1"), make_place("shared")],
        }.get(commodity_type, [])

    mock_provider.search_nearby = AsyncMock(side_effect=places_for)

    result = await coordinator.query(LAT, LNG, 1000, ["restaurant", "grocery"])

    called_types = [c.args[2] for c in mock_provider.search_nearby.call_args_list]
    assert called_types == ["restaurant", "supermarket"]
    assert result.per_type == {"restaurant": 2, "supermarket": 2}
    assert sorted(p.external_id for p in result.places) == ["g1", "r1", "shared"]


@pytest.mark.asyncio
async def test_query_defaults_to_all_types(coordinator, mock_provider):
    result = await coordinator.query(LAT, LNG, 1000, [])
    assert mock_provider.search_nearby.await_count == 5
    assert list(result.per_type) == [
        "restaurant",
        "gas_station",
        "supermarket",
        "pharmacy",
        "school",
    ]


@pytest.mark.asyncio
async def test_query_survives_one_failing_type(coordinator, mock_provider, make_place):
    async def flaky(center, radius, commodity_type):
        if commodity_type == "pharmacy":
            raise ProviderError("boom", "google_places")
        return [make_place(f"{commodity_type}-1")]

    mock_provider.search_nearby = AsyncMock(side_effect=flaky)

    result = await coordinator.query(LAT, LNG, 1000, ["restaurant", "pharmacy"])

    assert result.per_type == {"restaurant": 1, "pharmacy": 0}
    assert [p.external_id for p in result.places] == ["restaurant-1"]


@pytest.mark.asyncio
async def test_query_survives_provider_timeout(cache):
    provider = GooglePlacesProvider(
        APIConfig(places_api_key="test-key"), create_rate_limit_manager()
    )
    provider.client.request = AsyncMock(side_effect=asyncio.TimeoutError())
    coordinator = FetchCoordinator(cache, provider)

    result = await coordinator.query(LAT, LNG, 1000, ["restaurant", "pharmacy"])

    assert result.per_type == {"restaurant": 0, "pharmacy": 0}
    assert result.places == []


@pytest.mark.asyncio
async def test_cached_read_matches_fresh_fetch_across_types(
    coordinator, mock_provider, make_place
):
    mock_provider.search_nearby.return_value = [make_place("walmart")]

    await coordinator.fetch(LAT, LNG, 1000, "supermarket")
    fresh = await coordinator.fetch(LAT, LNG, 1000, "pharmacy")
    cached = await coordinator.fetch(LAT, LNG, 1000, "pharmacy")

    assert mock_provider.search_nearby.await_count == 2
    assert cached.source == "CACHE"
    assert [p.external_id for p in fresh.places] == ["walmart"]
    assert [p.external_id for p in cached.places] == ["walmart"]
