"""Tests for Lambda handler."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from amenity_heatmap.data.models import AmenityRecord, GeoPoint, QueryResult
from amenity_heatmap.data.scoring_models import (
    HeatmapPoint,
    ScanResult,
    ScoreSummary,
)
from amenity_heatmap.utils.error_handling import InvalidCoordinateError

os.environ["PLACES_API_KEY"] = "test-key"
os.environ["DYNAMODB_TABLE_NAME"] = "test-table"
os.environ["DYNAMODB_ENDPOINT"] = "http://localhost:8000"


def test_route_query():
    from handler import route_event

    event = {
        "action": "query",
        "lat": 35.6812,
        "lng": 139.7671,
        "radius": 1500,
        "types": "restaurant, grocery",
    }
    action, params = route_event(event)
    assert action == "query"
    assert params["lat"] == 35.6812
    assert params["radius"] == 1500
    assert params["types"] == ["restaurant", "grocery"]


def test_route_scan():
    from handler import route_event

    event = {
        "action": "scan",
        "bounds": {"north": 45.52, "south": 45.48, "east": -73.54, "west": -73.6},
        "gridSize": 4,
        "weights": [85, 60, 40, 70, 90],
    }
    action, params = route_event(event)
    assert action == "scan"
    assert params["grid_size"] == 4
    assert params["weights"] == [85, 60, 40, 70, 90]
    assert params["types"] == []


def test_route_unknown_action():
    from handler import route_event

    action, params = route_event({})
    assert action == "unknown"


def test_handlers_registered():
    from handler import _HANDLERS

    assert set(_HANDLERS) == {"query", "scan"}


@pytest.mark.asyncio
async def test_unknown_action_is_invalid_input():
    from handler import async_handler

    result = await async_handler({"action": "delete_everything"})
    assert result["status"] == "error"
    assert result["error_type"] == "invalid_input"
    assert result["statusCode"] == 400


@pytest.mark.asyncio
async def test_query_success():
    from handler import async_handler

    coordinator = MagicMock()
    coordinator.query = AsyncMock(
        return_value=QueryResult(
            places=[
                AmenityRecord(
                    external_id="p1",
                    display_name="Sushi Bar",
                    location=GeoPoint(lat=35.6812, lng=139.7671),
                    commodity_types=["restaurant"],
                    cell_id="xn76urx",
                )
            ],
            per_type={"restaurant": 1},
        )
    )

    with patch("handler._get_coordinator", return_value=coordinator):
        result = await async_handler(
            {"action": "query", "lat": 35.6812, "lng": 139.7671, "radius": 500}
        )

    assert result["status"] == "ok"
    assert result["count"] == 1
    assert result["perType"] == {"restaurant": 1}
    place = result["places"][0]
    assert place["external_id"] == "p1"
    assert place["location"] == {"lat": 35.6812, "lng": 139.7671}
    assert "pk" not in place
    coordinator.query.assert_awaited_once_with(35.6812, 139.7671, 500, [])


@pytest.mark.asyncio
async def test_query_invalid_input_maps_to_400():
    from handler import async_handler

    coordinator = MagicMock()
    coordinator.query = AsyncMock(
        side_effect=InvalidCoordinateError("Coordinate out of range: 95, 0")
    )

    with patch("handler._get_coordinator", return_value=coordinator):
        result = await async_handler(
            {"action": "query", "lat": 95, "lng": 0, "radius": 500}
        )

    assert result == {
        "status": "error",
        "error": "Coordinate out of range: 95, 0",
        "error_type": "invalid_input",
        "statusCode": 400,
    }


@pytest.mark.asyncio
async def test_unexpected_error_maps_to_500():
    from handler import async_handler

    coordinator = MagicMock()
    coordinator.query = AsyncMock(side_effect=RuntimeError("boom"))

    with patch("handler._get_coordinator", return_value=coordinator):
        result = await async_handler(
            {"action": "query", "lat": 35.0, "lng": 139.0, "radius": 500}
        )

    assert result["error_type"] == "internal"
    assert result["statusCode"] == 500


@pytest.mark.asyncio
async def test_scan_success():
    from handler import async_handler

    service = MagicMock()
    service.scan = AsyncMock(
        return_value=ScanResult(
            commodity_types=["restaurant"],
            base_scores=[80.0],
            aggregated_scores=[75.5],
            heatmap=[
                HeatmapPoint(
                    lat=45.5,
                    lng=-73.57,
                    value=75.5,
                    cell_id="cell_0",
                    base_score=80.0,
                    commodity_count=3,
                )
            ],
            summary=ScoreSummary(total_cells=1, average_score=75.5),
        )
    )
    bounds = {"north": 45.52, "south": 45.48, "east": -73.54, "west": -73.6}

    with patch("handler._get_heatmap_service", return_value=service):
        result = await async_handler(
            {
                "action": "scan",
                "bounds": bounds,
                "gridSize": 1,
                "weights": [80],
                "types": ["restaurant"],
            }
        )

    assert result["status"] == "ok"
    assert result["baseScores"] == [80.0]
    assert result["aggregatedScores"] == [75.5]
    assert result["heatmap"][0]["cell_id"] == "cell_0"
    assert result["summary"]["average_score"] == 75.5
    service.scan.assert_awaited_once_with(bounds, 1, [80], ["restaurant"])


@pytest.mark.asyncio
async def test_scan_requires_bounds():
    from handler import async_handler

    result = await async_handler({"action": "scan", "gridSize": 2, "weights": []})
    assert result["error_type"] == "invalid_input"
    assert result["statusCode"] == 400


def test_sync_handler_wraps_async():
    from handler import handler

    result = handler({"action": "unknown"}, None)
    assert result["status"] == "error"
