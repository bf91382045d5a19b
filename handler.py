"""
AWS Lambda handler for the amenity heatmap service.

Routes events by "action" field to the place query and region scan services.
"""

from typing import Any

from amenity_heatmap.app import build_coordinator, build_heatmap_service
from amenity_heatmap.config import HeatmapConfig
from amenity_heatmap.data.models import KEY_FIELDS
from amenity_heatmap.services.fetch_coordinator import FetchCoordinator
from amenity_heatmap.services.heatmap_service import HeatmapService
from amenity_heatmap.utils.error_handling import ValidationError
from amenity_heatmap.utils.helpers import split_csv
from amenity_heatmap.utils.logging import get_logger

logger = get_logger(__name__)


def _get_coordinator() -> FetchCoordinator:
    return build_coordinator(HeatmapConfig())


def _get_heatmap_service() -> HeatmapService:
    return build_heatmap_service(HeatmapConfig())


def _error(message: str, error_type: str, status_code: int) -> dict[str, Any]:
    return {
        "status": "error",
        "error": message,
        "error_type": error_type,
        "statusCode": status_code,
    }


def route_event(event: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Parse event and extract action + parameters."""
    action = event.get("action", "unknown")
    params: dict[str, Any] = {}

    # Place query fields
    params["lat"] = event.get("lat")
    params["lng"] = event.get("lng")
    params["radius"] = event.get("radius")

    # Accepts a list or a comma separated string
    params["types"] = split_csv(event.get("types"))

    # Scan fields
    params["bounds"] = event.get("bounds")
    params["grid_size"] = event.get("gridSize")
    params["weights"] = event.get("weights")

    return action, params


async def _handle_query(params: dict[str, Any]) -> dict[str, Any]:
    coordinator = _get_coordinator()
    result = await coordinator.query(
        params["lat"], params["lng"], params["radius"], params["types"]
    )
    return {
        "status": "ok",
        "count": result.count,
        "perType": result.per_type,
        "places": [
            p.model_dump(mode="json", exclude=KEY_FIELDS) for p in result.places
        ],
    }


async def _handle_scan(params: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(params.get("bounds"), dict):
        raise ValidationError("Invalid parameter: bounds must be an object")

    service = _get_heatmap_service()
    result = await service.scan(
        params["bounds"], params["grid_size"], params["weights"], params["types"]
    )
    return {
        "status": "ok",
        "commodityTypes": result.commodity_types,
        "cells": [
            {
                "cellId": cell.cell_id,
                "bounds": cell.bounds.model_dump(),
                "commodityCounts": cell.commodity_counts,
            }
            for cell in result.cells
        ],
        "baseScores": result.base_scores,
        "aggregatedScores": result.aggregated_scores,
        "heatmap": [point.model_dump(mode="json") for point in result.heatmap],
        "summary": result.summary.model_dump(mode="json"),
    }


# Action handlers map
_HANDLERS = {
    "query": _handle_query,
    "scan": _handle_scan,
}


async def async_handler(event: dict[str, Any]) -> dict[str, Any]:
    """Main async handler."""
    action, params = route_event(event)

    handler_fn = _HANDLERS.get(action)
    if not handler_fn:
        return _error(f"Unknown action: {action}", "invalid_input", 400)

    try:
        return await handler_fn(params)
    except ValidationError as e:
        logger.warning(f"Invalid {action} request: {e}")
        return _error(str(e), "invalid_input", 400)
    except Exception as e:
        logger.error(f"Error handling {action}: {e}")
        return _error(str(e), "internal", 500)


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Lambda entry point (sync wrapper)."""
    import asyncio

    return asyncio.run(async_handler(event))
