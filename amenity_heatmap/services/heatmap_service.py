"""
Region scans: partition a bounding box into squares, count amenities per
square through the grid cache and score every square.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import pydantic

from amenity_heatmap.data.models import (
    AmenityRecord,
    Bounds,
    GeoPoint,
    resolve_commodity_types,
)
from amenity_heatmap.data.scoring_models import GridSquare, ScanResult
from amenity_heatmap.services.fetch_coordinator import FetchCoordinator
from amenity_heatmap.services.places_client import MAX_SEARCH_RADIUS_METERS
from amenity_heatmap.services.scoring import CommodityScorer
from amenity_heatmap.utils.error_handling import ValidationError
from amenity_heatmap.utils.helpers import coerce_float, dedupe_by
from amenity_heatmap.utils.logging import get_logger

logger = get_logger(__name__)

MIN_GRID_SIZE = 1
MAX_GRID_SIZE = 20


def parse_bounds(raw: Bounds | Mapping[str, Any]) -> Bounds:
    """
    Build Bounds from request data.

    Raises:
        ValidationError: If a side is missing or the box is inverted
    """
    if isinstance(raw, Bounds):
        return raw
    try:
        return Bounds.model_validate(raw)
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid parameter: bounds", original_error=e) from e


def partition(bounds: Bounds, grid_size: int) -> list[GridSquare]:
    """
    Split ``bounds`` into ``grid_size`` x ``grid_size`` equal squares.

    Squares are numbered row-major starting at the north-west corner, so
    row 0 is the northern edge and columns run west to east.
    """
    lat_step = (bounds.north - bounds.south) / grid_size
    lng_step = (bounds.east - bounds.west) / grid_size

    squares = []
    for row in range(grid_size):
        north = bounds.north - row * lat_step
        # last row/column snap to the outer edge
        south = bounds.south if row == grid_size - 1 else north - lat_step
        for col in range(grid_size):
            west = bounds.west + col * lng_step
            east = bounds.east if col == grid_size - 1 else west + lng_step
            index = row * grid_size + col
            squares.append(
                GridSquare(
                    cell_id=f"cell_{index}",
                    index=index,
                    row=row,
                    col=col,
                    bounds=Bounds(north=north, south=south, east=east, west=west),
                )
            )
    return squares


def count_commodities(
    squares: Sequence[GridSquare],
    places_by_type: Mapping[str, Iterable[AmenityRecord]],
    commodity_types: Sequence[str],
) -> list[GridSquare]:
    """
    Count places per square and type.

    A place is counted once per type, in the first square that contains it.
    Places outside every square are ignored.

    Returns:
        Copies of ``squares`` with ``commodity_counts`` filled in type order
    """
    counts = [[0] * len(commodity_types) for _ in squares]
    for type_index, commodity_type in enumerate(commodity_types):
        places = dedupe_by(
            places_by_type.get(commodity_type, []), key=lambda p: p.external_id
        )
        for place in places:
            for square_index, square in enumerate(squares):
                if square.bounds.contains(place.location):
                    counts[square_index][type_index] += 1
                    break
    return [
        square.model_copy(update={"commodity_counts": square_counts})
        for square, square_counts in zip(squares, counts, strict=True)
    ]


class HeatmapService:
    """Service producing scored heatmaps for a map region."""

    def __init__(self, coordinator: FetchCoordinator, scorer: CommodityScorer):
        self.coordinator = coordinator
        self.scorer = scorer

    def search_radius(self, square: GridSquare) -> float:
        """Radius covering the whole square from its center."""
        center = square.bounds.center
        corner = GeoPoint(lat=square.bounds.north, lng=square.bounds.east)
        return min(self.scorer.distance(center, corner), MAX_SEARCH_RADIUS_METERS)

    async def scan(
        self,
        bounds: Bounds | Mapping[str, Any],
        grid_size: int,
        weights: Sequence[float],
        commodity_types: Iterable[str] | None = None,
    ) -> ScanResult:
        """
        Fetch, count and score every square of a region.

        Args:
            bounds: Region to scan
            grid_size: Squares per side (1-20)
            weights: One weight (0-100) per amenity type, in type order
            commodity_types: Amenity types; all default types when empty

        Returns:
            Counts, base and aggregated scores, heatmap points and summary

        Raises:
            ValidationError: If any input is malformed
        """
        bounds = parse_bounds(bounds)
        grid_size = self._validate_grid_size(grid_size)
        types = resolve_commodity_types(commodity_types)
        weights = self._validate_weights(weights, types)

        squares = partition(bounds, grid_size)
        logger.info(
            f"Scanning {len(squares)} squares for {len(types)} amenity types"
        )

        places_by_type: dict[str, list[AmenityRecord]] = {t: [] for t in types}
        for square in squares:
            center = square.bounds.center
            radius = self.search_radius(square)
            for commodity_type in types:
                result = await self.coordinator.fetch(
                    center.lat, center.lng, radius, commodity_type
                )
                places_by_type[commodity_type].extend(result.places)

        squares = count_commodities(squares, places_by_type, types)
        cells = [square.to_score_cell() for square in squares]

        amplified = self.scorer.amplify_weights(weights)
        base_scores = self.scorer.all_base_scores(cells, weights, amplified)
        results = self.scorer.all_aggregated_scores(
            cells, weights, base_scores, amplified
        )
        heatmap = self.scorer.heatmap_data(cells, weights, results)
        summary = self.scorer.summary(cells, weights, results)

        logger.info(
            f"Scan complete: {summary.total_commodities:g} amenities, "
            f"average score {summary.average_score}"
        )
        return ScanResult(
            cells=squares,
            commodity_types=types,
            base_scores=[base_scores[cell.cell_id] for cell in cells],
            aggregated_scores=[r.aggregated_score for r in results],
            results=results,
            heatmap=heatmap,
            summary=summary,
        )

    @staticmethod
    def _validate_grid_size(grid_size: Any) -> int:
        if isinstance(grid_size, bool):
            raise ValidationError("Invalid parameter: gridSize must be an integer")
        try:
            size = int(grid_size)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Invalid parameter: gridSize must be an integer"
            ) from e
        if size != grid_size and not isinstance(grid_size, str):
            raise ValidationError("Invalid parameter: gridSize must be an integer")
        if not MIN_GRID_SIZE <= size <= MAX_GRID_SIZE:
            raise ValidationError(
                f"Invalid parameter: gridSize must be between {MIN_GRID_SIZE} "
                f"and {MAX_GRID_SIZE}"
            )
        return size

    @staticmethod
    def _validate_weights(weights: Sequence[Any], types: Sequence[str]) -> list[float]:
        if not isinstance(weights, list | tuple):
            raise ValidationError("Invalid parameter: weights must be a list")
        values = [coerce_float(w, "weights") for w in weights]
        if len(values) != len(types):
            raise ValidationError(
                f"Invalid parameter: expected {len(types)} weights, got {len(values)}"
            )
        for value in values:
            if not 0 <= value <= 100:
                raise ValidationError(
                    f"Invalid parameter: weights must be between 0 and 100, got {value}"
                )
        return values
