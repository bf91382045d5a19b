"""
Geohash indexing for the grid cache.

Handles geohash encoding/decoding, adjacent cell lookup and query
footprints. All functions are pure.
"""

import math

import pygeohash as gh

from amenity_heatmap.config import MAX_GEOHASH_PRECISION, GridConfig
from amenity_heatmap.data.models import Bounds, GeoPoint
from amenity_heatmap.utils.error_handling import InvalidCoordinateError
from amenity_heatmap.utils.helpers import dedupe_by

GEOHASH_ALPHABET = frozenset("0123456789bcdefghjkmnpqrstuvwxyz")
MIN_REGION_PRECISION = 5


def validate_coordinate(lat: float, lng: float) -> None:
    """Raise InvalidCoordinateError unless lat/lng is a finite point on Earth."""
    try:
        finite = math.isfinite(lat) and math.isfinite(lng)
    except TypeError as e:
        raise InvalidCoordinateError(
            f"Coordinates must be numbers: {lat}, {lng}"
        ) from e
    if not finite or not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise InvalidCoordinateError(f"Coordinate out of range: {lat}, {lng}")


class GeohashIndexer:
    """Geohash addressing at a fixed precision."""

    def __init__(self, config: GridConfig | None = None):
        self.config = config or GridConfig()
        self.precision = self.config.precision

    def encode(self, lat: float, lng: float, precision: int | None = None) -> str:
        """Encode lat/lng to a geohash cell id."""
        precision = precision or self.precision
        if not 1 <= precision <= MAX_GEOHASH_PRECISION:
            raise InvalidCoordinateError(f"Unsupported geohash precision: {precision}")
        validate_coordinate(lat, lng)
        return gh.encode(lat, lng, precision=precision)

    def decode(self, cell_id: str) -> GeoPoint:
        """Return the geometric center of a cell."""
        lat, lng, _, _ = gh.decode_exactly(self._check(cell_id))
        return GeoPoint(lat=lat, lng=lng)

    def bounding_box(self, cell_id: str) -> Bounds:
        lat, lng, lat_err, lng_err = gh.decode_exactly(self._check(cell_id))
        return Bounds(
            north=lat + lat_err,
            south=lat - lat_err,
            east=lng + lng_err,
            west=lng - lng_err,
        )

    def neighbors(self, cell_id: str) -> list[str]:
        """The 8 adjacent cells: N, NE, E, SE, S, SW, W, NW."""
        cell_id = self._check(cell_id)
        top = gh.get_adjacent(cell_id, "top")
        bottom = gh.get_adjacent(cell_id, "bottom")
        left = gh.get_adjacent(cell_id, "left")
        right = gh.get_adjacent(cell_id, "right")
        return [
            top,
            gh.get_adjacent(top, "right"),
            right,
            gh.get_adjacent(bottom, "right"),
            bottom,
            gh.get_adjacent(bottom, "left"),
            left,
            gh.get_adjacent(top, "left"),
        ]

    def region_hash(self, lat: float, lng: float) -> str:
        """Coarser cell id used for grouping."""
        return self.encode(lat, lng, max(MIN_REGION_PRECISION, self.precision - 2))

    def footprint(self, center_id: str, radius_meters: float) -> list[str]:
        """
        Cells a query touches: the center and its ring of neighbors, plus the
        neighbors of every ring cell when the radius is broad.
        """
        ring = self.neighbors(center_id)
        cells = [center_id, *ring]
        if radius_meters > self.config.broad_radius_threshold:
            for neighbor_id in ring:
                cells.extend(self.neighbors(neighbor_id))
        return dedupe_by(cells, key=lambda c: c)

    def _check(self, cell_id: str) -> str:
        if (
            not isinstance(cell_id, str)
            or not cell_id
            or len(cell_id) > MAX_GEOHASH_PRECISION
            or not set(cell_id) <= GEOHASH_ALPHABET
        ):
            raise InvalidCoordinateError(f"Invalid geohash: {cell_id!r}")
        return cell_id
