"""
Place lookups through the geohash grid cache.

Splits a query's cell footprint into cached and uncached cells, serves the
cached part from the repository and fills the rest with a single provider
call whose results are stored under every uncached cell.
"""

from collections.abc import Iterable

from amenity_heatmap.data.models import (
    AmenityRecord,
    FetchResult,
    GeoPoint,
    QueryResult,
    resolve_commodity_types,
)
from amenity_heatmap.services.geohash_indexer import GeohashIndexer
from amenity_heatmap.services.grid_cache import GridCache
from amenity_heatmap.services.places_client import AmenityProvider
from amenity_heatmap.utils.error_handling import ProviderError, ValidationError
from amenity_heatmap.utils.helpers import coerce_float, dedupe_by
from amenity_heatmap.utils.logging import get_logger

logger = get_logger(__name__)


def _external_id(record: AmenityRecord) -> str:
    return record.external_id


class FetchCoordinator:
    """Service for cached nearby-place lookups."""

    def __init__(
        self,
        cache: GridCache,
        provider: AmenityProvider,
        indexer: GeohashIndexer | None = None,
    ):
        self.cache = cache
        self.provider = provider
        self.indexer = indexer or cache.indexer

    async def fetch(
        self, lat: float, lng: float, radius_meters: float, commodity_type: str
    ) -> FetchResult:
        """
        Get places of one type around a point, using cached cells first.

        Args:
            lat: Query latitude
            lng: Query longitude
            radius_meters: Search radius
            commodity_type: Provider place type

        Returns:
            Cached and freshly fetched places, deduplicated by external id

        Raises:
            ValidationError: If the coordinates or radius are malformed
        """
        lat, lng, radius_meters = self._validate(lat, lng, radius_meters)

        center_id = self.indexer.encode(lat, lng)
        footprint = self.indexer.footprint(center_id, radius_meters)

        # freshness is tracked for the center and ring 1 only; ring-2 cells of a
        # broad query are always refilled
        cached_ids = self.cache.valid_cells_around(center_id, commodity_type)
        cached_cells = [cell_id for cell_id in footprint if cell_id in cached_ids]
        uncached_cells = [cell_id for cell_id in footprint if cell_id not in cached_ids]

        places: list[AmenityRecord] = []
        if cached_cells:
            logger.info(
                f"Cache hit: {len(cached_cells)} cached cells for {commodity_type}"
            )
            places.extend(self.cache.records_for(cached_cells, commodity_type))

        new_cells: list[str] = []
        provider_error = None
        if uncached_cells:
            logger.info(
                f"API call: fetching {len(uncached_cells)} uncached cells "
                f"for {commodity_type}"
            )
            try:
                fetched = await self.provider.search_nearby(
                    GeoPoint(lat=lat, lng=lng), radius_meters, commodity_type
                )
            except ProviderError as e:
                logger.error(f"Provider lookup failed for {commodity_type}: {e!s}")
                provider_error = str(e)
            else:
                for cell_id in uncached_cells:
                    center = self.indexer.decode(cell_id)
                    self.cache.store(
                        cell_id, fetched, commodity_type, center.lat, center.lng
                    )
                new_cells = uncached_cells
                owner = uncached_cells[0]
                places.extend(
                    AmenityRecord.from_provider(place, owner, commodity_type)
                    for place in fetched
                )

        result = FetchResult(
            places=dedupe_by(places, key=_external_id),
            cell_id=center_id,
            cells_used=len(footprint),
            cached_cell_ids=cached_cells,
            new_cell_ids=new_cells,
            provider_error=provider_error,
        )
        logger.info(
            f"Fetched {result.count} places for {commodity_type} from "
            f"{result.source} (cached: {len(cached_cells)}, new: {len(new_cells)})"
        )
        return result

    async def query(
        self,
        lat: float,
        lng: float,
        radius_meters: float,
        commodity_types: Iterable[str] | None = None,
    ) -> QueryResult:
        """
        Get places for several types, one provider round-trip at a time.

        A type whose lookup fails contributes nothing; the other types are
        still returned.
        """
        lat, lng, radius_meters = self._validate(lat, lng, radius_meters)
        types = resolve_commodity_types(commodity_types)
        logger.info(
            f"Query: lat={lat}, lng={lng}, radius={radius_meters}, "
            f"types=[{', '.join(types)}]"
        )

        places: list[AmenityRecord] = []
        per_type: dict[str, int] = {}
        for commodity_type in types:
            result = await self.fetch(lat, lng, radius_meters, commodity_type)
            per_type[commodity_type] = result.count
            places.extend(result.places)

        unique = dedupe_by(places, key=_external_id)
        logger.info(f"Query returned {len(unique)} unique places")
        return QueryResult(places=unique, per_type=per_type)

    def _validate(
        self, lat: float, lng: float, radius_meters: float
    ) -> tuple[float, float, float]:
        lat = coerce_float(lat, "lat")
        lng = coerce_float(lng, "lng")
        radius_meters = coerce_float(radius_meters, "radius")
        if radius_meters <= 0:
            raise ValidationError("Invalid parameter: radius must be positive")
        return lat, lng, radius_meters
