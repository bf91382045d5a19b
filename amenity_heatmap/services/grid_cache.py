"""
Geohash grid cache with lazy TTL expiry.

Caches provider results per grid cell so overlapping queries reuse earlier
lookups. Reads degrade to a cache miss when the repository is unavailable;
writes are best-effort and idempotent on the place's external id.
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from amenity_heatmap.config import GridConfig
from amenity_heatmap.data.models import AmenityRecord, GridCell, ProviderPlace
from amenity_heatmap.data.repository import GridRepository
from amenity_heatmap.services.geohash_indexer import GeohashIndexer
from amenity_heatmap.utils.error_handling import RepositoryError
from amenity_heatmap.utils.helpers import utc_now
from amenity_heatmap.utils.logging import get_logger

logger = get_logger(__name__)


class GridCache:
    """Cache of amenity records keyed by geohash cell."""

    def __init__(
        self,
        repo: GridRepository,
        indexer: GeohashIndexer | None = None,
        config: GridConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repo = repo
        self.config = config or GridConfig()
        self.indexer = indexer or GeohashIndexer(self.config)
        self.ttl = timedelta(seconds=self.config.cache_ttl_seconds)
        self.clock = clock

    def valid_cells_around(
        self, center_id: str, commodity_type: str | None = None
    ) -> set[str]:
        """Cells among the center and its 8 neighbors that are valid right now."""
        return self.valid_cells(
            [center_id, *self.indexer.neighbors(center_id)], commodity_type
        )

    def valid_cells(
        self, cell_ids: Iterable[str], commodity_type: str | None = None
    ) -> set[str]:
        """
        Filter ``cell_ids`` down to the cells that can be served from cache.

        Args:
            cell_ids: Candidate geohash cells
            commodity_type: If given, the cell must also be fresh for this type

        Returns:
            Valid cell ids; empty if the repository cannot be read
        """
        now = self.clock()
        try:
            cells = self.repo.find_cells_by_ids_with_expiry(list(cell_ids), now)
        except RepositoryError as e:
            logger.warning(f"Cache lookup failed, treating as miss: {e!s}")
            return set()
        return {cell.geohash for cell in cells if cell.is_valid(now, commodity_type)}

    def records_for(
        self, cell_ids: Iterable[str], commodity_type: str | None = None
    ) -> list[AmenityRecord]:
        """Stored records for the given cells; empty if the repository fails."""
        cell_ids = list(cell_ids)
        if not cell_ids:
            return []
        try:
            return self.repo.find_places_by_cells_and_type(cell_ids, commodity_type)
        except RepositoryError as e:
            logger.warning(f"Reading cached places failed: {e!s}")
            return []

    def store(
        self,
        cell_id: str,
        places: Iterable[ProviderPlace | AmenityRecord],
        commodity_type: str,
        center_lat: float,
        center_lng: float,
    ) -> int:
        """
        Persist fetched places under a cell and mark the cell cached.

        Places already stored (same external id) keep their owning cell and
        gain ``commodity_type`` as a type tag. A failed write is logged and
        skipped; it never fails the caller.

        Returns:
            Number of records newly inserted
        """
        now = self.clock()
        inserted = 0

        for place in places:
            record = self._to_record(place, cell_id, commodity_type, now)
            try:
                if self.repo.upsert_place(record):
                    inserted += 1
            except RepositoryError as e:
                logger.error(f"Failed to cache place {record.external_id}: {e!s}")

        try:
            existing = self.repo.get_cell(cell_id)
        except RepositoryError as e:
            logger.warning(f"Could not read cell {cell_id} before update: {e!s}")
            existing = None

        if existing:
            cell = existing.model_copy(
                update={"center_lat": center_lat, "center_lng": center_lng}
            )
        else:
            cell = GridCell(
                geohash=cell_id, center_lat=center_lat, center_lng=center_lng
            )
        try:
            self.repo.upsert_cell(cell.mark_cached(commodity_type, now, self.ttl))
        except RepositoryError as e:
            logger.error(f"Failed to update cell metadata for {cell_id}: {e!s}")

        logger.debug(
            f"Stored {inserted} new places in cell {cell_id} for {commodity_type}"
        )
        return inserted

    @staticmethod
    def _to_record(
        place: ProviderPlace | AmenityRecord,
        cell_id: str,
        commodity_type: str,
        now: datetime,
    ) -> AmenityRecord:
        if isinstance(place, AmenityRecord):
            return place.model_copy(
                update={
                    "cell_id": cell_id,
                    "commodity_types": [commodity_type],
                    "fetched_at": now,
                }
            )
        return AmenityRecord.from_provider(place, cell_id, commodity_type, now)
