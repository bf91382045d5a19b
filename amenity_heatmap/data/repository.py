"""
Repositories for amenity records and grid cell metadata.

``GridRepository`` is the narrow contract the grid cache depends on.
``DynamoDBRepository`` maps the models to/from DynamoDB single-table items;
``InMemoryRepository`` keeps everything in process for local runs and tests.
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from amenity_heatmap.data.dynamodb import DynamoDBClient
from amenity_heatmap.data.models import KEY_FIELDS, AmenityRecord, GridCell
from amenity_heatmap.utils.error_handling import (
    RepositoryReadError,
    RepositoryWriteError,
)
from amenity_heatmap.utils.helpers import utc_now
from amenity_heatmap.utils.logging import get_logger

logger = get_logger(__name__)


class GridRepository(ABC):
    """Storage contract for the grid cache."""

    @abstractmethod
    def upsert_place(self, record: AmenityRecord) -> bool:
        """
        Insert a record keyed by ``external_id``.

        When the key already exists the stored record is kept, except that
        the new record's commodity types are added to its type tags.

        Returns:
            True if the record was stored, False if the key already existed

        Raises:
            RepositoryWriteError: If the store rejects the write
        """

    @abstractmethod
    def upsert_cell(self, cell: GridCell) -> None:
        """Insert or replace cell metadata keyed by geohash (last writer wins)."""

    @abstractmethod
    def get_cell(self, geohash: str) -> GridCell | None:
        """Return the stored metadata for one cell, if any."""

    @abstractmethod
    def find_cells_by_ids_with_expiry(
        self, geohashes: Iterable[str], now: datetime
    ) -> list[GridCell]:
        """Return cached cells among ``geohashes`` whose expiry is after ``now``."""

    @abstractmethod
    def find_places_by_cells_and_type(
        self, geohashes: Iterable[str], commodity_type: str | None = None
    ) -> list[AmenityRecord]:
        """Return records owned by the given cells, optionally of one type."""


def _has_type(record: AmenityRecord, commodity_type: str | None) -> bool:
    return commodity_type is None or commodity_type in record.commodity_types


class DynamoDBRepository(GridRepository):
    """Grid repository on a DynamoDB single table."""

    def __init__(self, db: DynamoDBClient):
        self.db = db

    # --- Helpers ---

    def _to_item(self, entity: BaseModel, entity_type: str) -> dict[str, Any]:
        """Convert a domain model to a DynamoDB item."""
        data = entity.model_dump(mode="json", exclude=KEY_FIELDS)
        # DynamoDB rejects floats
        data = json.loads(json.dumps(data), parse_float=Decimal)
        item: dict[str, Any] = {
            "PK": entity.pk,
            "SK": entity.sk,
            "EntityType": entity_type,
            "Version": 1,
            "Data": data,
            "Metadata": {"updatedAt": utc_now().isoformat()},
        }
        if hasattr(entity, "gsi1pk"):
            item["GSI1PK"] = entity.gsi1pk
        if hasattr(entity, "gsi1sk"):
            item["GSI1SK"] = entity.gsi1sk
        return item

    # --- Places (AP1) ---

    def upsert_place(self, record: AmenityRecord) -> bool:
        try:
            if self.db.put_item_if_absent(self._to_item(record, "Place")):
                return True
            for commodity_type in record.commodity_types:
                self.db.append_to_data_list(
                    record.pk, record.sk, "commodity_types", commodity_type
                )
            return False
        except (BotoCoreError, ClientError) as e:
            raise RepositoryWriteError(
                f"Failed to store place {record.external_id}", original_error=e
            ) from e

    def find_places_by_cells_and_type(
        self, geohashes: Iterable[str], commodity_type: str | None = None
    ) -> list[AmenityRecord]:
        records: list[AmenityRecord] = []
        try:
            for geohash in dict.fromkeys(geohashes):
                items = self.db.query_gsi1(f"CELL#{geohash}", sk_prefix="PLACE#")
                records.extend(
                    AmenityRecord.model_validate(i["Data"])
                    for i in items
                    if i.get("EntityType") == "Place"
                )
        except (BotoCoreError, ClientError) as e:
            raise RepositoryReadError(
                "Failed to read cell places", original_error=e
            ) from e
        return [r for r in records if _has_type(r, commodity_type)]

    # --- Grid cells (AP2) ---

    def upsert_cell(self, cell: GridCell) -> None:
        try:
            self.db.put_item(self._to_item(cell, "GridCell"))
        except (BotoCoreError, ClientError) as e:
            raise RepositoryWriteError(
                f"Failed to store cell {cell.geohash}", original_error=e
            ) from e

    def get_cell(self, geohash: str) -> GridCell | None:
        try:
            item = self.db.get_item(f"CELL#{geohash}", "METADATA")
        except (BotoCoreError, ClientError) as e:
            raise RepositoryReadError(
                f"Failed to read cell {geohash}", original_error=e
            ) from e
        if not item:
            return None
        return GridCell.model_validate(item["Data"])

    def find_cells_by_ids_with_expiry(
        self, geohashes: Iterable[str], now: datetime
    ) -> list[GridCell]:
        keys = [(f"CELL#{geohash}", "METADATA") for geohash in geohashes]
        if not keys:
            return []
        try:
            items = self.db.batch_get(keys)
        except (BotoCoreError, ClientError) as e:
            raise RepositoryReadError(
                "Failed to read grid cells", original_error=e
            ) from e
        cells = [
            GridCell.model_validate(i["Data"])
            for i in items
            if i.get("EntityType") == "GridCell"
        ]
        return [cell for cell in cells if cell.is_valid(now)]


class InMemoryRepository(GridRepository):
    """Process-local grid repository."""

    def __init__(self):
        self.places: dict[str, AmenityRecord] = {}
        self.cells: dict[str, GridCell] = {}

    def upsert_place(self, record: AmenityRecord) -> bool:
        stored = self.places.get(record.external_id)
        if stored is not None:
            for commodity_type in record.commodity_types:
                if commodity_type not in stored.commodity_types:
                    stored.commodity_types.append(commodity_type)
            return False
        self.places[record.external_id] = record.model_copy(deep=True)
        return True

    def upsert_cell(self, cell: GridCell) -> None:
        self.cells[cell.geohash] = cell.model_copy(deep=True)

    def get_cell(self, geohash: str) -> GridCell | None:
        cell = self.cells.get(geohash)
        return cell.model_copy(deep=True) if cell else None

    def find_cells_by_ids_with_expiry(
        self, geohashes: Iterable[str], now: datetime
    ) -> list[GridCell]:
        found = [self.cells[g] for g in dict.fromkeys(geohashes) if g in self.cells]
        return [cell.model_copy(deep=True) for cell in found if cell.is_valid(now)]

    def find_places_by_cells_and_type(
        self, geohashes: Iterable[str], commodity_type: str | None = None
    ) -> list[AmenityRecord]:
        wanted = set(geohashes)
        return [
            record.model_copy(deep=True)
            for record in self.places.values()
            if record.cell_id in wanted and _has_type(record, commodity_type)
        ]
